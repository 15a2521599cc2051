from datetime import datetime, timezone

import pytest

from newsdesk.backend.collectors.entities import collect_entities
from newsdesk.shared.types.results import TrackingRequest


@pytest.fixture
def now():
    return datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def tracking_requests():
    return [
        TrackingRequest.from_dict({
            'owner': 'Dana Whitfield',
            'companies': [{'name': 'Acme Corp', 'cik': '0000123456'}, 'Beta Industries'],
            'people': [{'name': 'Jane Doe', 'title': 'CEO'}]
        }),
        TrackingRequest.from_dict({
            'revenueOwnerName': 'Sam Ortega',
            'companies': ['acme corp'],
            'people': []
        })
    ]


@pytest.fixture
def entities(tracking_requests):
    return collect_entities(tracking_requests)


@pytest.fixture
def pipeline_config():
    """Pipeline settings without file IO or pauses."""
    return {
        'pipeline': {},
        'collection': {'batch_size': 5, 'timeout_seconds': 2, 'resolve_redirects': False},
        'dedup': {'recency_days': 3, 'semantic_min_articles': 6},
        'layer2': {'enabled': True, 'max_results': 25},
        'enrichment': {'max_articles': 50, 'fallback_max_articles': 30},
        'generation': {}
    }
