#!/usr/bin/env python3
"""
Result Types - Structured records passed between pipeline stages.

Raw candidates flow from the fetch layers through both deduplication passes
into the enricher, which emits processed articles plus coverage gaps. Every
record lives for one pipeline run only.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
from datetime import datetime, timezone
from enum import Enum
import json
import re


class EntityKind(str, Enum):
    """Kinds of tracked entity."""
    COMPANY = "company"
    PERSON = "person"


class FetchLayer(str, Enum):
    """Which retrieval layer produced a raw article."""
    LAYER1_RSS = "layer1_rss"
    LAYER1_API = "layer1_api"
    LAYER2_LLM = "layer2_llm"

    @classmethod
    def coerce(cls, value: Any, default: 'FetchLayer') -> 'FetchLayer':
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default


class MatchType(str, Enum):
    """How confidently an article was tied to a tracked entity."""
    EXACT = "exact"
    CONTEXTUAL = "contextual"


class StepStatus(str, Enum):
    """Progress step status."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class EnrichmentMode(str, Enum):
    """How the enrichment stage produced its output."""
    LLM = "llm"
    REPAIRED = "repaired"
    FALLBACK = "fallback"
    SKIPPED = "skipped"


class ArticleCategory(str, Enum):
    """Fixed classification taxonomy for processed articles."""
    MA_DEAL_ACTIVITY = "M&A / Deal Activity"
    LEADERSHIP_CHANGES = "Leadership Changes"
    EARNINGS_OPERATIONS = "Earnings & Operational Performance"
    STRATEGY = "Strategy"
    VALUE_CREATION = "Value Creation / Cost Initiatives"
    DIGITAL_TECHNOLOGY = "Digital & Technology Modernization"
    FUNDRAISING = "Fundraising / New Funds"
    OPERATING_PARTNER = "Operating Partner Activity"
    SUPPLY_CHAIN = "Supply Chain & Logistics"
    PLANT_FOOTPRINT = "Plant & Footprint Changes"
    NEWS = "News"

    @classmethod
    def normalize(cls, value: Any) -> 'ArticleCategory':
        """Map free-form category text onto the taxonomy, defaulting to News."""
        if isinstance(value, ArticleCategory):
            return value
        text = re.sub(r'\s+', ' ', str(value or '')).strip().lower()
        if not text:
            return cls.NEWS
        for category in cls:
            if category.value.lower() == text:
                return category
        # Loose match on the leading label, e.g. "M&A" or "Leadership"
        for category in cls:
            label = category.value.lower().split(' ')[0]
            if category is not cls.NEWS and text.startswith(label):
                return category
        return cls.NEWS


def normalize_name(name: str) -> str:
    """Case-folded, whitespace-collapsed form of a name used for matching."""
    return re.sub(r'\s+', ' ', (name or '')).strip().casefold()


@dataclass(frozen=True)
class TrackedEntity:
    """A company or person the pipeline searches for."""
    name: str
    kind: EntityKind
    ticker: Optional[str] = None
    filing_id: Optional[str] = None
    title: Optional[str] = None

    @property
    def match_key(self) -> str:
        return normalize_name(self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'kind': self.kind.value,
            'ticker': self.ticker,
            'filing_id': self.filing_id,
            'title': self.title
        }


@dataclass
class TrackingRequest:
    """One requester's list of companies and people to track."""
    owner: str
    companies: List[TrackedEntity] = field(default_factory=list)
    people: List[TrackedEntity] = field(default_factory=list)
    owner_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrackingRequest':
        """Create a request from loosely shaped JSON/YAML input."""
        if not isinstance(data, dict):
            raise TypeError(f"Tracking request must be a mapping, got {type(data).__name__}")

        owner = str(data.get('owner') or data.get('revenueOwnerName') or '').strip()

        companies = []
        for item in data.get('companies') or []:
            if isinstance(item, str):
                item = {'name': item}
            name = str(item.get('name') or '').strip()
            if not name:
                continue
            companies.append(TrackedEntity(
                name=name,
                kind=EntityKind.COMPANY,
                ticker=item.get('ticker') or None,
                filing_id=item.get('filing_id') or item.get('filingId') or item.get('cik') or None
            ))

        people = []
        for item in data.get('people') or []:
            if isinstance(item, str):
                item = {'name': item}
            name = str(item.get('name') or '').strip()
            if not name:
                continue
            people.append(TrackedEntity(
                name=name,
                kind=EntityKind.PERSON,
                title=item.get('title') or None
            ))

        return cls(
            owner=owner,
            companies=companies,
            people=people,
            owner_id=data.get('owner_id') or data.get('revenueOwnerId')
        )


@dataclass(frozen=True)
class RawArticle:
    """A candidate article exactly as a fetch layer produced it."""
    headline: str
    description: str
    source_url: str
    source_name: str
    published_at: datetime
    fetch_layer: FetchLayer
    query_used: Optional[str] = None

    def __post_init__(self):
        # naive timestamps from injected fetchers are read as UTC
        published_at = self.published_at
        if published_at.tzinfo is None:
            published_at = published_at.replace(tzinfo=timezone.utc)
        object.__setattr__(self, 'published_at', published_at.astimezone(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'headline': self.headline,
            'description': self.description,
            'source_url': self.source_url,
            'source_name': self.source_name,
            'published_at': self.published_at.isoformat(),
            'fetch_layer': self.fetch_layer.value,
            'query_used': self.query_used
        }


@dataclass(frozen=True)
class ArticleSourceInfo:
    """Attribution for one raw article folded into a processed article."""
    source_url: str
    source_name: str
    fetch_layer: FetchLayer

    @classmethod
    def from_raw(cls, article: RawArticle) -> 'ArticleSourceInfo':
        return cls(article.source_url, article.source_name, article.fetch_layer)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source_url': self.source_url,
            'source_name': self.source_name,
            'fetch_layer': self.fetch_layer.value
        }


@dataclass
class ProcessedArticle:
    """Classified, scored and summarized article emitted by the enricher."""
    headline: str
    short_summary: str
    long_summary: str
    why_it_matters: str
    primary_source_url: str
    primary_source_name: str
    sources: List[ArticleSourceInfo]
    published_at: datetime
    category: ArticleCategory
    priority_level: str
    priority_score: int
    match_type: MatchType
    fetch_layer: FetchLayer
    tracking_owners: List[str] = field(default_factory=list)
    matched_company: Optional[str] = None
    matched_person: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format for API/JSON serialization."""
        return {
            'headline': self.headline,
            'short_summary': self.short_summary,
            'long_summary': self.long_summary,
            'why_it_matters': self.why_it_matters,
            'primary_source_url': self.primary_source_url,
            'primary_source_name': self.primary_source_name,
            'sources': [source.to_dict() for source in self.sources],
            'published_at': self.published_at.isoformat(),
            'matched_company': self.matched_company,
            'matched_person': self.matched_person,
            'category': self.category.value,
            'priority_level': self.priority_level,
            'priority_score': self.priority_score,
            'match_type': self.match_type.value,
            'fetch_layer': self.fetch_layer.value,
            'tracking_owners': list(self.tracking_owners)
        }


@dataclass(frozen=True)
class CoverageGap:
    """A tracked entity for which no article survived the run."""
    entity: str
    kind: EntityKind
    tracking_owner: Optional[str] = None
    note: str = "No recent coverage found"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity': self.entity,
            'kind': self.kind.value,
            'tracking_owner': self.tracking_owner,
            'note': self.note
        }


@dataclass
class PipelineStats:
    """Audit trail of article counts at each pipeline stage."""
    layer1_articles: int = 0
    layer2_articles: int = 0
    total_raw: int = 0
    after_heuristic_dedup: int = 0
    after_semantic_dedup: int = 0
    after_enrichment: int = 0
    coverage_gaps: int = 0
    enrichment_mode: EnrichmentMode = EnrichmentMode.SKIPPED
    semantic_dedup_applied: bool = False
    layer1_failed_sources: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'layer1_articles': self.layer1_articles,
            'layer2_articles': self.layer2_articles,
            'total_raw': self.total_raw,
            'after_heuristic_dedup': self.after_heuristic_dedup,
            'after_semantic_dedup': self.after_semantic_dedup,
            'after_enrichment': self.after_enrichment,
            'coverage_gaps': self.coverage_gaps,
            'enrichment_mode': self.enrichment_mode.value,
            'semantic_dedup_applied': self.semantic_dedup_applied,
            'layer1_failed_sources': self.layer1_failed_sources,
            'duration_seconds': round(self.duration_seconds, 3)
        }


@dataclass
class FetchResult:
    """Complete result from one pipeline invocation."""
    articles: List[ProcessedArticle] = field(default_factory=list)
    coverage_gaps: List[CoverageGap] = field(default_factory=list)
    stats: PipelineStats = field(default_factory=PipelineStats)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def empty(cls) -> 'FetchResult':
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            'generated_at': self.generated_at.isoformat(),
            'count': len(self.articles),
            'articles': [article.to_dict() for article in self.articles],
            'coverage_gaps': [gap.to_dict() for gap in self.coverage_gaps],
            'stats': self.stats.to_dict()
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


@dataclass(frozen=True)
class StepUpdate:
    """Status change for one numbered pipeline step."""
    index: int
    status: StepStatus
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'index': self.index, 'status': self.status.value}
        if self.detail is not None:
            result['detail'] = self.detail
        return result
