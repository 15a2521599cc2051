#!/usr/bin/env python3
"""
newsdesk Processing Module

Heuristic and semantic deduplication, malformed-output recovery and
enrichment of raw articles into processed articles.
"""

from .deduplication_utils import HeuristicDeduplicator, deduplicate_articles
from .enrichment_agent import Enricher, EnrichmentOutcome
from .json_recovery import MalformedOutputRecoverer, parse_json_object
from .semantic_dedup import DedupGroup, DedupPlan, SemanticDeduplicator

__all__ = [
    'HeuristicDeduplicator',
    'deduplicate_articles',
    'Enricher',
    'EnrichmentOutcome',
    'MalformedOutputRecoverer',
    'parse_json_object',
    'DedupGroup',
    'DedupPlan',
    'SemanticDeduplicator'
]
