#!/usr/bin/env python3
"""
News Collection

Entity merging, Layer 1 feed fetchers and the Layer 2 contextual searcher.
"""

from .collectors import (
    FeedKind,
    SourceQuery,
    FeedEntryParser,
    HttpFeedFetcher,
    Layer1Fetcher
)

from .contextual import ContextualSearcher

from .core import (
    CollectionConfig,
    CollectionStats,
    DateUtils,
    TextUtils
)

from .entities import EntitySet, collect_entities

__all__ = [
    'FeedKind',
    'SourceQuery',
    'FeedEntryParser',
    'HttpFeedFetcher',
    'Layer1Fetcher',
    'ContextualSearcher',
    'CollectionConfig',
    'CollectionStats',
    'DateUtils',
    'TextUtils',
    'EntitySet',
    'collect_entities'
]
