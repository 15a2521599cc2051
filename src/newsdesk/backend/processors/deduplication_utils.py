#!/usr/bin/env python3
"""
Heuristic Deduplication

Fast, deterministic first pass over merged Layer 1 and Layer 2 results.
Articles are visited newest first and an article is dropped when it matches
one already kept by:

1. normalized URL (tracking parameters, fragment, trailing slash removed)
2. event signature (same parties in a deal, fund-raise or earnings headline)
3. content fingerprint (significant headline/description words)
4. headline similarity (difflib ratio) or word-overlap (Jaccard) similarity

Survivors older than the recency window are then dropped. The newest article
of a cluster wins; equal timestamps keep the earliest-fetched one. Output is
in visit order, so running the pass on its own output changes nothing.
"""

import re
import hashlib
import logging
import difflib
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, FrozenSet, List, Optional, Set
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ...shared.types.results import RawArticle

logger = logging.getLogger(__name__)

TRACKING_PARAMS = {
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_content', 'utm_term',
    'ref', 'source', 'fbclid', 'gclid', 'msclkid', 'mc_cid', 'mc_eid'
}

TITLE_PREFIXES = ('breaking:', 'exclusive:', 'update:', 'updated:', 'news:', 'press release:')

DEAL_PATTERNS = [
    re.compile(r'(\w+(?:\s+\w+)?)\s+(?:acquires?|acquired|buying|buys|bought)\s+(\w+(?:\s+\w+)?)'),
    re.compile(r'(\w+(?:\s+\w+)?)\s+(?:to\s+)?sells?\s+(\w+(?:\s+\w+)?)'),
    re.compile(r'(\w+(?:\s+\w+)?)\s+(?:invests?|invested|investing)\s+(?:in\s+)?(\w+(?:\s+\w+)?)'),
    re.compile(r'(\w+(?:\s+\w+)?)\s+(?:agrees?\s+to\s+)?(?:acquire|sell|buy)\s+(\w+(?:\s+\w+)?)'),
    re.compile(r'(\w+(?:\s+\w+)?)\s+secures?\s+investment\s+from\s+(\w+(?:\s+\w+)?)'),
]
FUND_PATTERN = re.compile(
    r'(\w+(?:\s+\w+)?)\s+(?:raises?|raised|closes?|closed)\s+.*?'
    r'(\$[\d.]+[bmk]|\d+(?:\.\d+)?\s*(?:billion|million|bn|b))'
)
EARNINGS_PATTERNS = [
    re.compile(r'(\w+(?:\s+\w+)?)\s+(?:beats?|tops?|exceeds?|misses?)\s+(?:profit|earnings?|estimates?)'),
    re.compile(r'(\w+(?:\s+\w+)?)\s+(?:profits?|earnings?)\s+(?:soar|surge|jump|fall|drop)'),
]


@lru_cache(maxsize=2048)
def normalize_url(url: str) -> str:
    """Canonical URL form for comparison; empty input stays empty."""
    url = (url or '').strip()
    if not url:
        return ''
    try:
        parts = urlsplit(url)
    except ValueError:
        return url.lower()
    if not parts.netloc:
        return url.lower().rstrip('/')

    query = urlencode([
        (key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key.lower() not in TRACKING_PARAMS
    ])
    host = parts.netloc.lower()
    if host.startswith('www.'):
        host = host[4:]
    path = parts.path.rstrip('/')
    return urlunsplit(('https' if parts.scheme in ('http', 'https') else parts.scheme, host, path, query, ''))


@lru_cache(maxsize=2048)
def normalize_title(title: str) -> str:
    """Lowercase, strip prefixes, trailing outlet attribution and punctuation."""
    if not title:
        return ""

    normalized = title.lower().strip()
    for prefix in TITLE_PREFIXES:
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix):].strip()
            break

    # "Headline - Reuters" / "Headline | Bloomberg"
    normalized = re.sub(r'\s+[-|]\s+[a-z0-9 .&]{2,40}$', '', normalized)
    normalized = re.sub(r'[^\w\s]', ' ', normalized)
    return re.sub(r'\s+', ' ', normalized).strip()


def _clean_party(text: str) -> str:
    return re.sub(r'[^a-z\s]', '', text).strip()


def event_signature(headline: str) -> Optional[str]:
    """``deal|a|b``, ``fund|a`` or ``earnings|a`` for recognizable event headlines."""
    text = (headline or '').lower()

    for pattern in DEAL_PATTERNS:
        match = pattern.search(text)
        if match:
            return f"deal|{_clean_party(match.group(1))}|{_clean_party(match.group(2))}"

    match = FUND_PATTERN.search(text)
    if match:
        return f"fund|{_clean_party(match.group(1))}"

    for pattern in EARNINGS_PATTERNS:
        match = pattern.search(text)
        if match:
            return f"earnings|{_clean_party(match.group(1))}"

    return None


def significant_words(text: str, min_length: int = 4) -> List[str]:
    cleaned = re.sub(r'[^\w\s]', '', (text or '').lower())
    return [word for word in cleaned.split() if len(word) >= min_length]


class HeuristicDeduplicator:
    """
    Rule-based duplicate removal plus recency filtering. No external calls.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.recency_days = self.config.get('recency_days', 3)
        self.title_similarity_threshold = self.config.get('title_similarity_threshold', 0.85)
        self.jaccard_threshold = self.config.get('jaccard_threshold', 0.6)
        self.min_word_length = self.config.get('min_word_length', 4)

    def _fingerprint(self, article: RawArticle) -> Optional[str]:
        """Hash of the first fifteen significant words, order-insensitive."""
        text = f"{normalize_title(article.headline)} {article.description}"
        words = significant_words(text, self.min_word_length)[:15]
        key = '|'.join(sorted(words))
        if len(key) <= 10:
            return None
        return hashlib.sha256(key.encode()).hexdigest()

    def _word_set(self, article: RawArticle) -> FrozenSet[str]:
        return frozenset(significant_words(f"{article.headline} {article.description}", self.min_word_length))

    def _are_titles_similar(self, title1: str, title2: str) -> bool:
        if not title1 or not title2:
            return False
        if title1 == title2:
            return True
        return difflib.SequenceMatcher(None, title1, title2).ratio() >= self.title_similarity_threshold

    @staticmethod
    def _jaccard(a: FrozenSet[str], b: FrozenSet[str]) -> float:
        if not a or not b:
            return 0.0
        return len(a & b) / len(a | b)

    @staticmethod
    def visit_order(articles: List[RawArticle]) -> List[RawArticle]:
        """Newest first; equal timestamps keep input order."""
        indexed = sorted(enumerate(articles), key=lambda pair: (-pair[1].published_at.timestamp(), pair[0]))
        return [article for _, article in indexed]

    def deduplicate(self, articles: List[RawArticle]) -> List[RawArticle]:
        """Cluster near-duplicates, keeping one representative each."""
        if not articles:
            return []

        seen_urls: Set[str] = set()
        seen_events: Set[str] = set()
        seen_fingerprints: Set[str] = set()
        kept_titles: List[str] = []
        kept_words: List[FrozenSet[str]] = []
        unique: List[RawArticle] = []

        for article in self.visit_order(articles):
            url_key = normalize_url(article.source_url)
            if url_key and url_key in seen_urls:
                logger.debug(f"Duplicate URL: {article.source_url}")
                continue

            signature = event_signature(article.headline)
            if signature and signature in seen_events:
                logger.debug(f"Duplicate event '{signature}': {article.headline[:60]}")
                continue

            fingerprint = self._fingerprint(article)
            if fingerprint and fingerprint in seen_fingerprints:
                logger.debug(f"Duplicate fingerprint: {article.headline[:60]}")
                continue

            title = normalize_title(article.headline)
            words = self._word_set(article)
            if any(self._are_titles_similar(title, seen) for seen in kept_titles):
                logger.debug(f"Similar headline: {article.headline[:60]}")
                continue
            if any(self._jaccard(words, seen) > self.jaccard_threshold for seen in kept_words):
                logger.debug(f"High word overlap: {article.headline[:60]}")
                continue

            if url_key:
                seen_urls.add(url_key)
            if signature:
                seen_events.add(signature)
            if fingerprint:
                seen_fingerprints.add(fingerprint)
            kept_titles.append(title)
            kept_words.append(words)
            unique.append(article)

        logger.info(f"Heuristic deduplication: {len(articles)} -> {len(unique)} "
                    f"({len(articles) - len(unique)} duplicates removed)")
        return unique

    def filter_recent(self, articles: List[RawArticle], now: Optional[datetime] = None,
                      days: Optional[float] = None) -> List[RawArticle]:
        """Drop articles published before the trailing window."""
        window = self.recency_days if days is None else days
        if window is None or window <= 0:
            return list(articles)
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=window)
        recent = [article for article in articles if article.published_at >= cutoff]
        if len(recent) != len(articles):
            logger.info(f"Recency filter ({window}d): removed {len(articles) - len(recent)} articles")
        return recent

    def run(self, articles: List[RawArticle], now: Optional[datetime] = None) -> List[RawArticle]:
        """Full heuristic pass: clustering then recency filtering."""
        return self.filter_recent(self.deduplicate(articles), now=now)

    def get_deduplication_stats(self, original_count: int, final_count: int) -> Dict[str, Any]:
        removed_count = original_count - final_count
        removal_rate = (removed_count / original_count * 100) if original_count > 0 else 0
        return {
            'original_count': original_count,
            'final_count': final_count,
            'removed_count': removed_count,
            'removal_rate_percent': round(removal_rate, 2)
        }


def deduplicate_articles(articles: List[RawArticle], config: Optional[Dict[str, Any]] = None,
                         now: Optional[datetime] = None) -> List[RawArticle]:
    """Convenience wrapper around ``HeuristicDeduplicator.run``."""
    return HeuristicDeduplicator(config).run(articles, now=now)
