#!/usr/bin/env python3
"""
Layer 1 Collection - deterministic feed fetchers for tracked entities

Each tracked company is searched by name and each person by quoted name on a
news-search feed; companies with an SEC CIK also get a filings query. Curated
domain feeds are fetched once per run and kept only where they mention a
tracked name. Every fetch is isolated: a failure or timeout costs that one
query its results and nothing else.
"""

import asyncio
import aiohttp
import feedparser
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Any, Tuple
from urllib.parse import quote_plus, urlparse

from .core import CollectionConfig, CollectionStats, DateUtils, TextUtils
from .entities import EntitySet
from ...shared.types.results import FetchLayer, RawArticle

logger = logging.getLogger(__name__)

AGGREGATOR_HOSTS = ('news.google.com',)


class FeedKind(str, Enum):
    """Kinds of Layer 1 query."""
    NEWS_SEARCH = "news_search"
    FILINGS = "filings"
    CURATED = "curated"


@dataclass(frozen=True)
class SourceQuery:
    """One Layer 1 fetch: what to ask which feed for."""
    target: str
    kind: FeedKind
    label: str
    max_items: int = 15
    source_name: Optional[str] = None
    entity_name: Optional[str] = None

    @property
    def fetch_layer(self) -> FetchLayer:
        return FetchLayer.LAYER1_API if self.kind == FeedKind.FILINGS else FetchLayer.LAYER1_RSS


FeedFetchFn = Callable[[SourceQuery], Awaitable[List[RawArticle]]]


class FeedEntryParser:
    """Turns feedparser entries into raw articles."""

    def __init__(self, config: CollectionConfig):
        self.config = config

    def parse_entry(self, query: SourceQuery, entry: Any, feed_title: str = '') -> Optional[RawArticle]:
        title = TextUtils.extract_field(entry, ['title'])
        url = TextUtils.extract_field(entry, ['link', 'id'])
        if not (title and TextUtils.is_valid_url(url)):
            return None

        headline, outlet = title, None
        if query.kind == FeedKind.NEWS_SEARCH:
            headline, outlet = TextUtils.split_source_suffix(title)

        source = entry.get('source') if hasattr(entry, 'get') else None
        source_title = source.get('title') if isinstance(source, dict) else None

        if query.kind == FeedKind.FILINGS:
            source_name = 'SEC EDGAR'
            headline = f"{query.entity_name}: {headline}" if query.entity_name else headline
        else:
            source_name = source_title or outlet or query.source_name or feed_title or query.label

        description = TextUtils.clean_html(
            TextUtils.extract_field(entry, ['summary', 'description']),
            max_length=self.config.description_max_length
        )
        published_at = DateUtils.parse_date_or_now(
            getattr(entry, 'published_parsed', None) or getattr(entry, 'updated_parsed', None)
            or TextUtils.extract_field(entry, ['published', 'updated'])
        )

        return RawArticle(
            headline=headline,
            description=description,
            source_url=url,
            source_name=source_name,
            published_at=published_at,
            fetch_layer=query.fetch_layer,
            query_used=query.label
        )

    def parse_feed(self, query: SourceQuery, content: str) -> List[RawArticle]:
        feed = feedparser.parse(content)
        entries = getattr(feed, 'entries', None) or []
        feed_title = feed.feed.get('title', '') if hasattr(feed, 'feed') else ''

        articles = []
        for entry in entries[:query.max_items]:
            article = self.parse_entry(query, entry, feed_title)
            if article:
                articles.append(article)
        return articles


class HttpFeedFetcher:
    """aiohttp + feedparser implementation of the Layer 1 fetch function."""

    def __init__(self, config: Optional[CollectionConfig] = None):
        self.config = config or CollectionConfig()
        self.parser = FeedEntryParser(self.config)
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._init_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self._cleanup_session()

    async def _init_session(self):
        """Initialize HTTP session."""
        if self.session is not None:
            return

        connector = aiohttp.TCPConnector(
            limit=50, limit_per_host=10, ttl_dns_cache=300,
            use_dns_cache=True, keepalive_timeout=30
        )
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)

        self.session = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            headers={'User-Agent': self.config.user_agent}
        )

    async def _cleanup_session(self):
        """Clean up HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    def build_url(self, query: SourceQuery) -> str:
        if query.kind == FeedKind.NEWS_SEARCH:
            return self.config.news_search_url.format(query=quote_plus(query.target))
        if query.kind == FeedKind.FILINGS:
            return self.config.filings_url.format(cik=quote_plus(query.target))
        return query.target

    async def __call__(self, query: SourceQuery) -> List[RawArticle]:
        await self._init_session()
        url = self.build_url(query)

        async with self.session.get(url) as response:
            if response.status != 200:
                raise aiohttp.ClientResponseError(
                    response.request_info, response.history,
                    status=response.status, message=f"HTTP {response.status}"
                )
            content = await response.text()

        articles = self.parser.parse_feed(query, content)
        if query.kind == FeedKind.NEWS_SEARCH and self.config.resolve_redirects:
            articles = await self._resolve_aggregator_links(articles)
        return articles

    async def _resolve_aggregator_links(self, articles: List[RawArticle]) -> List[RawArticle]:
        resolved = await asyncio.gather(
            *(self._resolve_url(article.source_url) for article in articles)
        )
        results = []
        for article, url in zip(articles, resolved):
            if url != article.source_url:
                article = RawArticle(
                    headline=article.headline,
                    description=article.description,
                    source_url=url,
                    source_name=article.source_name,
                    published_at=article.published_at,
                    fetch_layer=article.fetch_layer,
                    query_used=article.query_used
                )
            results.append(article)
        return results

    async def _resolve_url(self, url: str) -> str:
        """Follow aggregator redirects to the publisher URL, keeping the original on failure."""
        if urlparse(url).netloc.lower() not in AGGREGATOR_HOSTS:
            return url
        try:
            async with self.session.head(
                url, allow_redirects=True, max_redirects=self.config.max_redirect_hops
            ) as response:
                final_url = str(response.url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Redirect resolution failed for {url}: {e}")
            return url
        if urlparse(final_url).netloc.lower() in AGGREGATOR_HOSTS:
            return url
        return final_url


class Layer1Fetcher:
    """Builds Layer 1 queries for an entity set and runs them in concurrent batches."""

    def __init__(self,
                 config: Optional[Dict[str, Any]] = None,
                 fetch_fn: Optional[FeedFetchFn] = None,
                 curated_feeds: Optional[Dict[str, Dict[str, Any]]] = None):
        self.config = CollectionConfig.from_dict(config)
        self.fetch_fn = fetch_fn
        self.curated_feeds = curated_feeds
        self.stats = CollectionStats()

    def _load_curated_feeds(self) -> Dict[str, Dict[str, Any]]:
        if self.curated_feeds is None:
            from ...shared.config.sources_loader import load_curated_feeds
            self.curated_feeds = load_curated_feeds()
        return self.curated_feeds

    def build_queries(self, entities: EntitySet) -> List[SourceQuery]:
        """All queries for one run, in a stable order."""
        queries = []
        for company in entities.companies:
            queries.append(SourceQuery(
                target=company.name, kind=FeedKind.NEWS_SEARCH,
                label=f"news:{company.name}", max_items=self.config.search_max_items,
                entity_name=company.name
            ))
            if company.filing_id:
                queries.append(SourceQuery(
                    target=company.filing_id, kind=FeedKind.FILINGS,
                    label=f"filings:{company.name}", max_items=self.config.search_max_items,
                    entity_name=company.name
                ))

        for person in entities.people:
            queries.append(SourceQuery(
                target=f'"{person.name}"', kind=FeedKind.NEWS_SEARCH,
                label=f"news:{person.name}", max_items=self.config.search_max_items,
                entity_name=person.name
            ))

        for feed_id, feed in self._load_curated_feeds().items():
            queries.append(SourceQuery(
                target=feed['url'], kind=FeedKind.CURATED,
                label=f"curated:{feed_id}",
                max_items=int(feed.get('maxArticles', self.config.curated_max_items)),
                source_name=feed.get('name', feed_id)
            ))
        return queries

    async def fetch(self, entities: EntitySet) -> List[RawArticle]:
        """Run every Layer 1 query; never raises for a failing source."""
        start_time = time.time()
        self.stats = CollectionStats()
        queries = self.build_queries(entities)
        if not queries:
            return []

        if self.fetch_fn is None:
            async with HttpFeedFetcher(self.config) as fetcher:
                articles = await self._run_batches(queries, fetcher, entities.names)
        else:
            articles = await self._run_batches(queries, self.fetch_fn, entities.names)

        self.stats.total_articles = len(articles)
        self.stats.processing_time = time.time() - start_time
        self._log_summary()
        return articles

    async def _run_batches(self, queries: List[SourceQuery], fetch_fn: FeedFetchFn,
                           names: List[str]) -> List[RawArticle]:
        all_articles: List[RawArticle] = []
        batch_size = max(1, int(self.config.batch_size))
        for i in range(0, len(queries), batch_size):
            batch = queries[i:i + batch_size]
            all_articles.extend(await self._process_batch(batch, fetch_fn, names))

            if i + batch_size < len(queries) and self.config.pause_between_batches_seconds > 0:
                await asyncio.sleep(self.config.pause_between_batches_seconds)
        return all_articles

    async def _process_batch(self, batch: List[SourceQuery], fetch_fn: FeedFetchFn,
                             names: List[str]) -> List[RawArticle]:
        """Process a batch of queries concurrently."""
        results = await asyncio.gather(
            *(self._safe_fetch(query, fetch_fn) for query in batch),
            return_exceptions=True
        )
        batch_articles = []

        for query, result in zip(batch, results):
            if isinstance(result, BaseException):
                # _safe_fetch already absorbs ordinary failures
                self._record_failure(query, f"error: {str(result)[:80]}")
                continue

            articles, reason = result
            if query.kind == FeedKind.CURATED:
                articles = self._filter_mentions(articles, names)
                if not articles and reason == "success":
                    reason = "no tracked names mentioned"

            if articles:
                batch_articles.extend(articles)
                self.stats.successful += 1
            elif reason == "success" or reason.startswith("no "):
                self.stats.empty += 1
                self.stats.failure_reasons[query.label] = reason
            else:
                self._record_failure(query, reason)

        return batch_articles

    async def _safe_fetch(self, query: SourceQuery, fetch_fn: FeedFetchFn) -> Tuple[List[RawArticle], str]:
        """One fetch with a timeout; failures map to zero articles and a reason."""
        try:
            articles = await asyncio.wait_for(fetch_fn(query), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            return [], "timeout"
        except aiohttp.ClientError as e:
            return [], f"connection error: {e}"
        except Exception as e:
            return [], f"error: {str(e)[:80]}"
        if not articles:
            return [], "no entries found"
        return list(articles), "success"

    def _record_failure(self, query: SourceQuery, reason: str) -> None:
        self.stats.failed += 1
        self.stats.failure_reasons[query.label] = reason
        logger.warning(f"Layer 1 source {query.label} failed: {reason}")

    @staticmethod
    def _filter_mentions(articles: List[RawArticle], names: List[str]) -> List[RawArticle]:
        return [
            article for article in articles
            if TextUtils.mentions(f"{article.headline} {article.description}", names)
        ]

    def _log_summary(self):
        s = self.stats
        logger.info(f"Layer 1: ✓{s.successful} ○{s.empty} ✗{s.failed} "
                    f"→ {s.total_articles} articles ({s.processing_time:.2f}s)")
