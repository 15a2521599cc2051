import asyncio

import aiohttp

from fakes import make_raw
from newsdesk.backend.collectors.collectors import (
    FeedEntryParser, FeedKind, HttpFeedFetcher, Layer1Fetcher, SourceQuery
)
from newsdesk.backend.collectors.core import CollectionConfig, DateUtils, TextUtils
from newsdesk.backend.collectors.entities import EntitySet
from newsdesk.shared.types.results import FetchLayer

NEWS_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>"Acme Corp" - Google News</title>
    <item>
      <title>Acme Corp names new chief financial officer - Reuters</title>
      <link>https://www.reuters.com/business/acme-cfo</link>
      <pubDate>Mon, 02 Mar 2026 09:30:00 GMT</pubDate>
      <description>&lt;p&gt;Acme Corp &lt;b&gt;appointed&lt;/b&gt; a new CFO.&lt;/p&gt;</description>
      <source url="https://www.reuters.com">Reuters</source>
    </item>
    <item>
      <title>Entry without a link</title>
    </item>
  </channel>
</rss>"""

CURATED = {'altassets': {'name': 'AltAssets', 'url': 'https://example.com/feed', 'maxArticles': 5}}


def test_parse_feed_splits_outlet_and_cleans_html():
    query = SourceQuery(target='Acme Corp', kind=FeedKind.NEWS_SEARCH, label='news:Acme Corp')
    articles = FeedEntryParser(CollectionConfig()).parse_feed(query, NEWS_RSS)

    assert len(articles) == 1
    article = articles[0]
    assert article.headline == "Acme Corp names new chief financial officer"
    assert article.source_name == "Reuters"
    assert article.description == "Acme Corp appointed a new CFO."
    assert article.fetch_layer == FetchLayer.LAYER1_RSS
    assert article.published_at.isoformat() == "2026-03-02T09:30:00+00:00"


def test_filings_entries_are_attributed_to_edgar():
    query = SourceQuery(target='0000123456', kind=FeedKind.FILINGS, label='filings:Acme Corp',
                        entity_name='Acme Corp')
    articles = FeedEntryParser(CollectionConfig()).parse_feed(query, NEWS_RSS)
    assert articles[0].source_name == 'SEC EDGAR'
    assert articles[0].headline.startswith('Acme Corp: ')
    assert articles[0].fetch_layer == FetchLayer.LAYER1_API


def test_build_queries_covers_every_entity(entities):
    fetcher = Layer1Fetcher({}, fetch_fn=None, curated_feeds=CURATED)
    queries = fetcher.build_queries(entities)
    labels = [q.label for q in queries]
    assert labels == [
        'news:Acme Corp', 'filings:Acme Corp', 'news:Beta Industries', 'news:Jane Doe', 'curated:altassets'
    ]
    person_query = queries[3]
    assert person_query.target == '"Jane Doe"'
    assert queries[-1].max_items == 5


def test_failing_source_does_not_affect_others(entities):
    async def fetch_fn(query):
        if query.label == 'news:Beta Industries':
            raise aiohttp.ClientConnectionError("connection refused")
        if query.label == 'filings:Acme Corp':
            await asyncio.sleep(5)
        if query.kind == FeedKind.CURATED:
            return [
                make_raw("Jane Doe joins AltAssets panel", source='AltAssets'),
                make_raw("Unrelated fund closes", source='AltAssets'),
            ]
        return [make_raw(f"Result for {query.target}")]

    fetcher = Layer1Fetcher({'timeout_seconds': 0.05, 'batch_size': 2}, fetch_fn=fetch_fn,
                            curated_feeds=CURATED)
    articles = asyncio.run(fetcher.fetch(entities))

    headlines = [a.headline for a in articles]
    assert headlines == [
        'Result for Acme Corp',
        'Result for "Jane Doe"',
        'Jane Doe joins AltAssets panel',
    ]
    assert fetcher.stats.failed == 2
    assert fetcher.stats.failure_reasons['filings:Acme Corp'] == 'timeout'
    assert fetcher.stats.failure_reasons['news:Beta Industries'].startswith('connection error')


def test_empty_entity_set_still_fetches_curated_feeds():
    calls = []

    async def fetch_fn(query):
        calls.append(query)
        return []

    fetcher = Layer1Fetcher({}, fetch_fn=fetch_fn, curated_feeds=CURATED)
    assert asyncio.run(fetcher.fetch(EntitySet())) == []
    assert fetcher.stats.empty == 1
    assert len(calls) == 1


def test_http_fetcher_builds_search_and_filings_urls():
    fetcher = HttpFeedFetcher(CollectionConfig())
    news = fetcher.build_url(SourceQuery(target='"Jane Doe"', kind=FeedKind.NEWS_SEARCH, label='x'))
    filings = fetcher.build_url(SourceQuery(target='0000123456', kind=FeedKind.FILINGS, label='y'))
    curated = fetcher.build_url(SourceQuery(target='https://example.com/feed', kind=FeedKind.CURATED, label='z'))
    assert 'q=%22Jane+Doe%22' in news
    assert 'CIK=0000123456' in filings
    assert curated == 'https://example.com/feed'


def test_text_utils_name_matching_is_whole_phrase():
    assert TextUtils.mentions("ACME corp. expands", ["Acme Corp"]) == ["Acme Corp"]
    assert TextUtils.mentions("Acme Corporation expands", ["Acme Corp"]) == []
    assert TextUtils.split_source_suffix("Deal done - Reuters") == ("Deal done", "Reuters")
    assert TextUtils.split_source_suffix("No outlet here") == ("No outlet here", None)


def test_date_utils_reads_common_formats():
    assert DateUtils.parse_date("2026-03-01").isoformat() == "2026-03-01T00:00:00+00:00"
    assert DateUtils.parse_date("not a date") is None
    assert DateUtils.parse_date(None) is None
