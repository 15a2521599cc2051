from datetime import datetime, timedelta, timezone

from newsdesk.shared.config.config_loader import ConfigLoader, get_pipeline_config
from newsdesk.shared.config.sources_loader import SourcesLoader
from newsdesk.shared.types.results import ArticleCategory, FetchLayer, RawArticle
from newsdesk.shared.types.scoring import (
    PriorityLevel, clamp_priority_score, resolve_priority, source_tier
)


def test_priority_scores_are_clamped():
    assert clamp_priority_score(0) == 1
    assert clamp_priority_score(42) == 10
    assert clamp_priority_score("7.4") == 7
    assert clamp_priority_score("high") == 5


def test_score_wins_over_stated_level():
    assert resolve_priority(9, "low") == (9, PriorityLevel.HIGH)
    assert resolve_priority(None, "low") == (3, PriorityLevel.LOW)
    assert resolve_priority(None, "critical") == (8, PriorityLevel.HIGH)
    assert resolve_priority(None, None) == (5, PriorityLevel.MEDIUM)
    assert resolve_priority(True, "med") == (5, PriorityLevel.MEDIUM)


def test_source_tiers():
    assert source_tier("Reuters") == 1
    assert source_tier("AP News") == 1
    assert source_tier("Apple Daily") == 4
    assert source_tier("PR Newswire") == 2
    assert source_tier("PE Hub") == 3
    assert source_tier("") == 4


def test_category_normalization():
    assert ArticleCategory.normalize("leadership changes") == ArticleCategory.LEADERSHIP_CHANGES
    assert ArticleCategory.normalize("M&A") == ArticleCategory.MA_DEAL_ACTIVITY
    assert ArticleCategory.normalize("Celebrity gossip") == ArticleCategory.NEWS
    assert ArticleCategory.normalize(None) == ArticleCategory.NEWS


def test_fetch_layer_coercion():
    assert FetchLayer.coerce("LAYER1_API", FetchLayer.LAYER1_RSS) == FetchLayer.LAYER1_API
    assert FetchLayer.coerce("rss", FetchLayer.LAYER2_LLM) == FetchLayer.LAYER2_LLM


def test_packaged_config_has_every_section(monkeypatch):
    monkeypatch.delenv('CONFIG_DIR', raising=False)
    ConfigLoader.clear_cache()
    config = get_pipeline_config()
    assert config['dedup']['recency_days'] == 3
    assert config['enrichment']['max_articles'] == 50
    assert config['pipeline']['progress']['enrichment_done'] == 95
    assert ConfigLoader.get('generation.search_model') == 'groq/compound'
    assert ConfigLoader.get('generation.missing', 'fallback') == 'fallback'


def test_missing_config_dir_falls_back_to_defaults(monkeypatch, tmp_path):
    monkeypatch.setenv('CONFIG_DIR', str(tmp_path / 'absent'))
    ConfigLoader.clear_cache()
    try:
        assert get_pipeline_config()['dedup'] == {}
    finally:
        ConfigLoader.clear_cache()


def test_curated_sources_only_enabled_with_url(tmp_path):
    (tmp_path / 'curated.yaml').write_text(
        "sources:\n"
        "  kept: {name: Kept, url: 'https://example.com/rss'}\n"
        "  disabled: {name: Off, url: 'https://example.com/off', enabled: false}\n"
        "  no_url: {name: Nothing}\n",
        encoding='utf-8'
    )
    loader = SourcesLoader(str(tmp_path))
    assert list(loader.get_sources('curated')) == ['kept']
    assert list(loader.get_sources()) == ['kept']


def test_shipped_curated_feeds_load():
    feeds = SourcesLoader().get_sources('curated')
    assert feeds
    assert all(feed['url'].startswith('https://') for feed in feeds.values())


def test_raw_article_timestamps_are_utc():
    def raw(published_at):
        return RawArticle("h", "d", "https://example.com/h", "Reuters", published_at, FetchLayer.LAYER1_RSS)

    naive = raw(datetime(2026, 3, 2, 9, 30))
    assert naive.published_at == datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)
    offset = raw(datetime(2026, 3, 2, 11, 30, tzinfo=timezone(timedelta(hours=2))))
    assert offset.published_at.tzinfo == timezone.utc
    assert offset.published_at.hour == 9
