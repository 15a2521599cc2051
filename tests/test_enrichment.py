import asyncio
import json

from fakes import FakeGenerator, make_raw
from newsdesk.backend.collectors.entities import collect_entities
from newsdesk.backend.processors.enrichment_agent import Enricher
from newsdesk.shared.types.results import (
    ArticleCategory, CoverageGap, EntityKind, EnrichmentMode, FetchLayer, MatchType, TrackingRequest
)


def _raw_articles():
    return [
        make_raw("Acme Corp acquires Gamma Tools", source="Reuters", hours_ago=2),
        make_raw("Gamma Tools sold to Acme", source="Bloomberg", hours_ago=3),
        make_raw("Jane Doe to speak at summit", source="Trade Weekly", hours_ago=5),
    ]


ENRICHED = {
    "articles": [
        {
            "id": 2, "headline": "Jane Doe to speak at summit", "person": "Jane Doe",
            "category": "Speaking", "priorityScore": "n/a", "priority": "high", "matchType": "exact"
        },
        {
            "id": 0, "mergedIds": [1], "headline": "Acme Corp acquires Gamma Tools",
            "shortSummary": "Acme buys Gamma.", "longSummary": "Acme Corp agreed to buy Gamma Tools.",
            "whyItMatters": "Integration work ahead.", "company": "acme corp", "person": None,
            "category": "M&A / Deal Activity", "priorityScore": 14, "priority": "low",
            "matchType": "exact", "revenueOwners": ["Sam Ortega", "Someone Else", 7]
        }
    ],
    "coverageGaps": [{"entity": "Made Up Co"}]
}


def test_enrich_normalizes_rows(entities):
    articles = _raw_articles()
    generator = FakeGenerator([json.dumps(ENRICHED)])
    outcome = asyncio.run(Enricher(generator).enrich(articles, entities))

    assert outcome.mode == EnrichmentMode.LLM
    assert generator.calls[0]['json_mode'] is True
    assert [a.headline for a in outcome.articles] == [
        "Acme Corp acquires Gamma Tools", "Jane Doe to speak at summit"
    ]

    deal, talk = outcome.articles
    assert deal.priority_score == 10
    assert deal.priority_level == "high"
    assert deal.category == ArticleCategory.MA_DEAL_ACTIVITY
    assert deal.matched_company == "Acme Corp"
    assert deal.match_type == MatchType.EXACT
    assert deal.primary_source_url == articles[0].source_url
    assert [s.source_name for s in deal.sources] == ["Reuters", "Bloomberg"]
    assert deal.tracking_owners == ["Dana Whitfield", "Sam Ortega"]
    assert deal.fetch_layer == FetchLayer.LAYER1_RSS

    assert talk.priority_score == 8
    assert talk.category == ArticleCategory.NEWS
    assert talk.matched_person == "Jane Doe"
    assert talk.short_summary.startswith("Jane Doe to speak at summit")
    assert talk.tracking_owners == ["Dana Whitfield"]


def test_coverage_gaps_computed_locally(entities):
    generator = FakeGenerator([json.dumps(ENRICHED)])
    outcome = asyncio.run(Enricher(generator).enrich(_raw_articles(), entities))
    assert outcome.coverage_gaps == [
        CoverageGap(entity="Beta Industries", kind=EntityKind.COMPANY, tracking_owner="Dana Whitfield")
    ]


def test_scores_and_sources_always_valid(entities):
    generator = FakeGenerator([json.dumps(ENRICHED)])
    outcome = asyncio.run(Enricher(generator).enrich(_raw_articles(), entities))
    for article in outcome.articles:
        assert 1 <= article.priority_score <= 10
        assert article.sources
        assert article.primary_source_url


def test_exact_match_downgraded_when_name_absent(entities):
    articles = [make_raw("Industrial deal closes in Midwest", description="Terms were not disclosed.")]
    row = {"id": 0, "company": "Acme Corp", "matchType": "exact", "priorityScore": 6}
    generator = FakeGenerator([json.dumps({"articles": [row]})])
    outcome = asyncio.run(Enricher(generator).enrich(articles, entities))
    article = outcome.articles[0]
    assert article.matched_company == "Acme Corp"
    assert article.match_type == MatchType.CONTEXTUAL


def test_rows_sharing_url_merge_and_output_never_exceeds_input(entities):
    articles = [make_raw("Acme Corp opens Texas warehouse")]
    rows = [
        {"id": 0, "priorityScore": 4, "company": "Acme Corp"},
        {"id": 0, "priorityScore": 7, "sourceName": "Wire copy"},
        {"id": 99, "headline": "Invented story"},
    ]
    generator = FakeGenerator([json.dumps({"articles": rows})])
    outcome = asyncio.run(Enricher(generator).enrich(articles, entities))
    assert len(outcome.articles) == 1
    assert outcome.articles[0].priority_score == 7
    assert outcome.articles[0].priority_level == "high"


def test_truncated_response_is_repaired(entities):
    articles = _raw_articles()
    text = json.dumps(ENRICHED)
    # cut inside the second article
    truncated = text[:text.index('"whyItMatters"')]
    outcome = asyncio.run(Enricher(FakeGenerator([truncated])).enrich(articles, entities))
    assert outcome.mode == EnrichmentMode.REPAIRED
    assert [a.headline for a in outcome.articles] == ["Jane Doe to speak at summit"]


def test_service_failure_falls_back_to_raw(entities):
    articles = _raw_articles()
    outcome = asyncio.run(Enricher(FakeGenerator(fail=True)).enrich(articles, entities))
    assert outcome.mode == EnrichmentMode.FALLBACK
    assert [a.headline for a in outcome.articles] == [a.headline for a in articles]
    for article in outcome.articles:
        assert article.priority_score == 5
        assert article.priority_level == "medium"
        assert article.match_type == MatchType.CONTEXTUAL
        assert article.tracking_owners == ["Dana Whitfield", "Sam Ortega"]
        assert len(article.sources) == 1
    assert outcome.articles[0].matched_company == "Acme Corp"


def test_unrecoverable_response_falls_back(entities):
    outcome = asyncio.run(Enricher(FakeGenerator(["Sorry, I cannot help with that."])).enrich(
        _raw_articles(), entities))
    assert outcome.mode == EnrichmentMode.FALLBACK
    assert len(outcome.articles) == 3


def test_fallback_is_capped(entities):
    articles = [make_raw(f"Unrelated item {i}", hours_ago=i) for i in range(40)]
    enricher = Enricher(FakeGenerator(fail=True), {'fallback_max_articles': 30})
    outcome = asyncio.run(enricher.enrich(articles, entities))
    assert len(outcome.articles) == 30


def test_empty_input_reports_every_entity_as_gap(entities):
    generator = FakeGenerator()
    outcome = asyncio.run(Enricher(generator).enrich([], entities))
    assert outcome.mode == EnrichmentMode.SKIPPED
    assert generator.calls == []
    assert [(g.entity, g.tracking_owner) for g in outcome.coverage_gaps] == [
        ("Acme Corp", "Dana Whitfield"),
        ("Acme Corp", "Sam Ortega"),
        ("Beta Industries", "Dana Whitfield"),
        ("Jane Doe", "Dana Whitfield"),
    ]


def test_gap_without_owner():
    entity_set = collect_entities([TrackingRequest.from_dict({'owner': '', 'people': ['Lee Park']})])
    gaps = Enricher.coverage_gaps([], entity_set)
    assert gaps == [CoverageGap(entity="Lee Park", kind=EntityKind.PERSON, tracking_owner=None)]


def test_ad_hoc_search_uses_web_search_and_drops_rows_without_url():
    entity_set = collect_entities([TrackingRequest.from_dict({'owner': '', 'companies': ['Acme Corp']})])
    rows = [
        {"headline": f"Acme Corp update {i}", "sourceUrl": f"https://example.com/acme/{i}",
         "sourceName": "Reuters", "publishedAt": "2026-03-01", "company": "Acme Corp",
         "priorityScore": i}
        for i in range(12)
    ]
    rows.append({"headline": "No link for this one", "company": "Acme Corp"})
    generator = FakeGenerator([json.dumps({"articles": rows, "coverageGaps": []})])
    outcome = asyncio.run(Enricher(generator).search_entity(entity_set))

    assert generator.calls[0]['web_search'] is True
    assert len(outcome.articles) == 10
    assert all(a.fetch_layer == FetchLayer.LAYER2_LLM for a in outcome.articles)
    assert outcome.articles[0].priority_score == 10
    assert outcome.coverage_gaps == []


def test_ad_hoc_prompt_names_both_subjects():
    prompt = Enricher(FakeGenerator()).build_ad_hoc_prompt("Acme Corp", "Jane Doe")
    assert "Company: Acme Corp" in prompt
    assert "Person: Jane Doe" in prompt
    assert "primarily ABOUT Acme Corp or Jane Doe" in prompt
    assert "definitively ABOUT Acme Corp or Jane Doe" in prompt
