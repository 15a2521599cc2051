import asyncio
import json

from fakes import FakeGenerator
from newsdesk.backend.collectors.contextual import ContextualSearcher
from newsdesk.backend.collectors.entities import collect_entities
from newsdesk.shared.types.parsing import Ok, ParseFailure
from newsdesk.shared.types.results import FetchLayer, TrackingRequest

RESULTS = {
    "results": [
        {
            "headline": "Acme Corp wins defense contract",
            "description": "The award expands its aerospace unit.",
            "sourceUrl": "https://www.wsj.com/articles/acme-contract",
            "sourceName": "Wall Street Journal",
            "publishedAt": "2026-03-01",
            "relatedEntity": "Acme Corp"
        },
        {"headline": "", "sourceUrl": "https://example.com/empty"},
        "not an object",
        {"headline": "Jane Doe interview", "sourceUrl": "javascript:void(0)", "publishedAt": "yesterday-ish"}
    ]
}


def test_prompt_lists_entities_and_window(entities):
    prompt = ContextualSearcher(FakeGenerator(), {'window_hours': 72}).build_prompt(entities)
    assert "- Acme Corp" in prompt
    assert "- Jane Doe (CEO)" in prompt
    assert "last 3 days" in prompt


def test_prompt_caps_people():
    people = [f"Person {chr(65 + i)}" for i in range(12)]
    entity_set = collect_entities([TrackingRequest.from_dict({'owner': 'A', 'people': people})])
    prompt = ContextualSearcher(FakeGenerator(), {'max_people': 10}).build_prompt(entity_set)
    assert "- Person J" in prompt
    assert "- Person K" not in prompt


def test_parse_response_skips_bad_rows(now):
    searcher = ContextualSearcher(FakeGenerator())
    result = searcher.parse_response(json.dumps(RESULTS), now=now)
    assert isinstance(result, Ok)
    first, second = result.value

    assert first.source_name == "Wall Street Journal"
    assert first.fetch_layer == FetchLayer.LAYER2_LLM
    assert first.published_at.date().isoformat() == "2026-03-01"
    assert first.query_used == "Acme Corp"

    assert second.source_url == ''
    assert second.source_name == 'Web Search'
    assert second.published_at == now


def test_parse_response_failure_is_tagged():
    result = ContextualSearcher(FakeGenerator()).parse_response("No news found today.")
    assert isinstance(result, ParseFailure)


def test_search_uses_web_search_once(entities):
    generator = FakeGenerator([json.dumps(RESULTS)])
    articles = asyncio.run(ContextualSearcher(generator).search(entities))
    assert len(articles) == 2
    assert len(generator.calls) == 1
    assert generator.calls[0]['web_search'] is True


def test_search_never_raises(entities):
    assert asyncio.run(ContextualSearcher(FakeGenerator(fail=True)).search(entities)) == []
    assert asyncio.run(ContextualSearcher(FakeGenerator([RuntimeError("boom")])).search(entities)) == []
    assert asyncio.run(ContextualSearcher(FakeGenerator(["```json\n{\"results\": [\n"])).search(entities)) == []


def test_disabled_searcher_makes_no_call(entities):
    generator = FakeGenerator([json.dumps(RESULTS)])
    assert asyncio.run(ContextualSearcher(generator, {'enabled': False}).search(entities)) == []
    assert generator.calls == []


def test_search_finds_results_after_prose_with_stray_quote(entities):
    reply = 'I searched for news on Acme\'s 12" wafer line.\n' + json.dumps({"results": [RESULTS["results"][0]]})
    articles = asyncio.run(ContextualSearcher(FakeGenerator([reply])).search(entities))
    assert [a.headline for a in articles] == ["Acme Corp wins defense contract"]
