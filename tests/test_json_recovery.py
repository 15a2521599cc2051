from newsdesk.backend.processors.json_recovery import (
    MalformedOutputRecoverer, find_json_object, parse_json_object, strip_code_fences
)
from newsdesk.shared.types.parsing import Ok, ParseFailure

TRUNCATED = (
    '{"articles": ['
    '{"id": 0, "headline": "Acme Corp closes deal"}, '
    '{"id": 1, "headline": "Brace } and \\"quote\\" inside [text]"}, '
    '{"id": 2, "headline": "Cut off mid-str'
)


def test_parse_handles_fences_and_prose():
    text = 'Sure! Here you go:\n```json\n{"articles": [{"id": 0}], "coverageGaps": []}\n```\nThanks.'
    result = parse_json_object(text, 'articles')
    assert isinstance(result, Ok)
    assert result.value['articles'] == [{'id': 0}]


def test_parse_finds_object_by_key_not_first_brace():
    text = '{"note": "preamble"} then {"results": [{"headline": "x"}]}'
    result = parse_json_object(text, 'results')
    assert isinstance(result, Ok)
    assert result.value == {'results': [{'headline': 'x'}]}


def test_parse_failure_is_tagged():
    assert isinstance(parse_json_object('', 'articles'), ParseFailure)
    assert isinstance(parse_json_object('no json here', 'articles'), ParseFailure)
    assert isinstance(parse_json_object(TRUNCATED, 'articles'), ParseFailure)


def test_find_returns_tail_for_truncated_object():
    found = find_json_object(TRUNCATED, 'articles')
    assert found == TRUNCATED


def test_recovery_keeps_only_complete_elements():
    result = MalformedOutputRecoverer().recover(TRUNCATED)
    assert isinstance(result, Ok)
    articles = result.value['articles']
    assert [a['id'] for a in articles] == [0, 1]
    assert articles[1]['headline'] == 'Brace } and "quote" inside [text]'
    assert result.value['coverageGaps'] == []


def test_recovery_when_array_closed_but_object_truncated():
    text = '```json\n{"articles": [{"id": 0, "tags": ["a", "b"]}], "coverageGaps": [{"entity": "Ac'
    result = MalformedOutputRecoverer().recover(text)
    assert isinstance(result, Ok)
    assert result.value == {'articles': [{'id': 0, 'tags': ['a', 'b']}], 'coverageGaps': []}


def test_recovery_without_complete_element_fails():
    result = MalformedOutputRecoverer().recover('{"articles": [{"id": 0, "headline": "trunc')
    assert isinstance(result, ParseFailure)
    assert not result.ok


def test_recovery_with_custom_array_key():
    recoverer = MalformedOutputRecoverer('results', {})
    result = recoverer.recover('{"results": [{"headline": "a"}, {"headline": "b"')
    assert isinstance(result, Ok)
    assert result.value == {'results': [{'headline': 'a'}]}


def test_strip_code_fences():
    assert strip_code_fences('```JSON\n{}\n```') == '{}'


def test_unmatched_quote_in_preamble_does_not_hide_object():
    text = ('I searched for news on Acme\'s 12" wafer line.\n'
            '{"results": [{"headline": "Acme Corp ships 12-inch wafers", "sourceUrl": "https://example.com/a"}]}')
    result = parse_json_object(text, 'results')
    assert isinstance(result, Ok)
    assert result.value['results'][0]['headline'] == "Acme Corp ships 12-inch wafers"


def test_quotes_between_objects_are_prose():
    text = '{"note": "x"} a 3" gap, then {"results": []}'
    assert find_json_object(text, 'results') == '{"results": []}'
