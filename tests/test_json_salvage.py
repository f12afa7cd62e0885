from __future__ import annotations

from deep_research.models.research import Query
from deep_research.services.json_salvage import (
    STRATEGIES,
    clean_text,
    coerce_queries,
    normalize_quotes,
    parse_structured,
    quote_bare_keys,
    strip_code_fence,
    trim_to_json,
    try_strategy,
)


def test_parse_structured_valid_json():
    value = parse_structured('[{"query":"a","researchGoal":"b"}]', [])
    assert value == [{"query": "a", "researchGoal": "b"}]


def test_parse_structured_returns_default_for_plain_text():
    assert parse_structured("not json", []) == []


def test_parse_structured_strips_code_fence():
    assert parse_structured("```json\n[]\n```", []) == []


def test_parse_structured_trims_surrounding_prose():
    text = 'Here are the queries:\n[{"query": "x", "researchGoal": "y"}]\nHope this helps!'
    assert parse_structured(text, []) == [{"query": "x", "researchGoal": "y"}]


def test_parse_structured_normalizes_single_quotes():
    assert parse_structured("[{'query': 'a', 'researchGoal': 'b'}]", []) == [
        {"query": "a", "researchGoal": "b"}
    ]


def test_parse_structured_quotes_bare_keys():
    assert parse_structured('{query: "a", researchGoal: "b"}', {}) == {
        "query": "a",
        "researchGoal": "b",
    }


def test_parse_structured_never_raises_on_non_text():
    sentinel = object()
    assert parse_structured(None, sentinel) is sentinel
    assert parse_structured(42, sentinel) is sentinel


def test_strategies_are_tagged_in_order():
    assert [s.name for s in STRATEGIES] == ["as_is", "double_quotes", "quoted_keys"]


def test_each_strategy_independently():
    ok, value = try_strategy(STRATEGIES[0], '{"a": 1}')
    assert ok and value == {"a": 1}

    ok, _ = try_strategy(STRATEGIES[0], "{'a': 1}")
    assert not ok
    ok, value = try_strategy(STRATEGIES[1], "{'a': 1}")
    assert ok and value == {"a": 1}

    ok, value = try_strategy(STRATEGIES[2], "{a: 1}")
    assert ok and value == {"a": 1}


def test_cleaning_helpers():
    assert strip_code_fence("```json\n[1]\n```") == "[1]"
    assert strip_code_fence("[1]") == "[1]"
    assert trim_to_json("noise {\"a\": [1]} tail") == '{"a": [1]}'
    assert trim_to_json("no brackets") == "no brackets"
    assert clean_text("```\nprefix [1, 2] suffix\n```") == "[1, 2]"
    assert normalize_quotes("{'a': 'b'}") == '{"a": "b"}'
    assert quote_bare_keys("{a: 1, b_2: 2}") == '{"a": 1,"b_2": 2}'


def test_coerce_queries_accepts_lists_and_wrapped_objects():
    parsed = [
        {"query": "  first   query ", "researchGoal": "goal one"},
        {"text": "second", "goal": "goal two"},
        {"query": "", "researchGoal": "dropped"},
        "not a dict",
    ]
    assert coerce_queries(parsed) == [
        Query(text="first query", goal="goal one"),
        Query(text="second", goal="goal two"),
    ]
    assert coerce_queries({"queries": [{"query": "q"}]}) == [Query(text="q", goal="")]


def test_coerce_queries_rejects_other_shapes():
    assert coerce_queries("text") == []
    assert coerce_queries(None) == []
    assert coerce_queries({"other": 1}) == []
