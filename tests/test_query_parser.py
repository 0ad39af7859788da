"""Tests for the search mini-language parser and lexical query compiler."""

import pytest

from relay_search.intelligence.query_parser import (
    build_lexical_query,
    parse_query,
    split_lexical_query,
    tokenize,
)
from relay_search.models import EntityType, ParsedQuery


def test_parse_full_example():
    parsed = parse_query("type:user #nostr author:abc min_likes:5 hello world")

    assert parsed.entity_type == "user"
    assert parsed.resolved_entity_type is EntityType.USER
    assert dict(parsed.filters) == {"author": "abc", "hashtags": ("nostr",), "min_likes": 5}
    assert parsed.terms == ("hello", "world")


@pytest.mark.parametrize("raw", [
    "",
    "   ",
    "\t\n",
    "type:",
    "#",
    "::::",
    "kind:",
    "min_likes:-1 min_loops:abc",
    "since:1.5 until:1e9",
    "日本語 #タグ author:",
    "a" * 10000,
    "kind:" + "9" * 5000 + " hello",
    "since:-" + "1" * 5000,
])
def test_parse_never_raises_and_keeps_raw(raw):
    parsed = parse_query(raw)
    assert parsed.raw == raw


def test_oversized_numeric_directive_is_dropped():
    parsed = parse_query("kind:" + "9" * 5000 + " hello")
    assert "kind" not in parsed.filters
    assert parsed.terms == ("hello",)


def test_parsed_query_defaults_without_filters():
    query = ParsedQuery("x")
    assert query.terms == ()
    assert dict(query.filters) == {}
    assert query.hashtags == ()


def test_parse_empty_string_defaults():
    parsed = parse_query("")
    assert parsed.terms == ()
    assert parsed.entity_type is None
    assert dict(parsed.filters) == {}


def test_whitespace_runs_are_collapsed():
    assert tokenize("  hello \t\n world  ") == ["hello", "world"]
    assert parse_query("  hello \t\n world  ").terms == ("hello", "world")


def test_numeric_directives():
    parsed = parse_query("kind:1 min_likes:10 min_loops:0 since:1700000000 until:1800000000")
    assert dict(parsed.filters) == {
        "kind": 1,
        "min_likes": 10,
        "min_loops": 0,
        "since": 1700000000,
        "until": 1800000000,
    }
    assert parsed.terms == ()


def test_malformed_numeric_directives_are_dropped():
    parsed = parse_query("kind:abc min_likes:-3 min_loops:2x since:1.5 until: hello")
    assert dict(parsed.filters) == {}
    assert parsed.terms == ("hello",)


def test_hashtags_lowercased_ordered_and_not_deduplicated():
    parsed = parse_query("#Nostr #bitcoin #NOSTR")
    assert parsed.filters["hashtags"] == ("nostr", "bitcoin", "nostr")
    assert parsed.hashtags == ("nostr", "bitcoin", "nostr")
    assert parsed.terms == ()


def test_bare_hash_is_dropped():
    parsed = parse_query("# hello")
    assert "hashtags" not in parsed.filters
    assert parsed.terms == ("hello",)


def test_unknown_prefixes_are_free_terms():
    parsed = parse_query("lang:en foo:bar http://example.com")
    assert parsed.terms == ("lang:en", "foo:bar", "http://example.com")
    assert dict(parsed.filters) == {}


def test_directive_prefix_always_captures_token():
    parsed = parse_query("kind:7 kind:oops")
    # The malformed second ``kind:`` is dropped, not searched as text
    assert parsed.filters["kind"] == 7
    assert parsed.terms == ()


def test_later_directive_overrides_earlier():
    parsed = parse_query("author:alice author:bob type:note type:video")
    assert parsed.filters["author"] == "bob"
    assert parsed.entity_type == "video"


def test_type_is_kept_verbatim_even_when_unknown():
    parsed = parse_query("type:podcast hello")
    assert parsed.entity_type == "podcast"
    assert parsed.resolved_entity_type is None


def test_each_token_classified_once():
    parsed = parse_query("type:video author:abc #tag kind:1 term")
    assert parsed.terms == ("term",)
    assert "author:abc" not in parsed.terms
    assert parsed.filters["hashtags"] == ("tag",)


def test_duplicate_terms_preserved():
    assert parse_query("b a b").terms == ("b", "a", "b")


def test_parsed_query_is_immutable():
    parsed = parse_query("author:abc hello")
    with pytest.raises(TypeError):
        parsed.filters["author"] = "other"
    with pytest.raises(AttributeError):
        parsed.terms = ("x",)


def test_to_dict_serializes_tuples():
    data = parse_query("type:user #nostr hi").to_dict()
    assert data == {
        "raw": "type:user #nostr hi",
        "terms": ["hi"],
        "entity_type": "user",
        "filters": {"hashtags": ["nostr"]},
    }


def test_build_lexical_query_empty():
    assert build_lexical_query([]) == ""


def test_build_lexical_query_prefix_or():
    assert build_lexical_query(["bit", "coin"]) == "bit* OR coin*"
    assert build_lexical_query(["coin", "bit"]) == "coin* OR bit*"
    assert build_lexical_query(["solo"]) == "solo*"


def test_build_lexical_query_single_operator_between_two_terms():
    compiled = build_lexical_query(["a", "b"])
    assert compiled.count(" OR ") == 1
    assert compiled.split(" OR ") == ["a*", "b*"]


def test_split_lexical_query_recovers_prefixes():
    assert split_lexical_query("bit* OR coin*") == ["bit", "coin"]
    assert split_lexical_query("") == []
