"""
Tests for nested query-string decoding
"""

import pytest

from httpin.http.qs import parse_nested, split_key


@pytest.mark.parametrize(
    "key,expected",
    [
        ("a", ["a"]),
        ("a[b]", ["a", "[b]"]),
        ("a[b][c]", ["a", "[b]", "[c]"]),
        ("a[]", ["a", "[]"]),
        ("[b]", ["[b]"]),
        ("a[b][c][d][e][f][g][h]", ["a", "[b]", "[c]", "[d]", "[e]", "[f]", "[[g][h]]"]),
    ],
)
def test_split_key(key, expected):
    assert split_key(key) == expected


def test_flat_keys_and_duplicates():
    assert parse_nested([("a", "1"), ("b", "2"), ("a", "3")]) == {"a": ["1", "3"], "b": "2"}


def test_nested_objects():
    items = [("user[name]", "ada"), ("user[langs][0]", "en"), ("user[address][city]", "London")]
    assert parse_nested(items) == {"user": {"name": "ada", "langs": ["en"], "address": {"city": "London"}}}


def test_bracket_arrays():
    assert parse_nested([("a[]", "x"), ("a[]", "y")]) == {"a": ["x", "y"]}
    assert parse_nested([("a[]", "x")]) == {"a": ["x"]}


def test_indexed_arrays_are_compacted():
    assert parse_nested([("a[1]", "y"), ("a[0]", "x")]) == {"a": ["x", "y"]}
    assert parse_nested([("a[5]", "only")]) == {"a": ["only"]}


def test_index_over_limit_makes_object():
    assert parse_nested([("a[21]", "x")]) == {"a": {"21": "x"}}
    assert parse_nested([("a[21]", "x")], array_limit=100) == {"a": ["x"]}


def test_array_of_objects():
    items = [("rows[0][id]", "1"), ("rows[0][name]", "a"), ("rows[1][id]", "2")]
    assert parse_nested(items) == {"rows": [{"id": "1", "name": "a"}, {"id": "2"}]}


def test_mixing_array_and_object_keys():
    assert parse_nested([("a[0]", "x"), ("a[b]", "y")]) == {"a": {"0": "x", "b": "y"}}


def test_scalar_then_object():
    assert parse_nested([("a", "x"), ("a[b]", "y")]) == {"a": ["x", {"b": "y"}]}


def test_depth_limit_keeps_remainder_as_key():
    parsed = parse_nested([("a[b][c][d][e][f][g]", "deep")])
    assert parsed == {"a": {"b": {"c": {"d": {"e": {"f": {"[g]": "deep"}}}}}}}


def test_leading_zero_index_is_a_key():
    assert parse_nested([("a[01]", "x")]) == {"a": {"01": "x"}}
