"""Unit tests for predicate evaluation."""

from __future__ import annotations

from datetime import datetime, timezone
import math
import re

import pytest

from core.errors import MemstoreGeoError, MemstoreQueryError
from query.predicate import (
    PredicateEvaluator,
    compare_values,
    like_to_pattern,
    matches,
    string_form,
    validate_where,
)


def _person(**fields: object) -> dict[str, object]:
    document: dict[str, object] = {"name": "John Lennon", "seq": 0}
    document.update(fields)
    return document


def test_matches_implicit_and_over_fields() -> None:
    """Every top-level entry should have to match."""
    document = _person(role="lead")

    assert matches({"name": "John Lennon", "role": "lead"}, document)
    assert not matches({"name": "John Lennon", "role": "bass"}, document)


def test_matches_and_or_composition() -> None:
    """Logical lists should recurse with the expected semantics."""
    document = _person(seq=3)

    assert matches({"or": [{"seq": 1}, {"seq": 3}]}, document)
    assert not matches({"and": [{"seq": 3}, {"name": "Ringo Starr"}]}, document)


def test_equality_is_loose_across_types() -> None:
    """String and number forms of a value should compare equal."""
    assert matches({"seq": "0"}, _person())
    assert matches({"vip": "true"}, _person(vip=True))


def test_none_condition_matches_only_none() -> None:
    """A None condition should not match present values."""
    assert matches({"nickname": None}, _person())
    assert not matches({"name": None}, _person())


def test_compiled_regex_condition_requires_string_value() -> None:
    """Regex literals should only search string values."""
    assert matches({"name": re.compile(r"^John")}, _person())
    assert not matches({"seq": re.compile(r"0")}, _person())


def test_like_matches_anywhere_in_value() -> None:
    """LIKE patterns should be unanchored with SQL wildcards."""
    assert matches({"name": {"like": "%Len_on"}}, _person())
    assert matches({"name": {"like": "Len"}}, _person())
    assert not matches({"name": {"like": "M%XY"}}, _person())


def test_like_escapes_regex_metacharacters() -> None:
    """Characters other than wildcards should be literal."""
    assert matches({"tag": {"like": "[singer]"}}, _person(tag="[singer]"))
    assert not matches({"tag": {"like": "a.c"}}, _person(tag="abc"))
    assert matches({"tag": {"like": "100\\%"}}, _person(tag="100%"))
    assert not matches({"tag": {"like": "100\\%"}}, _person(tag="1000"))


def test_nlike_and_ilike_variants() -> None:
    """Negated and case-insensitive LIKE forms should behave accordingly."""
    document = _person(name="Pete Best")

    assert matches({"name": {"nlike": "%St%"}}, document)
    assert matches({"name": {"ilike": "%st%"}}, document)
    assert not matches({"name": {"nilike": "%BEST"}}, document)


def test_list_operators() -> None:
    """inq and nin should use loose equality against the list."""
    document = _person(seq=5)

    assert matches({"seq": {"inq": [0, 1, "5"]}}, document)
    assert not matches({"seq": {"nin": [2, 5]}}, document)


def test_range_operators_combine() -> None:
    """All range operators in one condition should have to hold."""
    document = _person(order=4)

    assert matches({"order": {"gt": 3, "lte": 4}}, document)
    assert not matches({"order": {"gt": 3, "lt": 4}}, document)
    assert matches({"order": {"between": [4, 6]}}, document)


def test_range_operators_compare_dates_with_strings() -> None:
    """Datetime values should compare against ISO-8601 strings."""
    document = _person(birthday=datetime(1980, 12, 8, tzinfo=timezone.utc))

    assert matches({"birthday": {"lt": "1990-01-01T00:00:00.000Z"}}, document)
    assert not matches({"birthday": {"gte": "1981-01-01"}}, document)


def test_missing_field_fails_range_conditions() -> None:
    """Comparisons against a missing field should not match."""
    assert not matches({"order": {"gte": 0}}, _person())


def test_neq_treats_incomparable_values_as_match_by_default() -> None:
    """The default evaluator should match neq against a missing field."""
    evaluator = PredicateEvaluator()

    assert evaluator.matches({"order": {"neq": 4}}, _person())
    assert not evaluator.matches({"seq": {"neq": "0"}}, _person())


def test_neq_strict_mode_excludes_incomparable_values() -> None:
    """Strict evaluators should never match neq against a missing field."""
    evaluator = PredicateEvaluator(neq_incomparable_matches=False)

    assert not evaluator.matches({"order": {"neq": 4}}, _person())
    assert evaluator.matches({"seq": {"neq": 4}}, _person())


def test_array_values_match_any_element() -> None:
    """A list field should match when any element satisfies the condition."""
    document = _person(children=["Sean", "Julian"])

    assert matches({"children": "Julian"}, document)
    assert matches({"children": {"regexp": "/^s/i"}}, document)
    assert not matches({"children": "Dhani"}, document)


def test_neq_over_empty_array_matches() -> None:
    """An empty list should satisfy neq."""
    assert matches({"children": {"neq": "Dhani"}}, _person(children=[]))


def test_dotted_keys_match_embedded_lists() -> None:
    """Dotted keys should reach into lists of embedded objects."""
    document = _person(
        friends=[{"name": "Paul McCartney"}, {"name": "Ringo Starr"}],
        address={"city": "San Jose", "tags": [{"tag": "business"}, {"tag": "rent"}]},
    )

    assert matches({"friends.name": "Ringo Starr"}, document)
    assert matches({"address.city": "San Jose"}, document)
    assert matches({"address.tags.tag": "rent"}, document)
    assert not matches({"address.tags.tag": "lease"}, document)


def test_near_condition_always_matches() -> None:
    """Near-clauses are handled by the geo stage, not predicates."""
    assert matches({"location": {"near": [0, 0], "maxDistance": 1}}, _person())


def test_validate_where_rejects_bad_operator_values() -> None:
    """Malformed operator values should fail before scanning."""
    with pytest.raises(MemstoreQueryError, match="inq"):
        validate_where({"seq": {"inq": 5}})
    with pytest.raises(MemstoreQueryError, match="between"):
        validate_where({"seq": {"between": [1]}})
    with pytest.raises(MemstoreQueryError, match="like"):
        validate_where({"name": {"like": 5}})
    with pytest.raises(MemstoreQueryError, match="or"):
        validate_where({"or": {"seq": 1}})
    with pytest.raises(MemstoreQueryError, match="regexp"):
        validate_where({"name": {"regexp": "("}})


def test_compare_values_three_way() -> None:
    """Compare should order by runtime type and report incomparable pairs."""
    assert compare_values(None, None) == 0
    assert math.isnan(compare_values(None, 1))
    assert compare_values(5, 3) == 2
    assert compare_values("a", "b") < 0
    assert compare_values(True, False) == 1
    assert math.isnan(compare_values({"a": 1}, {"a": 2}))


def test_like_to_pattern_translates_wildcards() -> None:
    """Percent and underscore should become regex wildcards."""
    pattern = like_to_pattern("J_hn%")

    assert pattern.pattern == "J.hn.*"


def test_string_form_normalizes_scalars() -> None:
    """String forms should match loose comparison expectations."""
    assert string_form(False) == "false"
    assert string_form(3.0) == "3"
    assert string_form(datetime(2020, 1, 2)) == "2020-01-02T00:00:00.000Z"


def test_validate_where_rejects_multiple_near_clauses() -> None:
    """Validation should enforce a single near-clause per predicate."""
    where = {
        "or": [
            {"home": {"near": [40.7, -74.0]}},
            {"office": {"near": [42.3, -71.0]}},
        ]
    }

    with pytest.raises(MemstoreGeoError):
        validate_where(where)
