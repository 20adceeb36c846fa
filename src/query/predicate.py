"""Predicate evaluation for where clauses.

This module matches documents against predicate trees: implicit AND
over field entries, `and`/`or` composition, comparison operators,
SQL-style LIKE patterns, and regular expressions. Comparisons follow
loose, type-coercing semantics so that `5` and `"5"` compare equal.
"""

from __future__ import annotations

from datetime import date
import math
import re
from typing import Any, Mapping

from core.constants import (
    LIST_OPERATORS,
    LOGICAL_OPERATORS,
    NEAR_OPERATOR,
    PATTERN_OPERATORS,
    RANGE_OPERATORS,
)
from core.date_values import format_datetime, to_millis
from core.errors import MemstoreQueryError
from query.field_path import get_value
from query.geo import extract_near

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
_REGEX_LITERAL = re.compile(r"^/(?P<body>.*)/(?P<flags>[a-z]*)$", re.DOTALL)


class PredicateEvaluator:
    """Evaluate predicate trees against deserialized documents."""

    def __init__(self, neq_incomparable_matches: bool = True) -> None:
        """Create an evaluator.

        Args:
            neq_incomparable_matches: When true, `neq` treats operands that
                cannot be compared (for example a missing field) as
                different. When false, such pairs never match.
        """
        self._neq_incomparable_matches = neq_incomparable_matches

    def matches(self, where: Mapping[str, Any] | None, document: Mapping[str, Any]) -> bool:
        """Return whether a document satisfies every entry of a predicate."""
        if not where:
            return True
        for key, condition in where.items():
            if key in LOGICAL_OPERATORS and isinstance(condition, list):
                if key == "and":
                    passed = all(self.matches(clause, document) for clause in condition)
                else:
                    passed = any(self.matches(clause, document) for clause in condition)
                if not passed:
                    return False
                continue
            if not self._match_field(document, key, condition):
                return False
        return True

    def test(self, condition: Any, value: Any) -> bool:
        """Test one field value against one condition."""
        if isinstance(condition, re.Pattern):
            return isinstance(value, str) and condition.search(value) is not None
        if isinstance(condition, Mapping):
            return self._test_operator(condition, value)
        if condition is None:
            return value is None
        if value is None:
            return False
        if isinstance(condition, date) or isinstance(value, date):
            return compare_values(value, condition) == 0
        return string_form(condition) == string_form(value)

    def _match_field(self, document: Mapping[str, Any], key: str, condition: Any) -> bool:
        value = get_value(document, key)
        if isinstance(value, list):
            if isinstance(condition, Mapping) and "neq" in condition and not value:
                return True
            return any(self.test(condition, element) for element in value)
        if self.test(condition, value):
            return True
        # `a.b` over a list of embedded objects matches when any element does.
        parent_key, _, child_key = key.partition(".")
        if not child_key:
            return False
        parent = document.get(parent_key)
        child_where = {child_key: condition}
        if isinstance(parent, list):
            return any(
                isinstance(element, Mapping) and self.matches(child_where, element)
                for element in parent
            )
        if isinstance(parent, Mapping):
            return self.matches(child_where, parent)
        return False

    def _test_operator(self, condition: Mapping[str, Any], value: Any) -> bool:
        if "regexp" in condition:
            if value is None:
                return False
            return to_pattern(condition["regexp"]).search(string_form(value)) is not None
        if NEAR_OPERATOR in condition:
            return True
        if "inq" in condition:
            return any(loose_equals(item, value) for item in condition["inq"])
        if "nin" in condition:
            return not any(loose_equals(item, value) for item in condition["nin"])
        if "neq" in condition:
            return self._not_equal(condition["neq"], value)
        if "between" in condition:
            low, high = condition["between"]
            return compare_values(value, low) >= 0 and compare_values(value, high) <= 0
        pattern_operator = next((op for op in PATTERN_OPERATORS if condition.get(op)), None)
        if pattern_operator is not None:
            return _test_pattern(pattern_operator, condition[pattern_operator], value)
        if any(op in condition for op in RANGE_OPERATORS):
            return _test_range(condition, value)
        return dict(condition) == value

    def _not_equal(self, expected: Any, value: Any) -> bool:
        result = compare_values(expected, value)
        if math.isnan(result):
            return self._neq_incomparable_matches
        return result != 0


def matches(where: Mapping[str, Any] | None, document: Mapping[str, Any]) -> bool:
    """Match with the default (compatibility-mode) evaluator."""
    return PredicateEvaluator().matches(where, document)


def validate_where(where: Any) -> None:
    """Reject malformed predicate trees before any document is scanned.

    Every path that scans documents with a predicate calls this first, so
    a tree carrying more than one near-clause never reaches a scan.

    Args:
        where: Predicate tree.

    Raises:
        MemstoreQueryError: If an operator value has the wrong shape.
        MemstoreGeoError: If a near-clause is malformed or repeated.
    """
    _validate_tree(where)
    extract_near(where)


def _validate_tree(where: Any) -> None:
    if where is None:
        return
    if not isinstance(where, Mapping):
        raise MemstoreQueryError(
            f"Invalid where clause: expected object mapping, got {type(where).__name__}."
        )
    for key, condition in where.items():
        if key in LOGICAL_OPERATORS:
            if not isinstance(condition, list):
                raise MemstoreQueryError(
                    f"Invalid '{key}' clause: expected a list of predicates, "
                    f"got {type(condition).__name__}."
                )
            for clause in condition:
                _validate_tree(clause)
            continue
        if isinstance(condition, Mapping):
            _validate_condition(key, condition)


def _validate_condition(key: str, condition: Mapping[str, Any]) -> None:
    for operator in LIST_OPERATORS:
        if operator in condition and not isinstance(condition[operator], (list, tuple)):
            raise MemstoreQueryError(
                f"Invalid '{operator}' value for field '{key}': expected a list."
            )
    if "between" in condition:
        bounds = condition["between"]
        if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
            raise MemstoreQueryError(
                f"Invalid 'between' value for field '{key}': expected a [low, high] list."
            )
    for operator in PATTERN_OPERATORS:
        pattern = condition.get(operator)
        if pattern is not None and not isinstance(pattern, (str, re.Pattern)):
            raise MemstoreQueryError(
                f"Invalid '{operator}' value for field '{key}': "
                "expected a string or compiled regular expression."
            )
    if "regexp" in condition:
        to_pattern(condition["regexp"])


def compare_values(left: Any, right: Any) -> float:
    """Three-way compare two values.

    Returns:
        Negative, zero, or positive like a numeric difference, or NaN
        when the pair cannot be compared.
    """
    if left is None or right is None:
        return 0.0 if left is None and right is None else math.nan
    if isinstance(left, (bool, int, float)):
        return _to_number(left) - _to_number(right)
    if isinstance(left, str):
        if isinstance(right, str):
            return float((left > right) - (left < right))
        if isinstance(right, date):
            return to_millis(left) - to_millis(right)
        if isinstance(right, (bool, int, float)):
            return _to_number(left) - _to_number(right)
        return 0.0 if loose_equals(left, right) else math.nan
    if isinstance(left, date):
        return to_millis(left) - to_millis(right)
    return 0.0 if loose_equals(left, right) else math.nan


def loose_equals(left: Any, right: Any) -> bool:
    """Type-coercing equality used by `inq`, `nin`, and compare fallbacks."""
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, (list, dict)) or isinstance(right, (list, dict)):
        return left == right
    if isinstance(left, date) or isinstance(right, date):
        return to_millis(left) == to_millis(right)
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    scalar_types = (bool, int, float, str)
    if isinstance(left, scalar_types) and isinstance(right, scalar_types):
        return _to_number(left) == _to_number(right)
    return left == right


def string_form(value: Any) -> str:
    """Render a value the way loose string comparison expects."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, date):
        return format_datetime(value)
    if isinstance(value, list):
        return ",".join("" if item is None else string_form(item) for item in value)
    return str(value)


def like_to_pattern(like: str, ignore_case: bool = False) -> re.Pattern[str]:
    """Convert a SQL LIKE pattern into a compiled regular expression.

    `%` matches any run of characters, `_` any single character, and a
    backslash makes the following character literal. The result is
    unanchored, matching LIKE patterns anywhere in the value.
    """
    parts: list[str] = []
    index = 0
    while index < len(like):
        char = like[index]
        if char == "\\":
            index += 1
            if index < len(like):
                parts.append(re.escape(like[index]))
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("".join(parts), re.IGNORECASE if ignore_case else 0)


def to_pattern(raw_pattern: Any) -> re.Pattern[str]:
    """Compile a regexp operator value.

    Accepts compiled patterns, `/body/flags` literals, and plain strings.

    Raises:
        MemstoreQueryError: If the value is not a valid regular expression.
    """
    if isinstance(raw_pattern, re.Pattern):
        return raw_pattern
    if not isinstance(raw_pattern, str):
        raise MemstoreQueryError(
            f"Invalid 'regexp' value: expected string or pattern, got {type(raw_pattern).__name__}."
        )
    body, flags = raw_pattern, 0
    literal = _REGEX_LITERAL.match(raw_pattern)
    if literal:
        body = literal.group("body")
        for flag in literal.group("flags"):
            flags |= _REGEX_FLAGS.get(flag, 0)
    try:
        return re.compile(body, flags)
    except re.error as error:
        raise MemstoreQueryError(
            f"Invalid 'regexp' value {raw_pattern!r}: {error}."
        ) from error


def _test_pattern(operator: str, raw_pattern: Any, value: Any) -> bool:
    ignore_case = operator in ("ilike", "nilike")
    if isinstance(raw_pattern, re.Pattern):
        pattern = raw_pattern
        if ignore_case:
            pattern = re.compile(raw_pattern.pattern, raw_pattern.flags | re.IGNORECASE)
    else:
        pattern = like_to_pattern(str(raw_pattern), ignore_case=ignore_case)
    found = value is not None and pattern.search(string_form(value)) is not None
    return found if operator in ("like", "ilike") else not found


def _test_range(condition: Mapping[str, Any], value: Any) -> bool:
    if "gt" in condition and not compare_values(value, condition["gt"]) > 0:
        return False
    if "gte" in condition and not compare_values(value, condition["gte"]) >= 0:
        return False
    if "lt" in condition and not compare_values(value, condition["lt"]) < 0:
        return False
    if "lte" in condition and not compare_values(value, condition["lte"]) <= 0:
        return False
    return True


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return 0.0
        try:
            return float(stripped)
        except ValueError:
            return math.nan
    if isinstance(value, date):
        return to_millis(value)
    return math.nan
