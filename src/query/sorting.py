"""Multi-key document ordering.

Order tokens look like `"field"`, `"field ASC"`, or `"field DESC"`.
Documents missing a sort key always sort after documents that have it,
whichever direction the key uses.
"""

from __future__ import annotations

from functools import cmp_to_key
import math
from typing import Any, Sequence

from core.constants import SORT_ASCENDING, SORT_DESCENDING
from core.errors import MemstoreQueryError
from core.types import Document, SortKey
from query.field_path import MISSING, get_value
from query.predicate import compare_values


def parse_order(order: str | Sequence[str]) -> tuple[SortKey, ...]:
    """Parse an order spec into sort keys.

    Args:
        order: One token, a comma-separated token string, or a list of tokens.

    Returns:
        Parsed sort keys in priority order.

    Raises:
        MemstoreQueryError: If a token has an unrecognized direction.
    """
    tokens = [order] if isinstance(order, str) else list(order)
    sort_keys: list[SortKey] = []
    for token in tokens:
        if not isinstance(token, str):
            raise MemstoreQueryError(
                f"Invalid order token {token!r}: expected a string like 'field DESC'."
            )
        for part in token.split(","):
            if part.strip():
                sort_keys.append(_parse_token(part))
    return tuple(sort_keys)


def order_documents(documents: list[Document], sort_keys: Sequence[SortKey]) -> list[Document]:
    """Return a new list of documents ordered by the sort keys."""
    if not sort_keys:
        return list(documents)

    def _compare(left: Document, right: Document) -> int:
        for sort_key in sort_keys:
            result = _compare_key(left, right, sort_key)
            if result != 0:
                return result
        return 0

    return sorted(documents, key=cmp_to_key(_compare))


def _parse_token(token: str) -> SortKey:
    words = token.split()
    if len(words) == 1:
        return SortKey(key=words[0])
    direction = words[-1].upper()
    if len(words) == 2 and direction in (SORT_ASCENDING, SORT_DESCENDING):
        return SortKey(key=words[0], descending=direction == SORT_DESCENDING)
    raise MemstoreQueryError(
        f"Invalid order token {token.strip()!r}: expected 'field', 'field ASC', or 'field DESC'."
    )


def _compare_key(left: Document, right: Document, sort_key: SortKey) -> int:
    left_value = _sort_value(left, sort_key.key)
    right_value = _sort_value(right, sort_key.key)
    if left_value is MISSING and right_value is MISSING:
        return 0
    if left_value is MISSING:
        return 1
    if right_value is MISSING:
        return -1
    result = compare_values(left_value, right_value)
    if math.isnan(result) or result == 0:
        return 0
    sign = 1 if result > 0 else -1
    return -sign if sort_key.descending else sign


def _sort_value(document: Document, key: str) -> Any:
    value = get_value(document, key, MISSING)
    return MISSING if value is None else value
