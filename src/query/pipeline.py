"""Query pipeline over collection snapshots.

This module parses filters and runs the fixed query stage order:
default ordering, sort, geo filtering, predicate filtering, field
projection, then pagination. Include resolution is left to callers.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from core.errors import MemstoreQueryError
from core.types import Document, QueryFilter, SortKey
from query.geo import apply_near, extract_near
from query.predicate import PredicateEvaluator, validate_where
from query.sorting import order_documents, parse_order

_FILTER_KEYS = frozenset({"where", "order", "fields", "limit", "skip", "offset", "include"})


def parse_filter(raw_filter: QueryFilter | Mapping[str, Any] | None) -> QueryFilter:
    """Parse a plain filter mapping into a typed QueryFilter.

    Args:
        raw_filter: Filter mapping, an already-parsed filter, or None.

    Returns:
        Typed filter.

    Raises:
        MemstoreQueryError: If a filter entry is malformed.
    """
    if raw_filter is None:
        return QueryFilter()
    if isinstance(raw_filter, QueryFilter):
        return raw_filter
    if not isinstance(raw_filter, Mapping):
        raise MemstoreQueryError(
            f"Invalid filter: expected object mapping, got {type(raw_filter).__name__}."
        )
    unknown_keys = sorted(set(raw_filter) - _FILTER_KEYS)
    if unknown_keys:
        raise MemstoreQueryError(
            f"Unsupported filter keys: {', '.join(unknown_keys)}. "
            f"Use only: {', '.join(sorted(_FILTER_KEYS))}."
        )
    raw_order = raw_filter.get("order")
    raw_skip = raw_filter.get("skip")
    if raw_skip is None:
        raw_skip = raw_filter.get("offset")
    return QueryFilter(
        where=raw_filter.get("where"),
        order=parse_order(raw_order) if raw_order else None,
        fields=_parse_fields(raw_filter.get("fields")),
        limit=_parse_count(raw_filter.get("limit"), "limit"),
        skip=_parse_count(raw_skip, "skip") or 0,
        include=raw_filter.get("include"),
    )


def run_query(
    documents: list[Document],
    query_filter: QueryFilter,
    id_names: Sequence[str],
    evaluator: PredicateEvaluator,
) -> list[Document]:
    """Run a parsed filter over a document snapshot.

    Args:
        documents: Deserialized documents; never mutated.
        query_filter: Parsed filter.
        id_names: Model id field(s), used for default ordering and projection.
        evaluator: Predicate evaluator.

    Returns:
        New list holding the requested page.

    Raises:
        MemstoreQueryError: If the predicate is malformed.
    """
    where = query_filter.where
    validate_where(where)
    near_spec = extract_near(where)
    sort_keys = query_filter.order or tuple(SortKey(key=name) for name in id_names)
    nodes = order_documents(documents, sort_keys)
    if near_spec is not None:
        nodes = apply_near(nodes, near_spec)
    if where:
        nodes = [node for node in nodes if evaluator.matches(where, node)]
    if query_filter.fields is not None:
        nodes = [_project(node, query_filter.fields, id_names) for node in nodes]
    start = query_filter.skip
    if query_filter.limit:
        return nodes[start : start + query_filter.limit]
    return nodes[start:]


def _project(document: Document, fields: Sequence[str], id_names: Sequence[str]) -> Document:
    kept_names = list(fields) + [name for name in id_names if name not in fields]
    return {name: document[name] for name in kept_names if name in document}


def _parse_fields(raw_fields: Any) -> tuple[str, ...] | None:
    """Normalize a fields spec into kept field names.

    A mapping keeps the names set to true; maps that only exclude
    fields are rejected.
    """
    if raw_fields is None:
        return None
    if isinstance(raw_fields, str):
        return (raw_fields,)
    if isinstance(raw_fields, Mapping):
        included = tuple(str(name) for name, keep in raw_fields.items() if keep)
        if included:
            return included
        raise MemstoreQueryError(
            "Invalid fields spec: exclusion-only field maps are not supported. "
            "List the fields to keep."
        )
    if isinstance(raw_fields, Sequence) and all(isinstance(name, str) for name in raw_fields):
        return tuple(raw_fields)
    raise MemstoreQueryError(
        "Invalid fields spec: expected a list of field names or a name -> bool mapping."
    )


def _parse_count(raw_value: Any, name: str) -> int | None:
    if raw_value is None:
        return None
    count: int | None = None
    if isinstance(raw_value, int) and not isinstance(raw_value, bool):
        count = raw_value
    elif isinstance(raw_value, str) and raw_value.strip().isdigit():
        count = int(raw_value.strip())
    if count is None or count < 0:
        raise MemstoreQueryError(
            f"Invalid {name}: expected a non-negative integer, got {raw_value!r}."
        )
    return count
