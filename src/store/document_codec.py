"""Document serialization and post-read coercion.

Documents are stored as JSON strings. Datetimes and geo points are
written in transportable forms and re-typed on read from the model's
declared property types.
"""

from __future__ import annotations

from datetime import date
import json
from typing import Any, Callable, Mapping

from core.date_values import format_datetime, parse_datetime
from core.model_registry import numeric_id
from core.types import Document, GeoPoint


def serialize_document(document: Mapping[str, Any]) -> str:
    """Serialize a document into its stored JSON string.

    Callable values are skipped.
    """
    payload = {key: value for key, value in document.items() if not callable(value)}
    return json.dumps(payload, default=_json_default, sort_keys=False)


def deserialize_document(raw_document: str | Mapping[str, Any]) -> Document:
    """Parse a stored JSON string back into a mutable document."""
    if isinstance(raw_document, Mapping):
        return dict(raw_document)
    return dict(json.loads(raw_document))


def coerce_document(document: Document, property_types: Mapping[str, str]) -> Document:
    """Re-type declared fields in place and return the document.

    Values that cannot be converted are left as stored. None values
    are never coerced.
    """
    for key, value in document.items():
        if value is None:
            continue
        coercer = COERCERS.get(property_types.get(key, "any"))
        if coercer is not None:
            document[key] = coercer(value)
    return document


def _json_default(value: Any) -> Any:
    if isinstance(value, date):
        return format_datetime(value)
    if isinstance(value, GeoPoint):
        return value.to_payload()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _coerce_date(value: Any) -> Any:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        parsed = parse_datetime(value)
        return value if parsed is None else parsed
    return value


def _coerce_number(value: Any) -> Any:
    numeric_value = numeric_id(value)
    if numeric_value is None:
        return value
    if isinstance(value, float):
        return value
    return int(numeric_value) if numeric_value.is_integer() else numeric_value


COERCERS: dict[str, Callable[[Any], Any]] = {
    "boolean": bool,
    "date": _coerce_date,
    "number": _coerce_number,
}
