"""Dotted field path access for documents."""

from __future__ import annotations

from typing import Any, Mapping

MISSING: Any = object()


def get_value(document: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Read a possibly nested field using a dotted path.

    Args:
        document: Document mapping.
        path: Field path such as `address.city`.
        default: Value returned when any path segment is absent.

    Returns:
        Field value or `default`.
    """
    current: Any = document
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
    return current
