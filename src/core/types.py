"""Shared typed models.

This module defines immutable data models used by the query,
store, and connector layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Mapping

from core.constants import DEFAULT_DISTANCE_UNIT, DEFAULT_ID_NAME, DEFAULT_ID_TYPE

Document = dict[str, Any]


@dataclass(frozen=True)
class ModelDefinition:
    """Model metadata consumed by the store.

    Attributes:
        name: Model name used by callers.
        properties: Declared property type per field name.
        id_names: Id field name(s); the first one keys the collection.
        id_type: Declared type of the primary id field.
        collection: Optional collection alias shared with other models.
    """

    name: str
    properties: Mapping[str, str] = field(default_factory=dict)
    id_names: tuple[str, ...] = (DEFAULT_ID_NAME,)
    id_type: str = DEFAULT_ID_TYPE
    collection: str | None = None

    @property
    def collection_name(self) -> str:
        """Collection the model reads and writes."""
        return self.collection or self.name

    @property
    def primary_id_name(self) -> str:
        """Id field used as the storage key."""
        return self.id_names[0]


@dataclass(frozen=True)
class GeoPoint:
    """Validated geographic coordinate.

    Attributes:
        lat: Latitude in decimal degrees.
        lng: Longitude in decimal degrees.
    """

    lat: float
    lng: float

    def to_payload(self) -> dict[str, float]:
        """Return a JSON-safe mapping."""
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class NearSpec:
    """Single near-clause extracted from a predicate tree.

    Attributes:
        key: Field path holding the document location.
        near: Origin point.
        max_distance: Optional upper distance bound.
        min_distance: Optional lower distance bound.
        unit: Distance unit for the bounds.
    """

    key: str
    near: GeoPoint
    max_distance: float | None = None
    min_distance: float | None = None
    unit: str = DEFAULT_DISTANCE_UNIT


@dataclass(frozen=True)
class SortKey:
    """One parsed order token.

    Attributes:
        key: Field path to compare.
        descending: Whether the comparison result is reversed.
    """

    key: str
    descending: bool = False


@dataclass(frozen=True)
class QueryFilter:
    """Parsed query filter.

    Attributes:
        where: Predicate tree, or None to match everything.
        order: Parsed sort keys, or None for default id ordering.
        fields: Field names to keep in each result, or None for all.
        limit: Maximum result count, or None for no limit.
        skip: Number of leading results to drop.
        include: Relation include spec handed to the include resolver.
    """

    where: Mapping[str, Any] | None = None
    order: tuple[SortKey, ...] | None = None
    fields: tuple[str, ...] | None = None
    limit: int | None = None
    skip: int = 0
    include: Any = None


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a mutating store operation.

    The in-memory effect is applied before this object is returned.
    `durable` resolves once the backing file reflects the mutation.

    Attributes:
        value: Operation result (id, document, or affected count).
        durable: Future resolved with `value` after the flush completes.
        is_new_instance: Whether an upsert-style call created a document.
    """

    value: Any
    durable: Future
    is_new_instance: bool | None = None

    def wait(self, timeout: float | None = None) -> Any:
        """Block until the mutation is durable and return its value.

        Raises:
            MemstorePersistenceError: If the flush failed.
        """
        return self.durable.result(timeout=timeout)
