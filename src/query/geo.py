"""Geo-proximity support for near queries.

This module parses geo points, computes great-circle distances,
extracts the single near-clause a predicate may carry, and filters
documents to those within range, nearest first.
"""

from __future__ import annotations

import math
import re
from typing import Any, Mapping, Sequence

from core.constants import (
    DEFAULT_DISTANCE_UNIT,
    DEG2RAD,
    EARTH_RADIUS,
    LOGICAL_OPERATORS,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
    NEAR_OPERATOR,
)
from core.errors import MemstoreGeoError
from core.types import Document, GeoPoint, NearSpec
from query.field_path import get_value

_POINT_SEPARATOR = re.compile(r",\s*")


def parse_point(value: Any) -> GeoPoint:
    """Build a validated GeoPoint from a supported input shape.

    Accepted shapes are a GeoPoint, a `[lat, lng]` pair, a mapping with
    `lat` and `lng` keys, and a `"lat,lng"` string.

    Args:
        value: Raw point input.

    Returns:
        Validated point.

    Raises:
        MemstoreGeoError: If the shape, coordinates, or bounds are invalid.
    """
    if isinstance(value, GeoPoint):
        return value
    if isinstance(value, str):
        parts = _POINT_SEPARATOR.split(value.strip())
        if len(parts) != 2:
            raise MemstoreGeoError(
                f"Invalid geo point string {value!r}: expected 'lat,lng'."
            )
        raw_lat, raw_lng = parts
    elif isinstance(value, Mapping):
        if "lat" not in value or "lng" not in value:
            raise MemstoreGeoError(
                "Invalid geo point: mapping must provide both 'lat' and 'lng'."
            )
        raw_lat, raw_lng = value["lat"], value["lng"]
    elif isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        if len(value) != 2:
            raise MemstoreGeoError(
                f"Invalid geo point: expected [lat, lng], got {len(value)} values."
            )
        raw_lat, raw_lng = value
    else:
        raise MemstoreGeoError(
            f"Invalid geo point: unsupported input type {type(value).__name__}. "
            "Use [lat, lng], {'lat': .., 'lng': ..}, or 'lat,lng'."
        )
    lat = _coordinate(raw_lat, "lat")
    lng = _coordinate(raw_lng, "lng")
    if not MIN_LATITUDE <= lat <= MAX_LATITUDE:
        raise MemstoreGeoError(f"Invalid geo point: lat must be within [-90, 90], got {lat}.")
    if not MIN_LONGITUDE <= lng <= MAX_LONGITUDE:
        raise MemstoreGeoError(f"Invalid geo point: lng must be within [-180, 180], got {lng}.")
    return GeoPoint(lat=lat, lng=lng)


def distance_between(origin: Any, target: Any, unit: str = DEFAULT_DISTANCE_UNIT) -> float:
    """Return the great-circle distance between two points.

    Args:
        origin: First point, in any shape parse_point accepts.
        target: Second point.
        unit: miles, kilometers, meters, feet, degrees, or radians.

    Returns:
        Distance expressed in `unit`.

    Raises:
        MemstoreGeoError: If a point or the unit is invalid.
    """
    radius = _earth_radius(unit)
    first = parse_point(origin)
    second = parse_point(target)
    lat1, lng1 = first.lat * DEG2RAD, first.lng * DEG2RAD
    lat2, lng2 = second.lat * DEG2RAD, second.lng * DEG2RAD
    half_chord = (
        math.sin((lat2 - lat1) / 2.0) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lng2 - lng1) / 2.0) ** 2
    )
    central_angle = 2.0 * math.asin(min(1.0, math.sqrt(half_chord)))
    return central_angle * radius


def extract_near(where: Mapping[str, Any] | None) -> NearSpec | None:
    """Find the single near-clause of a predicate tree.

    Walks top-level fields and `and`/`or` lists at any depth.

    Args:
        where: Predicate tree.

    Returns:
        The near spec, or None when the predicate has no near-clause.

    Raises:
        MemstoreGeoError: If more than one near-clause is present or the
            clause itself is malformed.
    """
    found: list[NearSpec] = []
    _collect_near(where, found)
    if len(found) > 1:
        keys = ", ".join(spec.key for spec in found)
        raise MemstoreGeoError(
            f"Cannot use multiple near clauses in one query (found on: {keys})."
        )
    return found[0] if found else None


def apply_near(documents: list[Document], near_spec: NearSpec) -> list[Document]:
    """Keep documents within range of the origin, nearest first.

    Documents without a usable location are dropped.
    """
    ranked: list[tuple[float, Document]] = []
    for document in documents:
        location = _document_point(get_value(document, near_spec.key))
        if location is None:
            continue
        distance = distance_between(near_spec.near, location, near_spec.unit)
        if near_spec.max_distance is not None and distance > near_spec.max_distance:
            continue
        if near_spec.min_distance is not None and distance < near_spec.min_distance:
            continue
        ranked.append((distance, document))
    ranked.sort(key=lambda row: row[0])
    return [document for _, document in ranked]


def _collect_near(where: Any, found: list[NearSpec]) -> None:
    if not isinstance(where, Mapping):
        return
    for key, condition in where.items():
        if key in LOGICAL_OPERATORS and isinstance(condition, list):
            for clause in condition:
                _collect_near(clause, found)
        elif isinstance(condition, Mapping) and NEAR_OPERATOR in condition:
            found.append(_near_spec(key, condition))


def _near_spec(key: str, condition: Mapping[str, Any]) -> NearSpec:
    unit = condition.get("unit") or DEFAULT_DISTANCE_UNIT
    _earth_radius(unit)
    max_distance = _optional_distance(condition.get("maxDistance"), "maxDistance")
    # A non-positive upper bound means unbounded.
    if max_distance is not None and max_distance <= 0:
        max_distance = None
    return NearSpec(
        key=key,
        near=parse_point(condition[NEAR_OPERATOR]),
        max_distance=max_distance,
        min_distance=_optional_distance(condition.get("minDistance"), "minDistance"),
        unit=unit,
    )


def _document_point(value: Any) -> GeoPoint | None:
    if value is None:
        return None
    try:
        return parse_point(value)
    except MemstoreGeoError:
        return None


def _coordinate(raw_value: Any, name: str) -> float:
    if isinstance(raw_value, bool) or raw_value is None:
        raise MemstoreGeoError(f"Invalid geo point: {name} must be a number.")
    try:
        coordinate = float(raw_value)
    except (TypeError, ValueError) as error:
        raise MemstoreGeoError(
            f"Invalid geo point: {name} must be a number, got {raw_value!r}."
        ) from error
    if math.isnan(coordinate):
        raise MemstoreGeoError(f"Invalid geo point: {name} must be a number, got NaN.")
    return coordinate


def _optional_distance(raw_value: Any, name: str) -> float | None:
    if raw_value is None:
        return None
    if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
        raise MemstoreGeoError(f"Invalid near clause: {name} must be a number.")
    return float(raw_value)


def _earth_radius(unit: str) -> float:
    radius = EARTH_RADIUS.get(unit)
    if radius is None:
        raise MemstoreGeoError(
            f"Unsupported distance unit {unit!r}. Use one of: {', '.join(sorted(EARTH_RADIUS))}."
        )
    return radius
