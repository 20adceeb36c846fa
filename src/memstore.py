"""Public SDK surface for memstore.

This module provides a stable import path for store users.
It re-exports the connector, configuration, and typed models.
"""

from __future__ import annotations

from core.config import MemstoreConfig
from core.errors import (
    MemstoreClosedError,
    MemstoreDuplicateIdError,
    MemstoreError,
    MemstoreGeoError,
    MemstoreMigrationError,
    MemstoreNotFoundError,
    MemstorePersistenceError,
    MemstoreQueryError,
)
from core.model_registry import ModelRegistry, load_model_registry
from core.types import GeoPoint, ModelDefinition, MutationResult, QueryFilter
from query.geo import distance_between, parse_point
from query.pipeline import parse_filter
from store.memory_connector import MemoryConnector

__all__ = [
    "GeoPoint",
    "MemoryConnector",
    "MemstoreClosedError",
    "MemstoreConfig",
    "MemstoreDuplicateIdError",
    "MemstoreError",
    "MemstoreGeoError",
    "MemstoreMigrationError",
    "MemstoreNotFoundError",
    "MemstorePersistenceError",
    "MemstoreQueryError",
    "ModelDefinition",
    "ModelRegistry",
    "MutationResult",
    "QueryFilter",
    "distance_between",
    "load_model_registry",
    "parse_filter",
    "parse_point",
]
