"""Memstore exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations

from core.constants import DUPLICATE_ID_STATUS_CODE, NOT_FOUND_STATUS_CODE


class MemstoreError(Exception):
    """Base exception for all memstore failures."""


class MemstoreConfigError(MemstoreError):
    """Raised for invalid runtime configuration."""


class MemstoreModelError(MemstoreError):
    """Raised for invalid model definitions or unknown model names."""


class MemstoreQueryError(MemstoreError):
    """Raised for malformed filters, predicates, and sort specs."""


class MemstoreGeoError(MemstoreQueryError):
    """Raised for malformed geo points, units, or near-clauses."""


class MemstoreNotFoundError(MemstoreError):
    """Raised when an update or replace targets a missing document."""

    status_code = NOT_FOUND_STATUS_CODE


class MemstoreDuplicateIdError(MemstoreError):
    """Raised when a create would reuse a live document id."""

    status_code = DUPLICATE_ID_STATUS_CODE


class MemstorePersistenceError(MemstoreError):
    """Raised for state file read and write failures."""


class MemstoreMigrationError(MemstoreError):
    """Raised when migration names models not attached to the store."""


class MemstoreClosedError(MemstoreError):
    """Raised when a closed connector is asked to change state."""
