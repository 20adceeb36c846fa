"""Per-model collections and id sequences.

This module owns the in-memory `{ids, models}` state shared by every
model bound to one backing destination, and the collection operations
that read and mutate it. Documents are kept serialized; every read
returns a fresh, coerced copy.
"""

from __future__ import annotations

import threading
from typing import Any, Mapping

from core.constants import DEFAULT_SEQUENCE_START, STATE_IDS_KEY, STATE_MODELS_KEY
from core.errors import MemstoreDuplicateIdError, MemstoreNotFoundError
from core.model_registry import coerce_id_value, numeric_id
from core.types import Document, ModelDefinition
from query.predicate import PredicateEvaluator, validate_where
from store.document_codec import coerce_document, deserialize_document, serialize_document


class StoreState:
    """Sequence counters and serialized collections for one destination."""

    def __init__(
        self,
        ids: dict[str, int] | None = None,
        models: dict[str, dict[str, str]] | None = None,
    ) -> None:
        self.ids: dict[str, int] = ids if ids is not None else {}
        self.models: dict[str, dict[str, str]] = models if models is not None else {}
        self.lock = threading.RLock()

    def collection(self, collection_name: str) -> dict[str, str]:
        """Return a collection's documents, creating it when absent."""
        with self.lock:
            return self.models.setdefault(collection_name, {})

    def reset_collection(self, collection_name: str) -> None:
        """Empty a collection and restart its sequence counter."""
        with self.lock:
            self.models[collection_name] = {}
            self.ids[collection_name] = DEFAULT_SEQUENCE_START

    def snapshot(self) -> dict[str, Any]:
        """Return a point-in-time copy in persisted file layout."""
        with self.lock:
            return {
                STATE_IDS_KEY: dict(self.ids),
                STATE_MODELS_KEY: {
                    name: dict(documents) for name, documents in self.models.items()
                },
            }


class CollectionStore:
    """Collection operations for one model over a shared StoreState."""

    def __init__(
        self,
        state: StoreState,
        definition: ModelDefinition,
        property_types: Mapping[str, str],
        evaluator: PredicateEvaluator,
    ) -> None:
        self._state = state
        self._definition = definition
        self._property_types = property_types
        self._evaluator = evaluator
        self._name = definition.collection_name

    @property
    def name(self) -> str:
        return self._name

    def create(self, document: Mapping[str, Any]) -> Any:
        """Insert a document and return its id.

        A supplied id above the sequence counter moves the counter past it;
        otherwise the next counter value is consumed.

        Raises:
            MemstoreDuplicateIdError: If the id is already in use.
        """
        id_name = self._definition.primary_id_name
        with self._state.lock:
            documents = self._state.collection(self._name)
            current_id: float = self._state.ids.get(self._name, DEFAULT_SEQUENCE_START)
            supplied_id = document.get(id_name)
            id_value = supplied_id if supplied_id not in (None, "") else current_id
            supplied_numeric = numeric_id(id_value)
            if supplied_numeric is not None and supplied_numeric > current_id:
                current_id = supplied_numeric
            self._state.ids[self._name] = int(current_id) + 1
            id_value = self.coerce_id(id_value)
            key = storage_key(id_value)
            if key in documents:
                raise MemstoreDuplicateIdError(
                    f"Duplicate entry for {self._definition.name}.{id_name}: {id_value!r}."
                )
            stored = {**document, id_name: id_value}
            documents[key] = serialize_document(stored)
            return id_value

    def get(self, id_value: Any) -> Document | None:
        """Return a coerced copy of a document, or None when absent."""
        with self._state.lock:
            raw_document = self._state.collection(self._name).get(self._key(id_value))
        return None if raw_document is None else self._read(raw_document)

    def put(self, id_value: Any, update: Mapping[str, Any]) -> tuple[Document, bool]:
        """Shallow-merge an update over the stored document.

        Callable values in the update are skipped. Without a prior record
        the update is stored as-is.

        Returns:
            Pair of the stored document and whether it was newly created.
        """
        id_value = self.coerce_id(id_value)
        with self._state.lock:
            documents = self._state.collection(self._name)
            key = storage_key(id_value)
            existing_raw = documents.get(key)
            merged = deserialize_document(existing_raw) if existing_raw is not None else {}
            for field_name, value in update.items():
                if not callable(value):
                    merged[field_name] = value
            merged[self._definition.primary_id_name] = id_value
            documents[key] = serialize_document(merged)
            stored_raw = documents[key]
        return self._read(stored_raw), existing_raw is None

    def replace(self, id_value: Any, document: Mapping[str, Any]) -> Document:
        """Replace a stored document entirely.

        Raises:
            MemstoreNotFoundError: If no document has this id.
        """
        id_value = self.coerce_id(id_value)
        with self._state.lock:
            documents = self._state.collection(self._name)
            key = storage_key(id_value)
            if key not in documents:
                raise MemstoreNotFoundError(
                    f"Could not replace. {self._definition.name} with id {id_value!r} "
                    "does not exist."
                )
            stored = {**document, self._definition.primary_id_name: id_value}
            documents[key] = serialize_document(stored)
            stored_raw = documents[key]
        return self._read(stored_raw)

    def delete(self, id_value: Any) -> int:
        """Remove one document and return how many were removed."""
        with self._state.lock:
            removed = self._state.collection(self._name).pop(self._key(id_value), None)
        return 0 if removed is None else 1

    def delete_all(self, where: Mapping[str, Any] | None = None) -> int:
        """Remove matching documents, or all of them without a predicate."""
        validate_where(where)
        with self._state.lock:
            documents = self._state.collection(self._name)
            if where is None:
                removed_count = len(documents)
                self._state.models[self._name] = {}
                return removed_count
            doomed_keys = [
                key
                for key, raw_document in documents.items()
                if self._evaluator.matches(where, self._read(raw_document))
            ]
            for key in doomed_keys:
                del documents[key]
            return len(doomed_keys)

    def exists(self, id_value: Any) -> bool:
        with self._state.lock:
            return self._key(id_value) in self._state.collection(self._name)

    def count(self, where: Mapping[str, Any] | None = None) -> int:
        """Count documents, optionally only those matching a predicate."""
        if not where:
            with self._state.lock:
                return len(self._state.collection(self._name))
        validate_where(where)
        return sum(1 for document in self.documents() if self._evaluator.matches(where, document))

    def all_ids(self) -> set[Any]:
        with self._state.lock:
            keys = list(self._state.collection(self._name))
        return {self.coerce_id(key) for key in keys}

    def documents(self) -> list[Document]:
        """Return coerced copies of every document in storage order."""
        with self._state.lock:
            raw_documents = list(self._state.collection(self._name).values())
        return [self._read(raw_document) for raw_document in raw_documents]

    def reset(self) -> None:
        """Re-initialize the collection and its sequence counter."""
        self._state.reset_collection(self._name)

    def coerce_id(self, id_value: Any) -> Any:
        return coerce_id_value(self._definition.id_type, id_value)

    def _key(self, id_value: Any) -> str:
        return storage_key(self.coerce_id(id_value))

    def _read(self, raw_document: str) -> Document:
        return coerce_document(deserialize_document(raw_document), self._property_types)


def storage_key(id_value: Any) -> str:
    """Return the collection key for a coerced id."""
    return str(id_value)
