"""Memory connector: CRUD and query primitives over collection stores.

This module is the surface the persistence layer calls. Mutations are
applied to the in-memory state immediately and then queued for
durable persistence; each returns a MutationResult whose `durable`
future resolves once the backing file reflects the change.
"""

from __future__ import annotations

from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from core.config import MemstoreConfig
from core.errors import (
    MemstoreClosedError,
    MemstoreMigrationError,
    MemstoreNotFoundError,
    MemstoreQueryError,
)
from core.logging_config import configure_logging, get_logger
from core.model_registry import ModelRegistry, load_model_registry
from core.types import Document, ModelDefinition, MutationResult, QueryFilter
from query.pipeline import parse_filter, run_query
from query.predicate import PredicateEvaluator, validate_where
from store.collection_store import CollectionStore, StoreState
from store.durability_queue import WriteTask, acquire_queue, release_queue
from store.state_io import read_state_file

_LOGGER = get_logger(__name__)

IncludeResolver = Callable[[str, list[Document], Any, Mapping[str, Any]], list[Document]]


class MemoryConnector:
    """Embedded document store bound to one optional backing file.

    Connectors opened on the same backing file share one in-memory state
    and one durability queue, so every flush writes all of their changes.
    Models declaring the same collection alias share documents and the
    id sequence.
    """

    def __init__(
        self,
        config: MemstoreConfig | None = None,
        registry: ModelRegistry | None = None,
        include_resolver: IncludeResolver | None = None,
    ) -> None:
        """Create a connector and load any persisted state.

        Args:
            config: Optional runtime configuration; read from env when omitted.
            registry: Optional model registry; loaded from the configured
                registry file, or empty, when omitted.
            include_resolver: Optional relation resolver for `include` filters.

        Raises:
            MemstorePersistenceError: If the backing file is unreadable.
            MemstoreModelError: If the configured registry file is invalid.
        """
        self._config = config or MemstoreConfig.from_env()
        configure_logging(self._config.log_level)
        if registry is None:
            registry_path = self._config.model_registry_path
            registry = load_model_registry(registry_path) if registry_path else ModelRegistry()
        self._registry = registry
        self._include_resolver = include_resolver
        self._evaluator = PredicateEvaluator(self._config.neq_incomparable_matches)
        store_file = self._config.store_file
        self._queue = acquire_queue(store_file, lambda: _load_state(store_file))
        self._state: StoreState = self._queue.state
        self._closed = False
        self._collections: dict[str, CollectionStore] = {}
        for model_name in registry.names():
            self._attach(registry.get(model_name))
        _LOGGER.info(
            "state_loaded",
            store_file=str(store_file) if store_file else None,
            collection_count=len(self._state.models),
            model_count=len(self._collections),
        )

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    def define(self, definition: ModelDefinition) -> CollectionStore:
        """Attach a model, initializing its collection when absent."""
        self._ensure_open()
        self._registry.register(definition)
        return self._attach(definition)

    def collection(self, model_name: str) -> CollectionStore:
        """Return the collection store bound to a model.

        Raises:
            MemstoreModelError: If the model is not attached.
        """
        store = self._collections.get(model_name)
        if store is None:
            return self._attach(self._registry.get(model_name))
        return store

    def create(
        self,
        model_name: str,
        data: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Insert a document; the result value is the new id.

        Raises:
            MemstoreDuplicateIdError: If the supplied id is already in use.
        """
        id_value = self._writable(model_name).create(data)
        _LOGGER.debug("document_created", model=model_name, id=id_value)
        return self._persist("create", id_value)

    def save(
        self,
        model_name: str,
        data: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Merge data over the document with the same id, creating it if needed."""
        id_value = self._require_id(model_name, self._registry.get_id_value(model_name, data))
        document, created = self._writable(model_name).put(id_value, data)
        _LOGGER.debug("document_saved", model=model_name, id=id_value, created=created)
        return self._persist("save", document, is_new_instance=created)

    def update_or_create(
        self,
        model_name: str,
        data: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Upsert by id: merge into an existing document or create a new one."""
        store = self._writable(model_name)
        id_value = self._registry.get_id_value(model_name, data)
        if id_value is not None and store.exists(id_value):
            document, _ = store.put(id_value, data)
            return self._persist("update_or_create", document, is_new_instance=False)
        document = self._create_document(store, data)
        return self._persist("update_or_create", document, is_new_instance=True)

    def replace_or_create(
        self,
        model_name: str,
        data: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Replace the document with the same id entirely, or create it."""
        store = self._writable(model_name)
        id_value = self._registry.get_id_value(model_name, data)
        if id_value is not None and store.exists(id_value):
            document = store.replace(id_value, data)
            return self._persist("replace_or_create", document, is_new_instance=False)
        document = self._create_document(store, data)
        return self._persist("replace_or_create", document, is_new_instance=True)

    def replace_by_id(
        self,
        model_name: str,
        id_value: Any,
        data: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Replace an existing document entirely.

        Raises:
            MemstoreQueryError: If no id is given.
            MemstoreNotFoundError: If the document does not exist.
        """
        id_value = self._require_id(model_name, id_value)
        document = self._writable(model_name).replace(id_value, data)
        return self._persist("replace_by_id", document)

    def find_or_create(
        self,
        model_name: str,
        query_filter: QueryFilter | Mapping[str, Any] | None,
        data: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Return the first match for a filter, creating `data` when none exists."""
        parsed_filter = parse_filter(query_filter)
        store = self._writable(model_name)
        nodes = self._query(model_name, parsed_filter)
        if nodes:
            found = nodes[:1]
            if parsed_filter.include is not None:
                found = self._resolve_include(model_name, found, parsed_filter.include, options)
            return MutationResult(
                value=found[0], durable=_resolved(found[0]), is_new_instance=False
            )
        document = self._create_document(store, data)
        return self._persist("find_or_create", document, is_new_instance=True)

    def upsert_with_where(
        self,
        model_name: str,
        where: Mapping[str, Any],
        data: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Update the single document matching `where`, or create one.

        Raises:
            MemstoreQueryError: If more than one document matches.
        """
        store = self._writable(model_name)
        nodes = self._query(model_name, QueryFilter(where=where))
        if not nodes:
            document = self._create_document(store, data)
            return self._persist("upsert_with_where", document, is_new_instance=True)
        if len(nodes) > 1:
            raise MemstoreQueryError(
                f"Found {len(nodes)} {model_name} documents matching the where clause. "
                "Upsert is not performed when more than one instance matches."
            )
        id_value = self._registry.get_id_value(model_name, nodes[0])
        document, _ = store.put(id_value, data)
        return self._persist("upsert_with_where", document, is_new_instance=False)

    def find(
        self,
        model_name: str,
        id_value: Any,
        options: Mapping[str, Any] | None = None,
    ) -> Document | None:
        """Return one document by id, or None."""
        return self.collection(model_name).get(id_value)

    def exists(
        self,
        model_name: str,
        id_value: Any,
        options: Mapping[str, Any] | None = None,
    ) -> bool:
        return self.collection(model_name).exists(id_value)

    def destroy(
        self,
        model_name: str,
        id_value: Any,
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Delete one document; the result value is the removed count."""
        removed_count = self._writable(model_name).delete(id_value)
        _LOGGER.debug("document_destroyed", model=model_name, id=id_value, count=removed_count)
        return self._persist("destroy", removed_count)

    def destroy_all(
        self,
        model_name: str,
        where: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Delete matching documents, or all when `where` is None."""
        removed_count = self._writable(model_name).delete_all(where)
        _LOGGER.debug("documents_destroyed", model=model_name, count=removed_count)
        return self._persist("destroy_all", removed_count)

    def count(
        self,
        model_name: str,
        where: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> int:
        return self.collection(model_name).count(where)

    def update_attributes(
        self,
        model_name: str,
        id_value: Any,
        data: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Merge data into an existing document.

        Raises:
            MemstoreQueryError: If no id is given.
            MemstoreNotFoundError: If the document does not exist.
        """
        id_value = self._require_id(model_name, id_value)
        store = self._writable(model_name)
        if not store.exists(id_value):
            raise MemstoreNotFoundError(
                f"Could not update attributes. {model_name} with id {id_value!r} does not exist."
            )
        document, _ = store.put(id_value, data)
        return self._persist("update_attributes", document)

    def update_all(
        self,
        model_name: str,
        where: Mapping[str, Any] | None,
        data: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> MutationResult:
        """Merge data into every matching document; the value is the count."""
        validate_where(where)
        store = self._writable(model_name)
        matched_ids = [
            self._registry.get_id_value(model_name, document)
            for document in store.documents()
            if self._evaluator.matches(where, document)
        ]
        for id_value in matched_ids:
            store.put(id_value, data)
        _LOGGER.debug("documents_updated", model=model_name, count=len(matched_ids))
        return self._persist("update_all", len(matched_ids))

    def all(
        self,
        model_name: str,
        query_filter: QueryFilter | Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> list[Document]:
        """Run a query and return the resulting page.

        Raises:
            MemstoreQueryError: If the filter is malformed or requests an
                include without a configured resolver.
        """
        parsed_filter = parse_filter(query_filter)
        nodes = self._query(model_name, parsed_filter)
        if parsed_filter.include is not None:
            return self._resolve_include(model_name, nodes, parsed_filter.include, options)
        return nodes

    def automigrate(self, models: str | Iterable[str] | None = None) -> MutationResult:
        """Reset documents and sequence counters of the named models.

        Args:
            models: One model name, several, or None for every attached model.

        Raises:
            MemstoreMigrationError: If any name is not attached to this store.
        """
        if isinstance(models, str):
            model_names = [models]
        elif models is None:
            model_names = list(self._registry.names())
        else:
            model_names = list(models)
        invalid_names = [name for name in model_names if name not in self._registry]
        if invalid_names:
            raise MemstoreMigrationError(
                "Cannot migrate models not attached to this store: "
                f"{' '.join(invalid_names)}."
            )
        for model_name in model_names:
            self._writable(model_name).reset()
        _LOGGER.info("collections_migrated", models=model_names)
        return self._persist("automigrate", tuple(model_names))

    def flush(self, timeout: float | None = None) -> None:
        """Wait until every queued write has been persisted."""
        if self._closed:
            return
        self._queue.flush(timeout=timeout)

    def close(self) -> None:
        """Drain queued writes and release the durability queue.

        Closing more than once is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        release_queue(self._queue)

    def __enter__(self) -> "MemoryConnector":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _attach(self, definition: ModelDefinition) -> CollectionStore:
        store = CollectionStore(
            self._state,
            definition,
            self._registry.property_types(definition.name),
            self._evaluator,
        )
        with self._state.lock:
            if definition.collection_name not in self._state.models:
                self._state.reset_collection(definition.collection_name)
        self._collections[definition.name] = store
        return store

    def _writable(self, model_name: str) -> CollectionStore:
        self._ensure_open()
        return self.collection(model_name)

    def _ensure_open(self) -> None:
        if self._closed:
            raise MemstoreClosedError(
                "This MemoryConnector is closed. Create a new connector to write again."
            )

    def _query(self, model_name: str, query_filter: QueryFilter) -> list[Document]:
        store = self.collection(model_name)
        return run_query(
            store.documents(),
            query_filter,
            self._registry.id_names(model_name),
            self._evaluator,
        )

    def _create_document(self, store: CollectionStore, data: Mapping[str, Any]) -> Document:
        id_value = store.create(data)
        document = store.get(id_value)
        assert document is not None
        return document

    def _resolve_include(
        self,
        model_name: str,
        documents: list[Document],
        include: Any,
        options: Mapping[str, Any] | None,
    ) -> list[Document]:
        if self._include_resolver is None:
            raise MemstoreQueryError(
                f"Filter on {model_name} requests include={include!r} but no include "
                "resolver is configured. Pass include_resolver to MemoryConnector."
            )
        return self._include_resolver(model_name, documents, include, options or {})

    def _require_id(self, model_name: str, id_value: Any) -> Any:
        if id_value is None or id_value == "":
            raise MemstoreQueryError(
                f"An id is required for this {model_name} operation. "
                f"Set '{self._registry.get(model_name).primary_id_name}' and retry."
            )
        return id_value

    def _persist(
        self,
        label: str,
        value: Any,
        is_new_instance: bool | None = None,
    ) -> MutationResult:
        task = WriteTask(snapshot=self._state.snapshot, label=label, result=value)
        return MutationResult(
            value=value,
            durable=self._queue.enqueue(task),
            is_new_instance=is_new_instance,
        )


def _resolved(value: Any) -> Future:
    future: Future = Future()
    future.set_result(value)
    return future


def _load_state(store_file: Path | None) -> StoreState:
    if store_file is None:
        return StoreState()
    ids, models = read_state_file(store_file)
    return StoreState(ids, models)
