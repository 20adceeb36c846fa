"""Model metadata registry.

This module holds the model definitions the store consumes: id names,
id types, property types, and collection aliases. It also loads and
validates YAML registry files so deployments can declare models
without code.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence, cast

import yaml

from core.constants import (
    DEFAULT_ID_NAME,
    DEFAULT_ID_TYPE,
    MODEL_REGISTRY_VERSION,
    SUPPORTED_PROPERTY_TYPES,
)
from core.errors import MemstoreModelError
from core.types import Document, ModelDefinition

_MODEL_KEYS = frozenset({"id", "id_type", "collection", "properties"})
_ROOT_KEYS = frozenset({"version", "models"})


class ModelRegistry:
    """Registry of model definitions keyed by model name."""

    def __init__(self, definitions: Iterable[ModelDefinition] = ()) -> None:
        self._models: dict[str, ModelDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: ModelDefinition) -> ModelDefinition:
        """Validate and register one model definition.

        Args:
            definition: Model metadata.

        Returns:
            The registered definition.

        Raises:
            MemstoreModelError: If the definition is invalid.
        """
        _validate_definition(definition)
        self._models[definition.name] = definition
        return definition

    def get(self, model_name: str) -> ModelDefinition:
        """Return a model definition by name.

        Raises:
            MemstoreModelError: If the model is not registered.
        """
        definition = self._models.get(model_name)
        if definition is None:
            raise MemstoreModelError(
                f"Model '{model_name}' is not attached to this store. "
                "Define the model before using it."
            )
        return definition

    def __contains__(self, model_name: object) -> bool:
        return model_name in self._models

    def names(self) -> tuple[str, ...]:
        """Return registered model names in registration order."""
        return tuple(self._models)

    def id_names(self, model_name: str) -> tuple[str, ...]:
        return self.get(model_name).id_names

    def get_id_value(self, model_name: str, data: Mapping[str, Any]) -> Any:
        """Read the primary id value from a document."""
        return data.get(self.get(model_name).primary_id_name)

    def set_id_value(self, model_name: str, data: Document, id_value: Any) -> None:
        """Write the primary id value into a document."""
        data[self.get(model_name).primary_id_name] = id_value

    def coerce_id(self, model_name: str, id_value: Any) -> Any:
        """Coerce an id to the model's declared id type.

        Values that cannot be coerced are returned unchanged.
        """
        return coerce_id_value(self.get(model_name).id_type, id_value)

    def property_types(self, model_name: str) -> Mapping[str, str]:
        """Return the declared type table used for post-read coercion."""
        definition = self.get(model_name)
        return {**definition.properties, definition.primary_id_name: definition.id_type}


def coerce_id_value(id_type: str, id_value: Any) -> Any:
    """Coerce one id value to a declared id type.

    Args:
        id_type: Declared id type name.
        id_value: Raw id value.

    Returns:
        Coerced id, or the raw value when coercion does not apply.
    """
    if id_value is None:
        return None
    if id_type == "string":
        return str(id_value)
    if id_type == "number":
        numeric_value = numeric_id(id_value)
        if numeric_value is None:
            return id_value
        return int(numeric_value) if numeric_value.is_integer() else numeric_value
    return id_value


def numeric_id(id_value: Any) -> float | None:
    """Return the numeric value of an id, or None when it has none."""
    if isinstance(id_value, bool):
        return None
    if isinstance(id_value, (int, float)):
        numeric_value = float(id_value)
    elif isinstance(id_value, str):
        try:
            numeric_value = float(id_value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(numeric_value) or math.isinf(numeric_value):
        return None
    return numeric_value


def load_model_registry(registry_path: str | Path) -> ModelRegistry:
    """Load and validate a YAML model registry from disk.

    Args:
        registry_path: File path to the YAML registry.

    Returns:
        Registry holding every declared model.

    Raises:
        MemstoreModelError: If the file is unreadable or fails validation.
    """
    payload = _load_yaml_payload(Path(registry_path).expanduser().resolve())
    root_mapping = _expect_mapping(payload, "model registry root")
    unknown_keys = sorted(set(root_mapping) - _ROOT_KEYS)
    if unknown_keys:
        raise MemstoreModelError(
            f"Unsupported model registry keys: {', '.join(unknown_keys)}. "
            "Use only 'version' and 'models'."
        )
    version = root_mapping.get("version")
    if version != MODEL_REGISTRY_VERSION:
        raise MemstoreModelError(
            f"Unsupported model registry version {version!r}. "
            f"Set version: {MODEL_REGISTRY_VERSION}."
        )
    models_mapping = _expect_mapping(root_mapping.get("models"), "model registry models")
    registry = ModelRegistry()
    for model_name, model_payload in models_mapping.items():
        registry.register(_parse_model(model_name, model_payload))
    return registry


def _load_yaml_payload(registry_file: Path) -> object:
    if not registry_file.exists():
        raise MemstoreModelError(
            f"Model registry file does not exist at {registry_file}. "
            "Provide a valid YAML file path."
        )
    try:
        payload = cast(object, yaml.safe_load(registry_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise MemstoreModelError(
            f"Failed to read model registry at {registry_file}: {error}. "
            "Check file permissions and retry."
        ) from error
    except yaml.YAMLError as error:
        raise MemstoreModelError(
            f"Failed to parse YAML model registry at {registry_file}: {error}. "
            "Fix YAML syntax and retry."
        ) from error
    if payload is None:
        raise MemstoreModelError(
            f"Model registry at {registry_file} is empty. Define 'version' and 'models'."
        )
    return payload


def _parse_model(model_name: str, model_payload: object) -> ModelDefinition:
    context = f"model '{model_name}'"
    model_mapping = _expect_mapping(model_payload, context)
    unknown_keys = sorted(set(model_mapping) - _MODEL_KEYS)
    if unknown_keys:
        raise MemstoreModelError(
            f"Invalid {context}: unsupported keys {', '.join(unknown_keys)}."
        )
    raw_properties = model_mapping.get("properties", {})
    properties = {
        key: str(value)
        for key, value in _expect_mapping(raw_properties, f"{context} properties").items()
    }
    collection = model_mapping.get("collection")
    if collection is not None and not isinstance(collection, str):
        raise MemstoreModelError(f"Invalid {context}: 'collection' must be a string.")
    return ModelDefinition(
        name=model_name,
        properties=properties,
        id_names=_parse_id_names(model_mapping.get("id", DEFAULT_ID_NAME), context),
        id_type=str(model_mapping.get("id_type", DEFAULT_ID_TYPE)),
        collection=collection,
    )


def _parse_id_names(raw_id: object, context: str) -> tuple[str, ...]:
    if isinstance(raw_id, str):
        return (raw_id,)
    if isinstance(raw_id, Sequence) and all(isinstance(item, str) for item in raw_id):
        return tuple(cast(Sequence[str], raw_id))
    raise MemstoreModelError(
        f"Invalid {context}: 'id' must be a field name or a list of field names."
    )


def _expect_mapping(value: object, context: str) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        normalized_mapping = {}
        for key, payload in value.items():
            if not isinstance(key, str):
                raise MemstoreModelError(
                    f"Invalid {context}: expected string keys, got {type(key).__name__}."
                )
            normalized_mapping[key] = payload
        return normalized_mapping
    raise MemstoreModelError(
        f"Invalid {context}: expected object mapping, got {type(value).__name__}."
    )


def _validate_definition(definition: ModelDefinition) -> None:
    context = f"model '{definition.name}'"
    if not definition.name:
        raise MemstoreModelError("Model definitions require a non-empty name.")
    if not definition.id_names:
        raise MemstoreModelError(f"Invalid {context}: at least one id field is required.")
    declared_types = {**definition.properties, definition.primary_id_name: definition.id_type}
    for field_name, type_name in declared_types.items():
        if type_name not in SUPPORTED_PROPERTY_TYPES:
            raise MemstoreModelError(
                f"Invalid {context}: field '{field_name}' has unsupported type "
                f"'{type_name}'. Use one of: {', '.join(SUPPORTED_PROPERTY_TYPES)}."
            )
