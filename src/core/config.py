"""Runtime configuration model for memstore.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import DEFAULT_LOG_LEVEL
from core.errors import MemstoreConfigError

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class MemstoreConfig:
    """Validated runtime configuration.

    Attributes:
        store_file: Backing JSON file; None keeps state in memory only.
        model_registry_path: Optional YAML model registry file.
        neq_incomparable_matches: Treat incomparable neq operands as a match
            instead of never matching.
        log_level: Standard logging level name.
    """

    store_file: Path | None = None
    model_registry_path: Path | None = None
    neq_incomparable_matches: bool = True
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "MemstoreConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            MemstoreConfigError: If environment values are invalid.
        """
        store_file = _optional_path(os.getenv("MEMSTORE_FILE"))
        model_registry_path = _optional_path(os.getenv("MEMSTORE_MODELS"))
        neq_incomparable_matches = _parse_bool(
            "MEMSTORE_NEQ_INCOMPARABLE_MATCHES",
            os.getenv("MEMSTORE_NEQ_INCOMPARABLE_MATCHES", "true"),
        )
        log_level = _parse_log_level(os.getenv("MEMSTORE_LOG_LEVEL", DEFAULT_LOG_LEVEL))
        return cls(
            store_file=store_file,
            model_registry_path=model_registry_path,
            neq_incomparable_matches=neq_incomparable_matches,
            log_level=log_level,
        )


def _optional_path(raw_value: str | None) -> Path | None:
    if raw_value is None or not raw_value.strip():
        return None
    return Path(raw_value).expanduser().resolve()


def _parse_bool(variable_name: str, raw_value: str) -> bool:
    """Parse a boolean environment value.

    Args:
        variable_name: Environment variable name, used in errors.
        raw_value: Raw string from environment.

    Returns:
        Parsed boolean.

    Raises:
        MemstoreConfigError: If value is not a recognized boolean.
    """
    normalized_value = raw_value.strip().lower()
    if normalized_value in _TRUE_VALUES:
        return True
    if normalized_value in _FALSE_VALUES:
        return False
    raise MemstoreConfigError(
        f"Invalid {variable_name} value: expected true or false, got '{raw_value}'. "
        f"Set {variable_name} to one of: {', '.join(_TRUE_VALUES + _FALSE_VALUES)}."
    )


def _parse_log_level(raw_value: str) -> str:
    normalized_value = raw_value.strip().upper()
    if normalized_value not in _LOG_LEVELS:
        raise MemstoreConfigError(
            f"Invalid MEMSTORE_LOG_LEVEL value: got '{raw_value}'. "
            f"Use one of: {', '.join(_LOG_LEVELS)}."
        )
    return normalized_value
