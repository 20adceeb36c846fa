"""State file persistence helpers.

This module isolates JSON IO for the `{ids, models}` state file.
Writes go to a sibling temp file that is then swapped into place, so
readers never observe a partially written state.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping

from core.constants import STATE_FILE_INDENT, STATE_IDS_KEY, STATE_MODELS_KEY, STATE_TEMP_SUFFIX
from core.errors import MemstorePersistenceError


def read_state_file(state_path: Path) -> tuple[dict[str, int], dict[str, dict[str, str]]]:
    """Read sequence counters and collections from a state file.

    Args:
        state_path: Backing JSON file path.

    Returns:
        Pair of counters by collection and serialized documents by collection.
        Both are empty when the file does not exist.

    Raises:
        MemstorePersistenceError: If the file cannot be read or parsed.
    """
    try:
        raw_text = state_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}, {}
    except OSError as error:
        raise MemstorePersistenceError(
            f"Failed to read state file {state_path}: {error}. Check file permissions and retry."
        ) from error
    if not raw_text.strip():
        return {}, {}
    try:
        payload = json.loads(raw_text)
    except json.JSONDecodeError as error:
        raise MemstorePersistenceError(
            f"Failed to parse state file at {state_path}: {error.msg}. "
            "Restore the file from backup or delete it to start empty."
        ) from error
    if not isinstance(payload, dict):
        raise MemstorePersistenceError(
            f"Failed to parse state file at {state_path}: expected JSON object at top level."
        )
    ids = _expect_object(payload.get(STATE_IDS_KEY, {}), state_path, STATE_IDS_KEY)
    models = _expect_object(payload.get(STATE_MODELS_KEY, {}), state_path, STATE_MODELS_KEY)
    try:
        counters = {str(name): int(value) for name, value in ids.items()}
    except (TypeError, ValueError) as error:
        raise MemstorePersistenceError(
            f"Invalid state file at {state_path}: sequence counters must be integers."
        ) from error
    return (
        counters,
        {
            str(name): dict(_expect_object(documents, state_path, f"{STATE_MODELS_KEY}.{name}"))
            for name, documents in models.items()
        },
    )


def write_state_file(state_path: Path, payload: Mapping[str, Any]) -> None:
    """Atomically replace the state file with a new payload.

    Raises:
        MemstorePersistenceError: If the file cannot be written.
    """
    temp_path = state_path.with_name(state_path.name + STATE_TEMP_SUFFIX)
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(
            json.dumps(payload, indent=STATE_FILE_INDENT) + "\n", encoding="utf-8"
        )
        os.replace(temp_path, state_path)
    except OSError as error:
        raise MemstorePersistenceError(
            f"Failed to write state file {state_path}: {error}."
        ) from error


def _expect_object(value: Any, state_path: Path, context: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise MemstorePersistenceError(
            f"Invalid state file at {state_path}: '{context}' must be a JSON object."
        )
    return value
