"""Unit tests for core config parsing."""

from __future__ import annotations

import pytest

from core.config import MemstoreConfig
from core.errors import MemstoreConfigError


def test_from_env_defaults_to_memory_only(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should keep state in memory when no store file is set."""
    monkeypatch.delenv("MEMSTORE_FILE", raising=False)
    monkeypatch.delenv("MEMSTORE_MODELS", raising=False)
    monkeypatch.delenv("MEMSTORE_NEQ_INCOMPARABLE_MATCHES", raising=False)
    monkeypatch.delenv("MEMSTORE_LOG_LEVEL", raising=False)

    config = MemstoreConfig.from_env()

    assert config.store_file is None
    assert config.model_registry_path is None
    assert config.neq_incomparable_matches is True
    assert config.log_level == "INFO"


def test_from_env_reads_store_file(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should resolve the backing file from environment."""
    monkeypatch.setenv("MEMSTORE_FILE", "./.tmp-memstore/db.json")

    config = MemstoreConfig.from_env()

    assert config.store_file is not None
    assert config.store_file.name == "db.json"
    assert config.store_file.is_absolute()


def test_from_env_parses_neq_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should accept common false spellings for the neq flag."""
    monkeypatch.setenv("MEMSTORE_NEQ_INCOMPARABLE_MATCHES", " Off ")

    config = MemstoreConfig.from_env()

    assert config.neq_incomparable_matches is False


def test_from_env_raises_for_invalid_neq_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for unrecognized boolean values."""
    monkeypatch.setenv("MEMSTORE_NEQ_INCOMPARABLE_MATCHES", "sometimes")

    with pytest.raises(MemstoreConfigError, match="MEMSTORE_NEQ_INCOMPARABLE_MATCHES"):
        MemstoreConfig.from_env()


def test_from_env_normalizes_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should upper-case valid log level names."""
    monkeypatch.setenv("MEMSTORE_LOG_LEVEL", "debug")

    config = MemstoreConfig.from_env()

    assert config.log_level == "DEBUG"


def test_from_env_raises_for_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for unknown log level names."""
    monkeypatch.setenv("MEMSTORE_LOG_LEVEL", "chatty")

    with pytest.raises(MemstoreConfigError):
        MemstoreConfig.from_env()
