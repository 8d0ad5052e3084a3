"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from page_composer.db.engine import DEFAULT_DATABASE_URL
from page_composer.settings import Settings


def test_defaults_when_environment_is_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DATABASE_URL",
        "PAGE_COMPOSER_STORE",
        "PAGE_COMPOSER_RESOLUTION_CACHE_SIZE",
        "PAGE_COMPOSER_HISTORY_PAGE_SIZE",
        "PAGE_COMPOSER_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings == Settings(database_url=DEFAULT_DATABASE_URL)
    assert settings.store_backend == "postgres"


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@db:5432/pages")
    monkeypatch.setenv("PAGE_COMPOSER_STORE", "Memory")
    monkeypatch.setenv("PAGE_COMPOSER_RESOLUTION_CACHE_SIZE", "64")
    monkeypatch.setenv("PAGE_COMPOSER_HISTORY_PAGE_SIZE", "5")
    monkeypatch.setenv("PAGE_COMPOSER_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.database_url == "postgresql+asyncpg://u:p@db:5432/pages"
    assert settings.store_backend == "memory"
    assert settings.resolution_cache_size == 64
    assert settings.history_page_size == 5
    assert settings.log_level == "DEBUG"


def test_rejects_unknown_store(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAGE_COMPOSER_STORE", "redis")
    with pytest.raises(ValueError, match="PAGE_COMPOSER_STORE"):
        Settings.from_env()
