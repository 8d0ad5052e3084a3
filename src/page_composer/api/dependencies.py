from __future__ import annotations

from collections.abc import AsyncIterator

from page_composer.core.cache import ResolutionCache
from page_composer.core.ports.defaults import DefaultConfigurationProvider
from page_composer.core.ports.store import ConfigurationStore
from page_composer.core.publish import PublishCoordinator
from page_composer.core.render import ResolutionService
from page_composer.db.engine import get_engine
from page_composer.db.memory import InMemoryConfigurationStore
from page_composer.db.postgres import PostgresConfigurationStore
from page_composer.defaults.provider import BuiltinDefaultProvider
from page_composer.settings import Settings

_settings: Settings | None = None
_store: ConfigurationStore | None = None
_cache: ResolutionCache | None = None
_coordinator: PublishCoordinator | None = None
_defaults: DefaultConfigurationProvider | None = None


def get_settings() -> Settings:
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


async def get_store() -> AsyncIterator[ConfigurationStore]:
    """Yield the process-wide ``ConfigurationStore``, creating it lazily on first call."""
    global _store  # noqa: PLW0603
    if _store is None:
        settings = get_settings()
        if settings.store_backend == "memory":
            _store = InMemoryConfigurationStore()
        else:
            _store = PostgresConfigurationStore(get_engine(settings.database_url))
        await _store.ensure_ready()
    yield _store


def get_cache() -> ResolutionCache:
    global _cache  # noqa: PLW0603
    if _cache is None:
        _cache = ResolutionCache(get_settings().resolution_cache_size)
    return _cache


def get_coordinator() -> PublishCoordinator:
    global _coordinator  # noqa: PLW0603
    if _coordinator is None:
        _coordinator = PublishCoordinator()
        _coordinator.add_listener(get_cache().invalidate)
    return _coordinator


def get_default_provider() -> DefaultConfigurationProvider:
    global _defaults  # noqa: PLW0603
    if _defaults is None:
        _defaults = BuiltinDefaultProvider()
    return _defaults


def get_resolution_service() -> ResolutionService:
    return ResolutionService(get_default_provider(), get_cache())


async def shutdown_store() -> None:
    global _store, _cache, _coordinator  # noqa: PLW0603
    if _store is not None:
        await _store.dispose()
        _store = None
    _cache = None
    _coordinator = None
