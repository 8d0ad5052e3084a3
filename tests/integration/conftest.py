"""Session-scoped fixtures for integration tests."""

from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from testcontainers.core.container import DockerContainer

from alembic.config import Config
from page_composer.db import PostgresConfigurationStore
from tests.conftest import PostgresTestBase


@pytest.fixture(scope="session")
def postgres_container() -> Generator[DockerContainer, None, None]:
    """Start a Postgres container for the session."""
    container = PostgresTestBase.create_container()
    container.start()
    PostgresTestBase.wait_for_postgres(container)
    yield container
    container.stop()


@pytest.fixture(scope="session")
def test_db_url(postgres_container: DockerContainer) -> str:
    """Async connection URL for the test database."""
    host = postgres_container.get_container_host_ip()
    port = postgres_container.get_exposed_port(5432)
    return f"postgresql+asyncpg://postgres:postgres@{host}:{port}/postgres"


@pytest.fixture(scope="session")
def alembic_config(test_db_url: str) -> Config:
    """Alembic config pointed at the test database."""
    cfg = PostgresTestBase.get_alembic_config()
    cfg.set_main_option("sqlalchemy.url", test_db_url)
    return cfg


@pytest.fixture(scope="session")
def _run_migrations(alembic_config: Config, test_db_url: str) -> Generator[None, None, None]:
    """Run migrations once per session, cleanup on teardown."""
    PostgresTestBase.run_migrations(test_db_url)
    yield
    PostgresTestBase.cleanup_migrations(test_db_url)


@pytest_asyncio.fixture
async def database(_run_migrations: None, test_db_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Per-test engine so each event loop gets its own connection pool."""
    engine = create_async_engine(test_db_url, future=True)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def pg_store(database: AsyncEngine) -> AsyncGenerator[PostgresConfigurationStore, None]:
    """Per-test store on an emptied table."""
    instance = PostgresConfigurationStore(database)
    await instance.ensure_ready()
    async with database.begin() as conn:
        await conn.execute(text("TRUNCATE slot_configurations"))
    yield instance
