"""Shared fixtures and helpers for tests."""

import logging
import warnings
from pathlib import Path

import pytest
from testcontainers.core.container import DockerContainer
from testcontainers.core.waiting_utils import wait_for_logs

from alembic import command
from alembic.config import Config
from page_composer.db import InMemoryConfigurationStore
from page_composer.defaults import BuiltinDefaultProvider
from page_composer.models import Configuration, ConfigurationStatus, PageType, SlotKind, SlotNode

logger = logging.getLogger(__name__)

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# PostgresTestBase: helpers for integration tests that need a database
# ---------------------------------------------------------------------------


class PostgresTestBase:
    image = "postgres:16-alpine"

    @staticmethod
    def create_container() -> DockerContainer:
        return (
            DockerContainer(PostgresTestBase.image)
            .with_exposed_ports(5432)
            .with_env("POSTGRES_PASSWORD", "postgres")
        )

    @staticmethod
    def get_alembic_config() -> Config:
        ini_path = str(_REPO_ROOT / "alembic.ini")
        cfg = Config(ini_path)
        cfg.set_main_option("script_location", str(_REPO_ROOT / "alembic"))
        return cfg

    @staticmethod
    def run_migrations(connection_url: str) -> None:
        cfg = PostgresTestBase.get_alembic_config()
        cfg.set_main_option("sqlalchemy.url", connection_url)
        command.upgrade(cfg, "head")

    @staticmethod
    def cleanup_migrations(connection_url: str) -> None:
        cfg = PostgresTestBase.get_alembic_config()
        cfg.set_main_option("sqlalchemy.url", connection_url)
        command.downgrade(cfg, "base")

    @staticmethod
    def wait_for_postgres(container: DockerContainer) -> None:
        # The official image restarts once after initdb, so wait for the second "ready" line.
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DeprecationWarning)
            wait_for_logs(
                container,
                lambda logs: logs.count("database system is ready to accept connections") >= 2,
                timeout=60,
            )


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


def make_node(node_id: str, kind: SlotKind = SlotKind.CONTAINER, **fields: object) -> SlotNode:
    return SlotNode(id=node_id, kind=kind, **fields)


def make_configuration(
    slots: dict[str, SlotNode],
    root_id: str = "root",
    page_type: PageType = PageType.CART,
    status: ConfigurationStatus = ConfigurationStatus.PUBLISHED,
) -> Configuration:
    return Configuration(
        id="cfg-1",
        tenant_id="T1",
        page_type=page_type,
        slots=slots,
        root_id=root_id,
        status=status,
        version_number=1,
    )


@pytest.fixture
def store() -> InMemoryConfigurationStore:
    return InMemoryConfigurationStore()


@pytest.fixture
def defaults() -> BuiltinDefaultProvider:
    return BuiltinDefaultProvider()


@pytest.fixture
def simple_slots() -> dict[str, SlotNode]:
    """root -> header -> title, root -> body -> [blocks, cta]."""
    return {
        "root": make_node("root", children=["header", "body"]),
        "header": make_node("header", children=["title"]),
        "title": make_node(
            "title",
            SlotKind.TEXT,
            content="A",
            style_overrides={"color": "red", "fontSize": 14},
        ),
        "body": make_node("body", layout={"default": 8, "mobile": 12}, children=["blocks", "cta"]),
        "blocks": make_node("blocks", SlotKind.BLOCK_POSITION),
        "cta": make_node("cta", SlotKind.LEAF_COMPONENT, component="CheckoutButton", view_modes=["withProducts"]),
    }
