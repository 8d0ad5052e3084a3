from page_composer.db.engine import get_database_url, get_engine
from page_composer.db.memory import InMemoryConfigurationStore
from page_composer.db.postgres import PostgresConfigurationStore

__all__ = [
    "InMemoryConfigurationStore",
    "PostgresConfigurationStore",
    "get_database_url",
    "get_engine",
]
