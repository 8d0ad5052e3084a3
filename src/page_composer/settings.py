import logging
import os
from dataclasses import dataclass

from page_composer.db.engine import DEFAULT_DATABASE_URL

STORE_BACKENDS = ("postgres", "memory")


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    store_backend: str = "postgres"
    resolution_cache_size: int = 512
    history_page_size: int = 20
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        store_backend = os.getenv("PAGE_COMPOSER_STORE", "postgres").lower()
        if store_backend not in STORE_BACKENDS:
            raise ValueError(f"PAGE_COMPOSER_STORE must be one of {', '.join(STORE_BACKENDS)}, got {store_backend!r}")
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            store_backend=store_backend,
            resolution_cache_size=int(os.getenv("PAGE_COMPOSER_RESOLUTION_CACHE_SIZE", "512")),
            history_page_size=int(os.getenv("PAGE_COMPOSER_HISTORY_PAGE_SIZE", "20")),
            log_level=os.getenv("PAGE_COMPOSER_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
