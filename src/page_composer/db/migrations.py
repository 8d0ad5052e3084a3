from pathlib import Path

from alembic.config import Config

from alembic import command


def run_migrations(db_url: str, ini_path: str | Path = "alembic.ini", revision: str = "head") -> None:
    alembic_cfg = Config(str(ini_path))
    alembic_cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(alembic_cfg, revision)
