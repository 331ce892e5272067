"""Programmatic Alembic upgrades for the artifact index database."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config

MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "alembic"
HEAD_REVISION = "head"


def alembic_config(db_path: Path) -> Config:
    """Alembic config pointing the bundled migrations at ``db_path``."""

    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def upgrade_head(db_path: Path) -> None:
    """Bring ``db_path`` to the latest schema revision; a current schema is left as is."""

    command.upgrade(alembic_config(db_path), HEAD_REVISION)
