"""Programmatic Alembic upgrades for the taskguard database."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def build_alembic_config(db_path: Path) -> Config:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def upgrade_head(db_path: Path) -> None:
    """Apply every pending migration to the SQLite database at ``db_path``."""

    db_path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug("Upgrading %s to head", db_path)
    command.upgrade(build_alembic_config(db_path), "head")
