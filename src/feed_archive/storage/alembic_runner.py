"""Run the packaged Alembic migrations against a cache database."""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

# Alembic script directory shipped inside the package.
MIGRATIONS_PACKAGE = "feed_archive.storage"
MIGRATIONS_DIR = "migrations"


def upgrade_head(db_path: Path) -> None:
    """Bring the SQLite schema at ``db_path`` up to the latest revision."""

    script_dir = resources.files(MIGRATIONS_PACKAGE).joinpath(MIGRATIONS_DIR)
    config = Config()
    config.set_main_option("script_location", str(script_dir))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    command.upgrade(config, "head")
    logger.debug("Cache schema at head: %s", db_path)
