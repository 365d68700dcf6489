"""Programmatic Alembic upgrade for the job store."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from infer_queue.errors import StorageError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def upgrade_head(db_path: Path, *, project_root: Path = PROJECT_ROOT) -> None:
    """Bring the SQLite file at ``db_path`` to the latest schema revision.

    Running it against an up-to-date database is a no-op.
    """

    alembic_ini = project_root / "alembic.ini"
    alembic_dir = project_root / "alembic"
    if not alembic_ini.is_file() or not alembic_dir.is_dir():
        raise StorageError(f"Schema migrations not found under {project_root}.")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(alembic_dir))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    logger.debug("Upgrading job store schema at %s", db_path)
    command.upgrade(config, "head")
