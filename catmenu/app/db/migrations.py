from __future__ import annotations

import logging
from pathlib import Path

from alembic import command, config as alembic_config

logger = logging.getLogger(__name__)

SCRIPT_LOCATION = Path(__file__).resolve().parents[2] / "alembic"


def run_migrations(database_url: str) -> None:
    """Run Alembic migrations to the latest version."""
    cfg = alembic_config.Config()
    cfg.set_main_option("script_location", str(SCRIPT_LOCATION))
    cfg.set_main_option("sqlalchemy.url", database_url)
    logger.info("running migrations from %s", SCRIPT_LOCATION)
    command.upgrade(cfg, "head")


__all__ = ["run_migrations"]
