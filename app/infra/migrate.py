from __future__ import annotations

import logging
import os

from alembic import command
from alembic.config import Config

ALEMBIC_CONFIG = os.getenv("ALEMBIC_CONFIG", "alembic.ini")

logger = logging.getLogger(__name__)


def build_config(database_url: str | None = None) -> Config:
    config = Config(ALEMBIC_CONFIG)
    url = database_url or os.getenv("DATABASE_URL")
    if url:
        config.set_main_option("sqlalchemy.url", url)
        config.attributes["database_url"] = url
    return config


def run_upgrade_head(database_url: str | None = None) -> None:
    command.upgrade(build_config(database_url), "head")
    logger.info("database schema upgraded to head")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_upgrade_head()
