from __future__ import annotations

import logging
import os

from sqlalchemy import inspect

from app.db import engine
from app.tasks import celery_app

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("worker")


def check_database() -> None:
    """Log the tables visible to the worker so a misconfigured DATABASE_URL shows up early."""
    url = engine.url.render_as_string(hide_password=True)
    logger.info("Connecting to database %s", url)
    try:
        table_names = inspect(engine).get_table_names()
    except Exception as e:
        logger.error("Error connecting to database: %s", e)
        return
    logger.info("Found %d table(s): %s", len(table_names), ", ".join(sorted(table_names)))


if __name__ == "__main__":
    check_database()

    argv = ["worker", "--loglevel=info"]
    # A single-container deployment runs the scheduler inside the worker
    if os.getenv("CELERY_EMBED_BEAT", "true").lower() == "true":
        argv.append("--beat")
    celery_app.worker_main(argv)
