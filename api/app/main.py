from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import OperationalError

from .errors import register_exception_handlers
from .middleware import APILoggerMiddleware, SecurityHeadersMiddleware
from .routers import (
    admin,
    admin_articles,
    articles,
    auth,
    comments,
    media,
    newsletter,
    notifications,
    profile,
    system,
    taxonomy,
    users,
)
from .seed import ensure_seed_data
from .settings import API_LOGGER_ENABLED, CORS_ORIGINS, LOG_LEVEL, MEDIA_LOCATION, MEDIA_URL_PREFIX

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

_STARTUP_COMPLETE = False


def _alembic_config() -> Config:
    base_dir = Path(__file__).resolve().parent.parent
    cfg = Config(str(base_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(base_dir / "alembic"))
    # Keep the application logging setup when migrating at startup
    cfg.attributes["configure_logger"] = False
    return cfg


def run_migrations() -> None:
    logger.info("run_migrations: Starting...")
    alembic_cfg = _alembic_config()

    from .db import engine

    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(connection)
            current_heads = set(context.get_current_heads())
        heads = set(ScriptDirectory.from_config(alembic_cfg).get_heads())
    finally:
        # Alembic opens its own connections
        engine.dispose()

    if current_heads == heads:
        logger.info(f"Database is up to date (revision: {', '.join(sorted(heads))}), skipping migrations.")
        return

    logger.info(f"Current revision(s): {sorted(current_heads)}, target: {sorted(heads)}. Running migrations...")
    command.upgrade(alembic_cfg, "heads")
    logger.info("run_migrations: Completed successfully.")


def run_startup_tasks() -> None:
    global _STARTUP_COMPLETE
    if _STARTUP_COMPLETE:
        logger.info("run_startup_tasks: Already completed, skipping.")
        return
    try:
        run_migrations()
        ensure_seed_data()
        Path(MEDIA_LOCATION).mkdir(parents=True, exist_ok=True)
        _STARTUP_COMPLETE = True
        logger.info("Startup tasks completed.")
    except OperationalError as e:
        # Database unreachable: serve anyway, every permission check denies until it is back
        logger.error(f"Startup tasks skipped, database unavailable: {e}")
    except Exception as e:
        logger.error(f"Startup tasks failed: {e}", exc_info=True)
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    # Server won't accept requests until migrations and seeding are done
    run_startup_tasks()
    logger.info("Quillpress API server ready")
    yield
    logger.info("Shutting down application...")


app = FastAPI(
    title="Quillpress API",
    version="1.0.0",
    description="Multi-author blog and CMS API",
    lifespan=lifespan,
)

register_exception_handlers(app)

if CORS_ORIGINS == ["*"]:
    logger.warning(
        "CORS is configured to allow all origins. "
        "This is insecure for production. Set CORS_ORIGINS to specific domains."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With", "X-Request-Id"],
    expose_headers=["X-Request-Id"],
    max_age=600,
)
app.add_middleware(SecurityHeadersMiddleware)
if API_LOGGER_ENABLED:
    app.add_middleware(APILoggerMiddleware)


app.include_router(system.router)
app.include_router(auth.router)
app.include_router(profile.router)
app.include_router(users.router)
app.include_router(admin.router)
app.include_router(articles.router)
app.include_router(admin_articles.router)
app.include_router(comments.router)
app.include_router(taxonomy.router)
app.include_router(media.router)
app.include_router(newsletter.router)
app.include_router(notifications.router)


# Uploaded media is served straight from MEDIA_LOCATION
media_path = Path(MEDIA_LOCATION)
media_path.mkdir(parents=True, exist_ok=True)
app.mount(MEDIA_URL_PREFIX, StaticFiles(directory=str(media_path)), name="media")
logger.info(f"Mounted media at {MEDIA_URL_PREFIX} from {MEDIA_LOCATION}")
