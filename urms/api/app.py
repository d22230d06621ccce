"""FastAPI application for the URMS backup service."""

import dataclasses
import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from urms.backup import BackupOrchestrator, BackupScheduler
from urms.config import URMSConfig
from .config import settings
from .routers import backup, health

# App-managed pattern: attach our own handler and don't propagate
# This makes us independent of uvicorn's root logger configuration
urms_logger = logging.getLogger("urms")
urms_logger.setLevel(logging.INFO)
urms_logger.propagate = False
urms_logger.handlers.clear()

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.INFO)
formatter = logging.Formatter(
    '%(asctime)s - [%(name)s] - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
console_handler.setFormatter(formatter)
urms_logger.addHandler(console_handler)

# Optional: Allow disabling app-managed logging via env var for production
if os.getenv("DISABLE_APP_LOGGING", "false").lower() == "true":
    urms_logger.handlers.clear()
    urms_logger.propagate = True  # Fall back to server-managed pattern

logger = logging.getLogger(__name__)


def build_config() -> URMSConfig:
    """URMSConfig from the environment with API setting overrides applied."""
    config = URMSConfig.from_env()

    database_overrides = {}
    if settings.storage_backend:
        database_overrides["backend"] = settings.storage_backend
    if settings.mongodb_uri:
        database_overrides["mongodb_uri"] = settings.mongodb_uri

    backup_overrides = {}
    if settings.backup_dir:
        backup_overrides["backup_dir"] = settings.backup_dir
    if settings.redis_url:
        backup_overrides["redis_url"] = settings.redis_url

    return dataclasses.replace(
        config,
        database=dataclasses.replace(config.database, **database_overrides),
        backup=dataclasses.replace(config.backup, **backup_overrides),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage orchestrator and scheduler lifecycle."""
    logger.info("Initializing backup service...")
    config = build_config()

    try:
        app.state.orchestrator = BackupOrchestrator.from_config(config)
        logger.info(
            f"Backup service initialized ({config.database.backend} store, "
            f"backups in {config.backup.backup_dir})"
        )
    except Exception as e:
        logger.error(f"Failed to initialize backup service: {e}")
        raise

    app.state.scheduler = BackupScheduler(
        app.state.orchestrator, poll_interval=config.backup.poll_interval
    )
    if settings.scheduler_enabled and config.backup.schedule_enabled:
        await app.state.scheduler.start()
    else:
        logger.info("Backup scheduler disabled")

    yield

    # Cleanup
    logger.info("Shutting down backup service...")
    await app.state.scheduler.stop()
    await app.state.orchestrator.close()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(backup.router, prefix=settings.api_prefix)
    app.include_router(health.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "docs": f"{settings.api_prefix}/docs"
        }

    return app


# Create default app instance
app = create_app()
