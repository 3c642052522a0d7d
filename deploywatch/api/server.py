"""FastAPI server for deployment health monitoring."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deploywatch import __version__
from deploywatch.api.credential_routes import credential_router
from deploywatch.api.health_routes import health_router
from deploywatch.api.notification_routes import notification_router
from deploywatch.config import settings
from deploywatch.credentials.store import CredentialSecretStore
from deploywatch.credentials.vault import ConfigurationError
from deploywatch.db import Database
from deploywatch.deployments.store import DeploymentStore
from deploywatch.health.prober import N8nProber
from deploywatch.health.recorder import HealthRecorder
from deploywatch.health.scheduler import HealthScheduler
from deploywatch.notifications import get_notifier
from deploywatch.notifications.store import NotificationStore

logger = logging.getLogger(__name__)


def init_state(app: FastAPI, db_path: Path | str | None = None) -> None:
    """Wire stores, recorder and scheduler onto ``app.state``."""
    db = Database(db_path)
    deployments = DeploymentStore(db)
    notifications = NotificationStore(db)
    secrets = CredentialSecretStore(db)
    recorder = HealthRecorder(db, deployments=deployments, notifications=notifications)

    notifier = get_notifier()
    scheduler = HealthScheduler(
        deployments,
        recorder,
        N8nProber(secrets=secrets),
        on_notification=notifier.push if notifier.is_enabled else None,
    )

    app.state.db = db
    app.state.deployments = deployments
    app.state.notifications = notifications
    app.state.credential_secrets = secrets
    app.state.recorder = recorder
    app.state.health_scheduler = scheduler
    app.state.notifier = notifier


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared resources on startup."""
    if not hasattr(app.state, "db"):
        init_state(app)
    logger.info("Database: %s", app.state.db.path)

    if not settings.encryption_secret:
        logger.warning("ENCRYPTION_SECRET is not set: credential endpoints will fail")

    scheduler: HealthScheduler = app.state.health_scheduler
    try:
        await scheduler.start()
    except Exception:
        logger.exception("Health scheduler failed to start")

    yield

    # Shutdown
    await scheduler.stop()


async def _configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def create_app() -> FastAPI:
    app = FastAPI(
        title="deploywatch",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ConfigurationError, _configuration_error)

    app.include_router(health_router, prefix="/api")
    app.include_router(notification_router, prefix="/api")
    app.include_router(credential_router, prefix="/api")

    @app.get("/api/status")
    def status() -> dict[str, object]:
        return {"status": "ok", "version": __version__}

    return app
