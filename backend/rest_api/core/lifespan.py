"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.config.logging import rest_api_logger as logger
from shared.config.logging import setup_logging
from shared.config.settings import settings
from shared.infrastructure.db import engine
from shared.infrastructure.events import build_notifier
from rest_api.models import Base


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Initialize logging
    setup_logging()

    # Validate production secrets before startup
    secret_errors = settings.validate_production_secrets()
    if secret_errors:
        for error in secret_errors:
            logger.error("Configuration error", error=error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(secret_errors)}. "
                "Server will not start with insecure configuration."
            )
        else:
            logger.warning(
                "Running with insecure defaults (acceptable for development only)"
            )

    logger.info("Starting REST API", env=settings.environment, realtime=settings.realtime_backend)

    if settings.db_bootstrap_on_startup:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified")

    # One notifier per process, handed to routes through get_notifier
    if getattr(app.state, "notifier", None) is None:
        app.state.notifier = build_notifier(settings)

    yield

    # Shutdown
    logger.info("Shutting down REST API")
    await app.state.notifier.close()
    logger.info("Realtime notifier closed")
