"""FastAPI application entry point."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from tenacity import before_sleep_log, retry, stop_after_attempt, wait_exponential

from durable_runs.config import settings
from durable_runs.errors import AppError, app_error_handler, unhandled_error_handler, validation_error_handler
from durable_runs.routes import jobs, runs
from durable_runs.steps.registry import build_default_registry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
def run_migrations():
    """Upgrade the database to the latest Alembic revision, waiting for it to come up."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini"))
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")

    if settings.RUN_MIGRATIONS_ON_STARTUP:
        logger.info("Running database migrations...")
        run_migrations()
        logger.info("Database migrations completed successfully")

    yield

    logger.info("Shutting down application...")


# Create FastAPI app
app = FastAPI(
    title="Durable Runs",
    description="Idempotent run step execution over an at-least-once queue",
    version="0.1.0",
    lifespan=lifespan,
)

# Resolved once, read-only thereafter
app.state.step_registry = build_default_registry()

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# Include routers
app.include_router(jobs.router)
app.include_router(runs.router)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}
