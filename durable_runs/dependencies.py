"""FastAPI dependencies wiring the store, registry, publisher and engine."""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from durable_runs.database import get_db
from durable_runs.services.queue import QStashClient, QueuePublisher
from durable_runs.services.run_engine import RunEngine
from durable_runs.services.run_store import RunStore
from durable_runs.steps.registry import StepRegistry


def get_registry(request: Request) -> StepRegistry:
    """Step registry built once at startup and kept on ``app.state``."""
    return request.app.state.step_registry


def get_publisher() -> QueuePublisher:
    return QueuePublisher(QStashClient())


def get_store(db: Session = Depends(get_db)) -> RunStore:
    return RunStore(db)


def get_engine(
    store: RunStore = Depends(get_store),
    registry: StepRegistry = Depends(get_registry),
    publisher: QueuePublisher = Depends(get_publisher),
) -> RunEngine:
    return RunEngine(store, registry, publisher)
