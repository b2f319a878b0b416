"""Run routes."""

import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends

from durable_runs.dependencies import get_publisher, get_store
from durable_runs.errors import AppError
from durable_runs.models.run import TERMINAL_RUN_STATUSES
from durable_runs.schemas.run import RunCreate, RunDto, RunStartResponse, RunStepDto
from durable_runs.services.queue import QueuePublisher
from durable_runs.services.run_store import RunStore
from durable_runs.steps.registry import FIRST_STEP_ID

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/runs", tags=["runs"])


def _get_run_or_404(store: RunStore, run_id: uuid.UUID) -> RunDto:
    run = store.get_run(run_id)
    if run is None:
        raise AppError("not_found", 404, "Run not found.")
    return run


@router.post("", response_model=RunDto, status_code=201)
def create_run(
    data: RunCreate,
    store: RunStore = Depends(get_store),
):
    """Create a new pending run."""
    return store.create_run(data.project_id, data.kind, data.metadata)


@router.get("/{run_id}", response_model=RunDto)
def get_run(
    run_id: uuid.UUID,
    store: RunStore = Depends(get_store),
):
    return _get_run_or_404(store, run_id)


@router.get("/{run_id}/steps", response_model=List[RunStepDto])
def list_run_steps(
    run_id: uuid.UUID,
    store: RunStore = Depends(get_store),
):
    """List the steps of a run, oldest first."""
    _get_run_or_404(store, run_id)
    return store.list_run_steps(run_id)


@router.post("/{run_id}/start", response_model=RunStartResponse)
def start_run(
    run_id: uuid.UUID,
    store: RunStore = Depends(get_store),
    publisher: QueuePublisher = Depends(get_publisher),
):
    """Start a run by enqueueing its first step.

    Starting twice only publishes the first step again; the engine ignores
    the duplicate.
    """
    run = _get_run_or_404(store, run_id)
    if run.status in TERMINAL_RUN_STATUSES:
        raise AppError("bad_request", 400, f"Run is {run.status}.")

    publisher.enqueue_run_step(publisher.callback_origin, str(run.id), FIRST_STEP_ID)
    logger.info(f"Started run {run.id}")

    return RunStartResponse(
        run_id=run.id,
        step_id=FIRST_STEP_ID,
        message="Run step enqueued",
    )


@router.post("/{run_id}/cancel", response_model=RunDto)
def cancel_run(
    run_id: uuid.UUID,
    store: RunStore = Depends(get_store),
):
    """Cancel a run; steps in flight finish but no further step is claimed."""
    return store.cancel_run(run_id)
