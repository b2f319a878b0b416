"""Queue callback routes."""

import logging

from fastapi import APIRouter, Depends

from durable_runs.dependencies import get_engine, get_publisher
from durable_runs.schemas.run import RunStepJob
from durable_runs.services.queue import QueuePublisher
from durable_runs.services.run_engine import RunEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/run-step")
def run_step(
    job: RunStepJob,
    engine: RunEngine = Depends(get_engine),
    publisher: QueuePublisher = Depends(get_publisher),
):
    """Execute one run step delivered by the queue.

    Signature verification happens in front of this handler. Errors are
    returned as non-2xx responses so the queue redelivers.
    """
    logger.info(f"Run-step delivery: run {job.run_id}, step {job.step_id}")
    result = engine.execute_run_step(job.run_id, job.step_id, origin=publisher.callback_origin)
    return result.model_dump(by_alias=True, exclude_none=True)
