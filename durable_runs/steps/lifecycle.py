"""Run lifecycle steps: the chain every run starts and ends with."""

import logging
from typing import Any, Dict

from durable_runs.steps.base import StepDefinition, terminal, then

logger = logging.getLogger(__name__)

START_STEP_ID = "run.start"
COMPLETE_STEP_ID = "run.complete"


def start_run(run_id: str, project_id: str) -> Dict[str, Any]:
    logger.info(f"Starting run {run_id} for project {project_id}")
    return {"ok": True}


def complete_run(run_id: str, project_id: str) -> Dict[str, Any]:
    logger.info(f"Completing run {run_id} for project {project_id}")
    return {"ok": True}


start_step = StepDefinition(
    step_id=START_STEP_ID,
    step_name="Start run",
    step_kind="tool",
    next_step_id=then(COMPLETE_STEP_ID),
    run=start_run,
)

complete_step = StepDefinition(
    step_id=COMPLETE_STEP_ID,
    step_name="Complete run",
    step_kind="tool",
    next_step_id=terminal,
    run=complete_run,
)
