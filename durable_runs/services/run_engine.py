"""Run step execution engine.

Each queue delivery of ``(run_id, step_id)`` goes through
:meth:`RunEngine.execute_run_step`. Delivery is at-least-once and possibly
concurrent, so every decision is taken on a fresh read and the only write
that grants the right to run a step's business logic is the conditional
claim in :meth:`RunStore.claim_run_step`.
"""

import logging
from typing import Optional

from durable_runs.errors import AppError, normalize_error
from durable_runs.models.run import OPEN_RUN_STATUSES, TERMINAL_RUN_STATUSES, utcnow
from durable_runs.schemas.run import RunDto, RunStepDto, RunStepExecutionResult
from durable_runs.services.queue import QueuePublisher
from durable_runs.services.run_store import RunStore
from durable_runs.steps.base import StepDefinition
from durable_runs.steps.registry import StepRegistry

logger = logging.getLogger(__name__)


class RunEngine:
    """Claims, executes, persists and chains run steps."""

    def __init__(self, store: RunStore, registry: StepRegistry, publisher: QueuePublisher):
        self.store = store
        self.registry = registry
        self.publisher = publisher

    def execute_run_step(self, run_id: str, step_id: str, origin: str) -> RunStepExecutionResult:
        """
        Execute a single run step idempotently.

        Args:
            run_id: Run the step belongs to
            step_id: Registered step id
            origin: Origin the delivery came in on; checked against the
                configured callback origin before chaining

        Returns:
            Result carrying the step's status and, when the chain moved
            forward, the id of the enqueued next step

        Raises:
            AppError: ``not_found`` for an unknown run, ``bad_request`` for an
                unknown step id
            Exception: Whatever the step closure or the publisher raised,
                after the failure has been persisted
        """
        run = self.store.get_run(run_id)
        if run is None:
            raise AppError("not_found", 404, "Run not found.")

        if run.status in TERMINAL_RUN_STATUSES:
            logger.info(f"Run {run_id} is {run.status}, skipping step {step_id}")
            return self._result(str(run.id), step_id, run.status)

        definition = self.registry.get(step_id)
        step = self.store.ensure_run_step(
            run.id,
            definition.step_id,
            definition.step_name,
            definition.step_kind,
        )

        if step.status == "succeeded":
            return self._result(str(run.id), step_id, "succeeded")

        if step.status == "running":
            # Another delivery holds the claim
            return self._result(str(run.id), step_id, "running")

        next_step_id = definition.next_step_id(run.kind)

        if step.status in ("blocked", "waiting") and next_step_id:
            return self._resume_chain(run, step_id, next_step_id, origin)

        return self._claim_and_execute(run, definition, step, next_step_id, origin)

    def _resume_chain(
        self,
        run: RunDto,
        step_id: str,
        next_step_id: str,
        origin: str,
    ) -> RunStepExecutionResult:
        """Retry only the enqueue of a step whose business logic already succeeded."""
        logger.info(f"Resuming chain of run {run.id}: {step_id} -> {next_step_id}")

        try:
            self.publisher.enqueue_run_step(origin, str(run.id), next_step_id)
        except Exception as e:
            logger.warning(f"Re-enqueue of {next_step_id} for run {run.id} failed: {e}")
            self.store.update_run_step(run.id, step_id, status="blocked", error=normalize_error(e))
            raise

        # ended_at is left as recorded when the business logic finished
        self.store.update_run_step(run.id, step_id, status="succeeded", error=None)

        self.store.update_run_status(run.id, "running", from_statuses=("blocked",))

        return self._result(str(run.id), step_id, "succeeded", next_step_id)

    def _claim_and_execute(
        self,
        run: RunDto,
        definition: StepDefinition,
        step: RunStepDto,
        next_step_id: Optional[str],
        origin: str,
    ) -> RunStepExecutionResult:
        step_id = definition.step_id

        if run.status == "pending":
            self.store.update_run_status(run.id, "running", from_statuses=("pending",))

        claimed = self.store.claim_run_step(run.id, step_id, step.attempt)
        if claimed is None:
            current = self.store.get_run_step(run.id, step_id)
            status = current.status if current else "running"
            logger.info(f"Lost claim on step {step_id} of run {run.id} (status: {status})")
            if status == "pending":
                status = "running"
            return self._result(str(run.id), step_id, status)

        logger.info(f"Claimed step {step_id} of run {run.id} (attempt {claimed.attempt})")

        try:
            outputs = definition.run(str(run.id), str(run.project_id))
            # Outputs that cannot be stored fail the step like the closure raising
            self.store.update_run_step(
                run.id,
                step_id,
                status="waiting" if next_step_id else "succeeded",
                outputs=dict(outputs or {}),
                ended_at=utcnow(),
                error=None,
            )
        except Exception as e:
            logger.error(f"Step {step_id} of run {run.id} failed: {e}", exc_info=True)
            self.store.update_run_step(
                run.id,
                step_id,
                status="failed",
                ended_at=utcnow(),
                error=normalize_error(e),
            )
            self.store.update_run_status(run.id, "failed", from_statuses=OPEN_RUN_STATUSES)
            raise

        if not next_step_id:
            if self.store.update_run_status(run.id, "succeeded", from_statuses=OPEN_RUN_STATUSES):
                logger.info(f"Run {run.id} succeeded")
            else:
                logger.info(f"Run {run.id} was stopped while step {step_id} ran; status left as is")
            return self._result(str(run.id), step_id, "succeeded")

        try:
            self.publisher.enqueue_run_step(origin, str(run.id), next_step_id)
        except Exception as e:
            logger.warning(f"Enqueue of {next_step_id} for run {run.id} failed, blocking: {e}")
            self.store.update_run_step(run.id, step_id, status="blocked", error=normalize_error(e))
            self.store.update_run_status(run.id, "blocked", from_statuses=OPEN_RUN_STATUSES)
            raise

        self.store.update_run_step(run.id, step_id, status="succeeded")
        return self._result(str(run.id), step_id, "succeeded", next_step_id)

    @staticmethod
    def _result(
        run_id: str,
        step_id: str,
        status: str,
        next_step_id: Optional[str] = None,
    ) -> RunStepExecutionResult:
        return RunStepExecutionResult(
            run_id=str(run_id),
            step_id=step_id,
            status=status,
            next_step_id=next_step_id,
        )
