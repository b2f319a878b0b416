"""Persistence for runs and run steps.

Every write commits immediately and every read goes back to the database,
so state-machine decisions in the engine always see the latest committed
row. :meth:`RunStore.claim_run_step` is the conditional write that grants
execution; run status changes made by the engine are conditional too, so a
canceled run stays canceled.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from durable_runs.errors import AppError
from durable_runs.models.run import Run, utcnow
from durable_runs.models.run_step import RunStep
from durable_runs.schemas.run import RunDto, RunStepDto

logger = logging.getLogger(__name__)

IdLike = Union[str, uuid.UUID]

# A claim may only move a step out of these states
CLAIMABLE_STEP_STATUSES = ("pending", "failed")

NON_CANCELABLE_STATUSES = ("canceled", "failed", "succeeded")


def _parse_uuid(value: IdLike) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _to_run_dto(row: Run) -> RunDto:
    return RunDto(
        id=row.id,
        project_id=row.project_id,
        kind=row.kind,
        status=row.status,
        metadata=row.metadata_ or {},
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class RunStore:
    """Run and run-step persistence bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    def create_run(
        self,
        project_id: IdLike,
        kind: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RunDto:
        """Create a pending run."""
        project_key = _parse_uuid(project_id)
        if project_key is None:
            raise AppError("bad_request", 400, "Invalid project id.")

        run = Run(
            project_id=project_key,
            kind=kind,
            status="pending",
            metadata_=dict(metadata or {}),
        )
        self.db.add(run)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(run)

        logger.info(f"Created run {run.id} ({kind}) for project {project_key}")
        return _to_run_dto(run)

    def get_run(self, run_id: IdLike) -> Optional[RunDto]:
        key = _parse_uuid(run_id)
        if key is None:
            return None
        row = self.db.execute(
            select(Run).where(Run.id == key).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _to_run_dto(row) if row else None

    def _write(self, statement):
        """Execute a write and commit it, rolling back on any failure."""
        try:
            result = self.db.execute(statement)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result

    def update_run_status(
        self,
        run_id: IdLike,
        status: str,
        from_statuses: Optional[Sequence[str]] = None,
    ) -> bool:
        """
        Set a run's status.

        With ``from_statuses`` the update only applies while the run is in one
        of those states, so a concurrent cancel is never overwritten.

        Returns:
            True if the run row was updated
        """
        statement = update(Run).where(Run.id == _parse_uuid(run_id))
        if from_statuses is not None:
            statement = statement.where(Run.status.in_(from_statuses))
        result = self._write(
            statement.values(status=status, updated_at=utcnow()).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def ensure_run_step(
        self,
        run_id: IdLike,
        step_id: str,
        step_name: str,
        step_kind: str,
        inputs: Optional[Dict[str, Any]] = None,
    ) -> RunStepDto:
        """
        Create the run step, or fetch it if it already exists.

        Concurrent first deliveries race on the ``(run_id, step_id)`` unique
        constraint; the loser rolls back and reads the winner's row.

        Raises:
            AppError: ``db_insert_failed`` if neither insert nor fetch yields a row
        """
        step = RunStep(
            run_id=_parse_uuid(run_id),
            step_id=step_id,
            step_name=step_name,
            step_kind=step_kind,
            status="pending",
            attempt=0,
            inputs=dict(inputs or {}),
            outputs={},
        )
        self.db.add(step)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.get_run_step(run_id, step_id)
            if existing is None:
                raise AppError("db_insert_failed", 500, "Failed to create run step.")
            return existing
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(step)
        return RunStepDto.model_validate(step)

    def get_run_step(self, run_id: IdLike, step_id: str) -> Optional[RunStepDto]:
        key = _parse_uuid(run_id)
        if key is None:
            return None
        row = self.db.execute(
            select(RunStep)
            .where(RunStep.run_id == key, RunStep.step_id == step_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return RunStepDto.model_validate(row) if row else None

    def list_run_steps(self, run_id: IdLike) -> List[RunStepDto]:
        """List steps for a run, oldest first."""
        key = _parse_uuid(run_id)
        if key is None:
            return []
        rows = self.db.execute(
            select(RunStep)
            .where(RunStep.run_id == key)
            .order_by(RunStep.created_at.asc(), RunStep.id.asc())
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [RunStepDto.model_validate(row) for row in rows]

    def claim_run_step(
        self,
        run_id: IdLike,
        step_id: str,
        observed_attempt: int,
        now: Optional[datetime] = None,
    ) -> Optional[RunStepDto]:
        """
        Atomically claim a step for execution.

        The update only applies while the row still carries the attempt the
        caller observed and is in a claimable state, so of any number of
        concurrent callers holding the same observation at most one wins.

        Returns:
            The claimed step, or None if the claim was lost
        """
        now = now or utcnow()
        result = self._write(
            update(RunStep)
            .where(
                RunStep.run_id == _parse_uuid(run_id),
                RunStep.step_id == step_id,
                RunStep.attempt == observed_attempt,
                RunStep.status.in_(CLAIMABLE_STEP_STATUSES),
            )
            .values(
                status="running",
                attempt=observed_attempt + 1,
                started_at=func.coalesce(RunStep.started_at, now),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            return None
        return self.get_run_step(run_id, step_id)

    def update_run_step(self, run_id: IdLike, step_id: str, **fields: Any) -> None:
        """Unconditionally update columns of a run step."""
        fields.setdefault("updated_at", utcnow())
        self._write(
            update(RunStep)
            .where(RunStep.run_id == _parse_uuid(run_id), RunStep.step_id == step_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )

    def cancel_run(self, run_id: IdLike, now: Optional[datetime] = None) -> RunDto:
        """
        Cancel a run and every step that has not reached a terminal state.

        Safe to call repeatedly; ``succeeded`` and ``failed`` runs are left as is.

        Raises:
            AppError: ``not_found`` if the run does not exist
        """
        run = self.get_run(run_id)
        if run is None:
            raise AppError("not_found", 404, "Run not found.")
        if run.status in ("succeeded", "failed"):
            return run

        now = now or utcnow()
        try:
            self.db.execute(
                update(Run)
                .where(Run.id == run.id, Run.status.not_in(NON_CANCELABLE_STATUSES))
                .values(status="canceled", updated_at=now)
                .execution_options(synchronize_session=False)
            )
            self.db.execute(
                update(RunStep)
                .where(RunStep.run_id == run.id, RunStep.status.not_in(NON_CANCELABLE_STATUSES))
                .values(status="canceled", ended_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Canceled run {run.id}")
        return self.get_run(run.id)
