"""Run model."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from durable_runs.database import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")

RUN_STATUSES = ("pending", "running", "waiting", "blocked", "succeeded", "failed", "canceled")
RUN_KINDS = ("research", "implementation")

# No step of a run in one of these states is ever claimed again
TERMINAL_RUN_STATUSES = ("failed", "canceled")

# Runs the engine may still move between states
OPEN_RUN_STATUSES = ("pending", "running", "waiting", "blocked")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Run(Base):
    """Run represents a single end-to-end workflow execution for a project."""

    __tablename__ = "runs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, nullable=False)
    kind = Column(String(32), nullable=False)  # 'research', 'implementation'
    status = Column(String(32), nullable=False, default="pending")
    # 'metadata' is reserved on declarative classes
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("runs_project_id_idx", "project_id"),)
