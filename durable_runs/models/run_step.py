"""RunStep model."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid

from durable_runs.database import Base
from durable_runs.models.run import JSONType, utcnow

STEP_KINDS = ("llm", "tool", "sandbox", "wait", "approval", "external_poll")


class RunStep(Base):
    """Execution record for one named step within one run (unique per run_id + step_id)."""

    __tablename__ = "run_steps"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id = Column(Uuid, ForeignKey("runs.id", ondelete="CASCADE"), nullable=False)
    step_id = Column(String(128), nullable=False)
    step_name = Column(Text, nullable=False)
    step_kind = Column(String(32), nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    # Optimistic-concurrency token, bumped by every successful claim
    attempt = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True))
    ended_at = Column(DateTime(timezone=True))
    error = Column(JSONType)
    inputs = Column(JSONType, nullable=False, default=dict)
    outputs = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("run_id", "step_id", name="run_steps_run_id_step_id_unique"),
        Index("run_steps_run_id_idx", "run_id"),
        Index("run_steps_run_id_step_name_idx", "run_id", "step_name"),
    )
