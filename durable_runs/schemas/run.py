"""Run-related Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

RunKind = Literal["research", "implementation"]
RunStatusValue = Literal["pending", "running", "waiting", "blocked", "succeeded", "failed", "canceled"]
StepKind = Literal["llm", "tool", "sandbox", "wait", "approval", "external_poll"]


class RunDto(BaseModel):
    """Snapshot of a run row."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    project_id: UUID
    kind: RunKind
    status: RunStatusValue
    metadata: Dict[str, Any]
    created_at: datetime
    updated_at: datetime


class RunStepDto(BaseModel):
    """Snapshot of a run step row."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    run_id: UUID
    step_id: str
    step_name: str
    step_kind: StepKind
    status: RunStatusValue
    attempt: int
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error: Optional[Dict[str, Any]] = None
    inputs: Dict[str, Any]
    outputs: Dict[str, Any]
    created_at: datetime
    updated_at: datetime


class RunCreate(BaseModel):
    """Schema for creating a new run."""

    project_id: UUID
    kind: RunKind
    metadata: Optional[Dict[str, Any]] = None


class RunStartResponse(BaseModel):
    """Response after starting a run."""

    run_id: UUID
    step_id: str
    message: str


class RunStepJob(BaseModel):
    """Queue message body delivered to the run-step worker endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    run_id: str = Field(alias="runId", min_length=1)
    step_id: str = Field(alias="stepId", min_length=1)


class RunStepExecutionResult(BaseModel):
    """Outcome of one run-step invocation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    run_id: str = Field(alias="runId")
    step_id: str = Field(alias="stepId")
    status: Literal["succeeded", "failed", "canceled", "blocked", "waiting", "running"]
    next_step_id: Optional[str] = Field(default=None, alias="nextStepId")
