"""SQLAlchemy ORM models."""

from durable_runs.models.run import Run
from durable_runs.models.run_step import RunStep

__all__ = [
    "Run",
    "RunStep",
]
