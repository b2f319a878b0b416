"""Step registry: read-only lookup from step id to definition."""

from types import MappingProxyType
from typing import Iterable, List

from durable_runs.errors import AppError
from durable_runs.steps.base import StepDefinition
from durable_runs.steps.lifecycle import START_STEP_ID, complete_step, start_step

FIRST_STEP_ID = START_STEP_ID


class StepRegistry:
    """Immutable mapping of step definitions, built once and passed around."""

    def __init__(self, definitions: Iterable[StepDefinition]):
        steps = {}
        for definition in definitions:
            if definition.step_id in steps:
                raise ValueError(f"Duplicate step id: {definition.step_id}")
            steps[definition.step_id] = definition
        self._steps = MappingProxyType(steps)

    def get(self, step_id: str) -> StepDefinition:
        """
        Look up a step definition.

        Raises:
            AppError: ``bad_request`` for an unknown step id
        """
        definition = self._steps.get(step_id)
        if definition is None:
            raise AppError("bad_request", 400, f"Unknown step: {step_id}")
        return definition

    def step_ids(self) -> List[str]:
        return sorted(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __len__(self) -> int:
        return len(self._steps)


def build_default_registry() -> StepRegistry:
    """Registry with the standard run chain ``run.start -> run.complete``."""
    return StepRegistry([start_step, complete_step])
