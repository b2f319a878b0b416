"""Step definitions."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

# (run_kind) -> next step id, or None at the end of the chain
NextStepResolver = Callable[[str], Optional[str]]

# (run_id, project_id) -> outputs bag
StepRunner = Callable[[str, str], Dict[str, Any]]


@dataclass(frozen=True)
class StepDefinition:
    """A named step: what it is, what it does and what follows it.

    ``run`` is invoked at most once per successful claim and must not rely
    on observing its own partial output from an earlier attempt.
    """

    step_id: str
    step_name: str
    step_kind: str  # 'llm', 'tool', 'sandbox', 'wait', 'approval', 'external_poll'
    next_step_id: NextStepResolver
    run: StepRunner


def terminal(_run_kind: str) -> Optional[str]:
    return None


def then(step_id: str) -> NextStepResolver:
    """Resolver that always continues with ``step_id``."""

    def resolve(_run_kind: str) -> Optional[str]:
        return step_id

    return resolve
