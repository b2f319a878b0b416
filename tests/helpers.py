"""Test doubles shared by the test modules."""

from durable_runs.steps.base import StepDefinition, terminal, then
from durable_runs.steps.registry import StepRegistry

ORIGIN = "https://app.example.com"


class FakePublisher:
    """Records enqueue attempts; raises ``fail_with`` when set."""

    callback_origin = ORIGIN

    def __init__(self, fail_with=None):
        self.calls = []
        self.fail_with = fail_with

    def enqueue_run_step(self, origin, run_id, step_id):
        self.calls.append((origin, run_id, step_id))
        if self.fail_with is not None:
            raise self.fail_with


class RecordingStep:
    """Step closure that counts invocations and can be told to fail."""

    def __init__(self, outputs=None, error=None):
        self.calls = []
        self.outputs = outputs if outputs is not None else {"ok": True}
        self.error = error

    def __call__(self, run_id, project_id):
        self.calls.append((run_id, project_id))
        if self.error is not None:
            raise self.error
        return self.outputs


def make_registry(start, complete):
    """Two-step chain ``run.start -> run.complete`` backed by the given closures."""
    return StepRegistry(
        [
            StepDefinition("run.start", "Start run", "tool", then("run.complete"), start),
            StepDefinition("run.complete", "Complete run", "tool", terminal, complete),
        ]
    )
