"""Exception hierarchy for stepwise."""

from __future__ import annotations

from typing import Optional


class StepwiseError(Exception):
    """Base class for all stepwise errors."""


class WorkflowDefinitionError(StepwiseError):
    """A workflow definition is malformed. Never recovered."""


class UnknownStepError(WorkflowDefinitionError):
    def __init__(self, step_id: str, workflow: Optional[str] = None) -> None:
        self.step_id = step_id
        self.workflow = workflow
        where = f" in workflow '{workflow}'" if workflow else ""
        super().__init__(f"Unknown step '{step_id}'{where}")


class UnknownOutcomeError(WorkflowDefinitionError):
    def __init__(self, step_id: str, outcome: str) -> None:
        self.step_id = step_id
        self.outcome = outcome
        super().__init__(f"No branch for outcome '{outcome}' of step '{step_id}'")


class OverlappingWritesError(WorkflowDefinitionError):
    """Two fan-out branches of one step declare the same or nested paths."""

    def __init__(self, step_id: str, resources: set[str]) -> None:
        self.step_id = step_id
        self.resources = resources
        joined = ", ".join(sorted(resources))
        super().__init__(
            f"Parallel branches of step '{step_id}' overlap on: {joined}"
        )


class WorkflowNotFoundError(WorkflowDefinitionError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Workflow '{name}' not found")


class DelegateUnavailableError(StepwiseError):
    """A delegate could not produce a result. Fatal for the run."""

    def __init__(self, delegate: str, reason: str) -> None:
        self.delegate = delegate
        self.reason = reason
        super().__init__(f"Delegate '{delegate}' unavailable: {reason}")


class LimitExceeded(StepwiseError):
    """Control-flow signal raised when a loop has no attempts left."""

    def __init__(self, loop_tag: str, ceiling: int, attempts: int) -> None:
        self.loop_tag = loop_tag
        self.ceiling = ceiling
        self.attempts = attempts
        super().__init__(
            f"Loop '{loop_tag}' exhausted: {attempts} of {ceiling} attempts used"
        )


class RunStateError(StepwiseError):
    """Operation is not valid for the run's current state."""
