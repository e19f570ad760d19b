"""Core contracts for stepwise workflow runs."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OutcomeKind(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    NEEDS_INPUT = "needs_input"


class Completed(BaseModel):
    """The delegate finished the step."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["completed"] = "completed"
    output: Any = None


class Failed(BaseModel):
    """The delegate ran but the step did not succeed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["failed"] = "failed"
    reason: str


class NeedsInput(BaseModel):
    """The delegate cannot continue without an answer from the operator."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["needs_input"] = "needs_input"
    question: str


StepResult = Annotated[
    Union[Completed, Failed, NeedsInput], Field(discriminator="kind")
]
STEP_RESULT_TYPES = (Completed, Failed, NeedsInput)


def outcome_of(result: StepResult) -> OutcomeKind:
    return OutcomeKind(result.kind)


class PreviousOutput(BaseModel):
    """Output produced by the step that ran before the current one."""

    step_id: str
    output: Any


class StepContext(BaseModel):
    """Read-only payload handed to a delegate for one invocation."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    workflow: str
    step_id: str
    intent: str = ""
    inputs: Dict[str, Any] = Field(default_factory=dict)
    previous_output: Optional[PreviousOutput] = None
    outputs: Dict[str, Any] = Field(default_factory=dict)
    answer: Optional[str] = None
    branch: Optional[str] = None
    writes: List[str] = Field(default_factory=list)


class RunState(str, Enum):
    RUNNING = "running"
    AWAITING_INPUT = "awaiting_input"
    ESCALATED = "escalated"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {RunState.ESCALATED, RunState.COMPLETED, RunState.ABORTED}
)


class StepLogEntry(BaseModel):
    """One delegate invocation and the result it produced."""

    step_id: str
    result: StepResult
    visit: int = 1
    branch: Optional[str] = None
    attempt: Optional[int] = None
    timestamp: datetime = Field(default_factory=_utc_now)

    def describe(self) -> str:
        name = f"{self.step_id}[{self.branch}]" if self.branch else self.step_id
        if self.attempt is not None:
            name += f" (attempt {self.attempt})"
        result = self.result
        if isinstance(result, Failed):
            detail = f"failed: {result.reason}"
        elif isinstance(result, NeedsInput):
            detail = f"needs input: {result.question}"
        else:
            detail = "completed"
        return f"{name} -> {detail}"


class WorkflowRun(BaseModel):
    """State of one execution of a workflow definition."""

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow: str
    state: RunState = RunState.RUNNING
    cursor: Optional[str] = None
    visits: int = 0
    attempts: Dict[str, int] = Field(default_factory=dict)
    log: List[StepLogEntry] = Field(default_factory=list)
    inputs: Dict[str, Any] = Field(default_factory=dict)
    outputs: Dict[str, Any] = Field(default_factory=dict)
    previous_output: Optional[PreviousOutput] = None
    pending_question: Optional[str] = None
    answer: Optional[str] = None
    abort_requested: bool = False
    abort_reason: Optional[str] = None
    ended_reason: Optional[str] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=_utc_now)
    finished_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        """Return ``True`` once the run reached a terminal state."""
        return self.state.is_terminal

    @property
    def visited_steps(self) -> List[str]:
        """Step ids in invocation order, one entry per step visit."""
        visited: List[str] = []
        last_visit = None
        for entry in self.log:
            # fan-out branches of one visit share the visit number
            if entry.visit != last_visit:
                visited.append(entry.step_id)
                last_visit = entry.visit
        return visited

    def entries_for(self, step_id: str) -> List[StepLogEntry]:
        return [entry for entry in self.log if entry.step_id == step_id]

    def report(self) -> str:
        """Human readable history and the condition that ended the run."""
        lines = [f"Run {self.run_id} ({self.workflow}): {self.state.value}"]
        if self.ended_reason:
            lines.append(f"Reason: {self.ended_reason}")
        if self.error:
            lines.append(f"Error: {self.error}")
        if self.pending_question:
            lines.append(f"Waiting on: {self.pending_question}")
        if not self.log:
            lines.append("No steps were executed.")
        for position, entry in enumerate(self.log, start=1):
            lines.append(f"{position}. {entry.describe()}")
        return "\n".join(lines)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "WorkflowRun":
        return cls.model_validate_json(data)
