"""Declarative workflow definitions and branch lookup."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .constants import TERMINAL_TARGETS
from .contracts import OutcomeKind
from .errors import (
    OverlappingWritesError,
    UnknownOutcomeError,
    UnknownStepError,
    WorkflowDefinitionError,
)

logger = logging.getLogger(__name__)

# NeedsInput never branches: the run suspends at the same step.
BRANCHING_OUTCOMES = frozenset({OutcomeKind.COMPLETED.value, OutcomeKind.FAILED.value})


class FanOutBranch(BaseModel):
    """One of several delegates invoked concurrently for a single step."""

    name: str
    delegate: str
    writes: List[str] = Field(default_factory=list)


class Step(BaseModel):
    """Defines one step in a workflow."""

    id: str
    intent: str = ""
    delegate: Optional[str] = None
    parallel: List[FanOutBranch] = Field(default_factory=list)
    branches: Dict[str, str] = Field(default_factory=dict)
    default: Optional[str] = None
    loop: Optional[str] = None

    @property
    def is_fan_out(self) -> bool:
        return bool(self.parallel)

    def delegate_names(self) -> List[str]:
        if self.parallel:
            return [branch.delegate for branch in self.parallel]
        return [self.delegate] if self.delegate else []

    def targets(self) -> List[str]:
        targets = list(self.branches.values())
        if self.default:
            targets.append(self.default)
        return targets


class WorkflowDefinition(BaseModel):
    """Ordered steps of a workflow together with their branch rules."""

    name: str
    description: str = ""
    steps: List[Step] = Field(default_factory=list)
    default_branch: Optional[str] = None
    limits: Dict[str, int] = Field(default_factory=dict)

    @property
    def first_step(self) -> str:
        if not self.steps:
            raise WorkflowDefinitionError(f"Workflow '{self.name}' has no steps")
        return self.steps[0].id

    def get_step(self, step_id: str) -> Step:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise UnknownStepError(step_id, self.name)

    def successor(self, step_id: str, outcome_kind: OutcomeKind | str) -> str:
        """Return the step id or terminal target following ``outcome_kind``.

        Lookup order is the step's own branch for the outcome, then the
        step's ``default``, then the workflow ``default_branch``.

        Raises:
            UnknownStepError: ``step_id`` is not part of this workflow.
            UnknownOutcomeError: nothing maps the outcome.
        """
        kind = OutcomeKind(outcome_kind).value
        step = self.get_step(step_id)
        target = step.branches.get(kind) or step.default or self.default_branch
        if target is None:
            raise UnknownOutcomeError(step_id, kind)
        logger.debug(f"{self.name}: {step_id} --{kind}--> {target}")
        return target

    def delegate_names(self) -> List[str]:
        """All delegate references used by the workflow, in step order."""
        names: List[str] = []
        for step in self.steps:
            for name in step.delegate_names():
                if name not in names:
                    names.append(name)
        return names

    def check(self) -> "WorkflowDefinition":
        """Verify the workflow is well formed and return it."""
        if not self.steps:
            raise WorkflowDefinitionError(f"Workflow '{self.name}' has no steps")
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise WorkflowDefinitionError(
                    f"Duplicate step '{step.id}' in workflow '{self.name}'"
                )
            if step.id in TERMINAL_TARGETS:
                raise WorkflowDefinitionError(
                    f"Step id '{step.id}' is reserved for a terminal target"
                )
            seen.add(step.id)

        for step in self.steps:
            if bool(step.delegate) == bool(step.parallel):
                raise WorkflowDefinitionError(
                    f"Step '{step.id}' needs exactly one of 'delegate' or 'parallel'"
                )
            for kind in step.branches:
                if kind not in BRANCHING_OUTCOMES:
                    raise UnknownOutcomeError(step.id, kind)
            for target in step.targets():
                if target not in seen and target not in TERMINAL_TARGETS:
                    raise UnknownStepError(target, self.name)
            _check_disjoint_writes(step)

        if (
            self.default_branch is not None
            and self.default_branch not in seen
            and self.default_branch not in TERMINAL_TARGETS
        ):
            raise UnknownStepError(self.default_branch, self.name)
        return self


def _overlaps(a: PurePosixPath, b: PurePosixPath) -> bool:
    return a == b or a in b.parents or b in a.parents


def _check_disjoint_writes(step: Step) -> None:
    names = [branch.name for branch in step.parallel]
    if len(names) != len(set(names)):
        raise WorkflowDefinitionError(
            f"Parallel branches of step '{step.id}' must have unique names"
        )
    claimed: List[PurePosixPath] = []
    overlap: set[str] = set()
    for branch in step.parallel:
        paths = {PurePosixPath(resource) for resource in branch.writes}
        for path in paths:
            for other in claimed:
                if _overlaps(path, other):
                    # the deeper path is the one both branches would touch
                    overlap.add(str(max(path, other, key=lambda p: len(p.parts))))
        claimed.extend(paths)
    if overlap:
        raise OverlappingWritesError(step.id, overlap)
