"""Repository abstraction for workflow run persistence."""

from __future__ import annotations

from typing import Protocol

from ..contracts import WorkflowRun


class RunRepository(Protocol):
    """Protocol for run persistence backends."""

    async def save_run(self, run: WorkflowRun) -> None:
        """Insert or replace the stored copy of ``run``."""

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        """Retrieve a run by id."""

    async def list_runs(self) -> list[WorkflowRun]:
        """Return all persisted runs, oldest first."""
