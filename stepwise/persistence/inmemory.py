"""In-memory implementation of the run repository."""

from __future__ import annotations

from typing import Dict

from ..contracts import WorkflowRun
from .repository import RunRepository


class InMemoryRunRepository(RunRepository):
    """Store runs in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, WorkflowRun] = {}

    async def save_run(self, run: WorkflowRun) -> None:
        # store a copy so later mutation of the live run is not visible
        self._runs[run.run_id] = run.model_copy(deep=True)

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def list_runs(self) -> list[WorkflowRun]:
        return sorted(
            (run.model_copy(deep=True) for run in self._runs.values()),
            key=lambda run: run.started_at,
        )
