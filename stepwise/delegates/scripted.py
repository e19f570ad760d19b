"""Delegate that replays a fixed sequence of results."""

from __future__ import annotations

from collections import defaultdict, deque
from pathlib import Path
from typing import Any, Deque, Dict, Iterable, List, Mapping, Tuple

import yaml
from pydantic import TypeAdapter

from ..contracts import Completed, Failed, NeedsInput, StepContext, StepResult
from ..errors import DelegateUnavailableError
from .base import BaseDelegate

_RESULT_ADAPTER: TypeAdapter = TypeAdapter(StepResult)


def parse_result(item: Any) -> StepResult:
    """Build a result from its short script form.

    Accepts ``{"completed": output}``, ``{"failed": reason}``,
    ``{"needs_input": question}``, the bare string ``"completed"`` or the
    full ``{"kind": ...}`` form.
    """
    if isinstance(item, (Completed, Failed, NeedsInput)):
        return item
    if item == "completed":
        return Completed()
    if isinstance(item, Mapping):
        if "kind" in item:
            return _RESULT_ADAPTER.validate_python(dict(item))
        if len(item) == 1:
            kind, value = next(iter(item.items()))
            if kind == "completed":
                return Completed(output=value)
            if kind == "failed":
                return Failed(reason=str(value))
            if kind == "needs_input":
                return NeedsInput(question=str(value))
    raise ValueError(f"Cannot parse step result from {item!r}")


class ScriptedDelegate(BaseDelegate):
    """Replay queued results keyed by step id or fan-out branch name.

    Useful for dry runs and tests. Every invocation is recorded in
    ``calls``.
    """

    name = "scripted"

    def __init__(self, script: Mapping[str, Iterable[Any]] | None = None) -> None:
        self._queues: Dict[str, Deque[StepResult]] = defaultdict(deque)
        self.calls: List[Tuple[str, StepContext]] = []
        for key, results in (script or {}).items():
            self.extend(key, results)

    def extend(self, key: str, results: Iterable[Any]) -> None:
        self._queues[key].extend(parse_result(item) for item in results)

    def pending(self, key: str) -> int:
        return len(self._queues.get(key, ()))

    async def invoke(self, step_id: str, context: StepContext) -> StepResult:
        key = context.branch or step_id
        self.calls.append((key, context))
        queue = self._queues.get(key)
        if not queue:
            raise DelegateUnavailableError(self.name, f"no scripted result left for '{key}'")
        return queue.popleft()

    @classmethod
    def from_file(cls, path: str | Path) -> "ScriptedDelegate":
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, Mapping):
            raise ValueError(f"Script {path} must map step ids to result lists")
        return cls(data)
