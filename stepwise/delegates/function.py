"""Delegate backed by a plain Python callable."""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from ..contracts import StepContext, StepResult
from .base import BaseDelegate

DelegateFunc = Callable[[str, StepContext], Union[StepResult, Awaitable[StepResult]]]


class FunctionDelegate(BaseDelegate):
    """Wrap a sync or async ``func(step_id, context)``."""

    def __init__(self, func: DelegateFunc, name: Optional[str] = None) -> None:
        self._func = func
        self.name = name or getattr(func, "__name__", "function")

    async def invoke(self, step_id: str, context: StepContext) -> StepResult:
        result: Any = self._func(step_id, context)
        if inspect.isawaitable(result):
            result = await result
        return result
