"""Base delegate interface for stepwise steps."""

from __future__ import annotations

import abc

from ..contracts import StepContext, StepResult


class BaseDelegate(metaclass=abc.ABCMeta):
    """Abstract boundary to an external capability.

    Side effects happen inside the delegate; callers only see the returned
    result. Implementations never retry on their own.
    """

    name: str = "delegate"

    @abc.abstractmethod
    async def invoke(self, step_id: str, context: StepContext) -> StepResult:
        """Carry out ``step_id`` and return exactly one result.

        Raises:
            DelegateUnavailableError: the capability could not be reached.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release resources held by the delegate (no-op by default)."""
        pass
