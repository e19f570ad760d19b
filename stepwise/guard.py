"""Bounded retries per loop tag and per run."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from .config import LimitsConfig
from .errors import LimitExceeded

logger = logging.getLogger(__name__)


class IterationGuard:
    """Track attempts per loop tag against configured ceilings.

    The guard does not own its counters: ``attempts`` is the mapping stored
    on the run, so the counts travel with the run when it is persisted.
    """

    def __init__(
        self,
        attempts: Dict[str, int],
        limits: Optional[LimitsConfig] = None,
        workflow_limits: Optional[Dict[str, int]] = None,
    ) -> None:
        self._attempts = attempts
        self._limits = limits or LimitsConfig()
        self._workflow_limits = workflow_limits or {}

    def ceiling(self, loop_tag: str) -> int:
        return self._limits.ceiling_for(loop_tag, self._workflow_limits)

    def attempts(self, loop_tag: str) -> int:
        return self._attempts.get(loop_tag, 0)

    def remaining(self, loop_tag: str) -> int:
        return max(0, self.ceiling(loop_tag) - self.attempts(loop_tag))

    def _check(self, loop_tag: str, count: int) -> None:
        ceiling = self.ceiling(loop_tag)
        used = self.attempts(loop_tag)
        if used + count > ceiling:
            logger.warning(
                f"Loop '{loop_tag}' refused {count} more attempt(s): {used}/{ceiling} used"
            )
            raise LimitExceeded(loop_tag, ceiling, used)

    def record_attempt(self, loop_tag: str, count: int = 1) -> int:
        """Record ``count`` attempts on ``loop_tag`` and return what is left.

        Raises:
            LimitExceeded: the attempts would go past the ceiling. Nothing is
                recorded in that case.
        """
        self._check(loop_tag, count)
        self._attempts[loop_tag] = self.attempts(loop_tag) + count
        logger.debug(
            f"Loop '{loop_tag}' attempt {self.attempts(loop_tag)}/{self.ceiling(loop_tag)}"
        )
        return self.remaining(loop_tag)

    def record_attempts(self, counts: Mapping[str, int]) -> None:
        """Record attempts on several loop tags as one unit.

        Every tag is checked before any counter moves, so a refusal on one
        tag leaves all of them as they were.
        """
        for loop_tag, count in counts.items():
            self._check(loop_tag, count)
        for loop_tag, count in counts.items():
            self.record_attempt(loop_tag, count)
