"""Delegate that runs a shell command, e.g. the project's test suite."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Dict, Optional

from ..contracts import Completed, Failed, StepContext, StepResult
from ..errors import DelegateUnavailableError
from .base import BaseDelegate

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 2000


class CommandDelegate(BaseDelegate):
    """Run ``command`` in a subprocess shell.

    Exit status 0 completes the step with the captured stdout. Any other
    status fails it with the tail of the combined output.
    """

    def __init__(
        self,
        command: str,
        name: Optional[str] = None,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.command = command
        self.name = name or command.split()[0]
        self.cwd = cwd
        self.timeout = timeout

    def _environment(self, step_id: str, context: StepContext) -> Dict[str, str]:
        env = dict(os.environ)
        env["STEPWISE_RUN_ID"] = context.run_id
        env["STEPWISE_WORKFLOW"] = context.workflow
        env["STEPWISE_STEP"] = step_id
        if context.branch:
            env["STEPWISE_BRANCH"] = context.branch
        if context.answer is not None:
            env["STEPWISE_ANSWER"] = context.answer
        if context.writes:
            env["STEPWISE_WRITES"] = os.pathsep.join(context.writes)
        return env

    async def invoke(self, step_id: str, context: StepContext) -> StepResult:
        logger.info(f"Running '{self.command}' for step {step_id}")
        try:
            process = await asyncio.create_subprocess_shell(
                self.command,
                cwd=self.cwd,
                env=self._environment(step_id, context),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise DelegateUnavailableError(self.name, str(e)) from e

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise DelegateUnavailableError(
                self.name, f"timed out after {self.timeout}s"
            ) from e

        output = stdout.decode(errors="replace")
        if process.returncode == 0:
            return Completed(output=output)
        tail = output[-OUTPUT_TAIL_CHARS:].strip()
        reason = f"exit status {process.returncode}"
        if tail:
            reason = f"{reason}: {tail}"
        return Failed(reason=reason)
