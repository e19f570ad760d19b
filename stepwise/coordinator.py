"""State machine that drives a workflow run step by step."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import LimitsConfig
from .constants import RUN_BUDGET_TAG, TERMINAL_COMPLETE, TERMINAL_ESCALATE
from .contracts import (
    STEP_RESULT_TYPES,
    Completed,
    Failed,
    NeedsInput,
    PreviousOutput,
    RunState,
    StepContext,
    StepLogEntry,
    StepResult,
    WorkflowRun,
    outcome_of,
)
from .definition import FanOutBranch, Step, WorkflowDefinition
from .delegates.base import BaseDelegate
from .errors import (
    DelegateUnavailableError,
    LimitExceeded,
    RunStateError,
    WorkflowDefinitionError,
)
from .guard import IterationGuard
from .persistence import RunRepository

logger = logging.getLogger(__name__)


def join_results(results: List[Tuple[str, StepResult]]) -> StepResult:
    """Fold the results of a fan-out step into one.

    Any failure fails the step. Otherwise any question suspends it.
    Otherwise the step completes with the outputs keyed by branch name.
    """
    failures = [(name, r) for name, r in results if isinstance(r, Failed)]
    if failures:
        return Failed(reason="; ".join(f"{name}: {r.reason}" for name, r in failures))
    questions = [(name, r) for name, r in results if isinstance(r, NeedsInput)]
    if questions:
        return NeedsInput(
            question="\n".join(f"[{name}] {r.question}" for name, r in questions)
        )
    return Completed(output={name: r.output for name, r in results})


class Coordinator:
    """Drive runs of one workflow definition.

    The coordinator keeps no per-run state of its own: everything a run
    needs lives on the ``WorkflowRun`` passed to each operation. Delegates
    are looked up by the references used in the definition.
    """

    def __init__(
        self,
        definition: WorkflowDefinition,
        delegates: Mapping[str, BaseDelegate],
        limits: Optional[LimitsConfig] = None,
        repository: Optional[RunRepository] = None,
    ) -> None:
        self.definition = definition
        self._delegates: Dict[str, BaseDelegate] = dict(delegates)
        self._limits = limits or LimitsConfig()
        self._repository = repository

    def guard_for(self, run: WorkflowRun) -> IterationGuard:
        return IterationGuard(run.attempts, self._limits, self.definition.limits)

    # ------------------------------------------------------------------
    # Public operations
    def start(self, inputs: Optional[Dict[str, Any]] = None) -> WorkflowRun:
        """Create a run positioned at the workflow's first step."""
        run = WorkflowRun(
            workflow=self.definition.name,
            cursor=self.definition.first_step,
            inputs=dict(inputs or {}),
        )
        logger.info(f"Started {run.workflow} run {run.run_id} at {run.cursor}")
        return run

    async def run(self, inputs: Optional[Dict[str, Any]] = None) -> WorkflowRun:
        return await self.advance(self.start(inputs))

    async def advance(self, run: WorkflowRun) -> WorkflowRun:
        """Execute steps until the run ends or waits for input."""
        self._check_workflow(run)
        while run.state is RunState.RUNNING:
            if run.abort_requested:
                self._finish(run, RunState.ABORTED, run.abort_reason or "aborted")
                break
            await self._execute_step(run)
            await self._save(run)
        await self._save(run)
        return run

    async def resume(self, run: WorkflowRun, answer: str) -> WorkflowRun:
        """Supply the answer a suspended run asked for and continue it.

        The step that asked the question is invoked again with ``answer``
        in its context.
        """
        self._check_workflow(run)
        if run.state is not RunState.AWAITING_INPUT:
            raise RunStateError(
                f"Run {run.run_id} is {run.state.value}, not awaiting input"
            )
        logger.info(f"Resuming run {run.run_id} at {run.cursor}")
        run.answer = answer
        run.pending_question = None
        run.state = RunState.RUNNING
        return await self.advance(run)

    async def abort(self, run: WorkflowRun, reason: str = "aborted by operator") -> WorkflowRun:
        """Request that ``run`` stop.

        A run waiting for input ends immediately. A running run ends at the
        next point it would invoke a delegate or when in-flight invocations
        return; their results are discarded.
        """
        if run.is_finished:
            logger.debug(f"Ignoring abort of finished run {run.run_id}")
            return run
        run.abort_requested = True
        run.abort_reason = reason
        if run.state is RunState.AWAITING_INPUT:
            self._finish(run, RunState.ABORTED, reason)
            await self._save(run)
        return run

    async def close(self) -> None:
        """Close every delegate this coordinator was given, once each."""
        closed = set()
        for delegate in self._delegates.values():
            if id(delegate) in closed:
                continue
            closed.add(id(delegate))
            await delegate.close()

    # ------------------------------------------------------------------
    # Step execution
    async def _execute_step(self, run: WorkflowRun) -> None:
        try:
            step = self.definition.get_step(run.cursor)
        except WorkflowDefinitionError as e:
            self._finish(run, RunState.ESCALATED, "workflow definition error", error=e)
            return

        resuming = run.answer is not None
        branches: List[Optional[FanOutBranch]] = list(step.parallel) or [None]
        guard = self.guard_for(run)
        charges = {RUN_BUDGET_TAG: len(branches)}
        if step.loop and not resuming:
            charges[step.loop] = charges.get(step.loop, 0) + 1
        try:
            guard.record_attempts(charges)
        except LimitExceeded as e:
            self._finish(run, RunState.ESCALATED, str(e))
            return

        attempt = guard.attempts(step.loop) if step.loop else None
        run.visits += 1
        visit = run.visits
        answer = run.answer
        logger.info(
            f"Run {run.run_id}: invoking {step.id}"
            + (f" ({len(branches)} in parallel)" if step.is_fan_out else "")
        )

        outcomes = await asyncio.gather(
            *(
                self._invoke(step, branch, self._context(run, step, branch, answer))
                for branch in branches
            ),
            return_exceptions=True,
        )
        run.answer = None

        if run.abort_requested:
            logger.info(f"Run {run.run_id}: discarding results of {step.id} after abort")
            self._finish(run, RunState.ABORTED, run.abort_reason or "aborted")
            return

        results: List[Tuple[str, StepResult]] = []
        errors: List[Exception] = []
        for branch, outcome in zip(branches, outcomes):
            if isinstance(outcome, Exception):
                if not isinstance(outcome, DelegateUnavailableError):
                    logger.error(
                        f"Run {run.run_id}: delegate for {step.id} raised {outcome!r}",
                        exc_info=outcome,
                    )
                errors.append(outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            name = branch.name if branch else step.id
            results.append((name, outcome))
            run.log.append(
                StepLogEntry(
                    step_id=step.id,
                    result=outcome,
                    visit=visit,
                    branch=branch.name if branch else None,
                    attempt=attempt,
                )
            )

        if errors:
            self._finish(
                run, RunState.ESCALATED, f"step '{step.id}' could not run", error=errors[0]
            )
            return

        result = join_results(results) if step.is_fan_out else results[0][1]
        self._apply(run, step, result)

    async def _invoke(
        self, step: Step, branch: Optional[FanOutBranch], context: StepContext
    ) -> StepResult:
        name = branch.delegate if branch else step.delegate
        delegate = self._delegates.get(name)
        if delegate is None:
            raise DelegateUnavailableError(name, "no delegate registered")
        result = await delegate.invoke(step.id, context)
        if not isinstance(result, STEP_RESULT_TYPES):
            raise DelegateUnavailableError(
                name, f"returned {type(result).__name__} instead of a step result"
            )
        return result

    def _context(
        self,
        run: WorkflowRun,
        step: Step,
        branch: Optional[FanOutBranch],
        answer: Optional[str],
    ) -> StepContext:
        return StepContext(
            run_id=run.run_id,
            workflow=run.workflow,
            step_id=step.id,
            intent=step.intent,
            inputs=dict(run.inputs),
            previous_output=run.previous_output,
            outputs=dict(run.outputs),
            answer=answer,
            branch=branch.name if branch else None,
            writes=list(branch.writes) if branch else [],
        )

    def _apply(self, run: WorkflowRun, step: Step, result: StepResult) -> None:
        if isinstance(result, NeedsInput):
            run.state = RunState.AWAITING_INPUT
            run.pending_question = result.question
            logger.info(f"Run {run.run_id}: {step.id} is waiting for input")
            return

        if isinstance(result, Completed):
            run.outputs[step.id] = result.output
            run.previous_output = PreviousOutput(step_id=step.id, output=result.output)

        kind = outcome_of(result)
        try:
            target = self.definition.successor(step.id, kind)
        except WorkflowDefinitionError as e:
            self._finish(run, RunState.ESCALATED, "workflow definition error", error=e)
            return

        if target == TERMINAL_COMPLETE:
            self._finish(run, RunState.COMPLETED, f"step '{step.id}' finished the workflow")
        elif target == TERMINAL_ESCALATE:
            reason = f"step '{step.id}' {kind.value} and routes to escalation"
            if isinstance(result, Failed):
                reason += f": {result.reason}"
            self._finish(run, RunState.ESCALATED, reason)
        else:
            logger.info(f"Run {run.run_id}: {step.id} {kind.value} -> {target}")
            run.cursor = target

    # ------------------------------------------------------------------
    # Helpers
    def _finish(
        self,
        run: WorkflowRun,
        state: RunState,
        reason: str,
        error: Optional[BaseException] = None,
    ) -> None:
        run.state = state
        run.ended_reason = reason
        run.pending_question = None
        run.finished_at = datetime.now(timezone.utc)
        if error is not None:
            run.error = f"{type(error).__name__}: {error}"
        if state is RunState.COMPLETED:
            logger.info(f"Run {run.run_id} completed: {reason}")
        else:
            logger.warning(f"Run {run.run_id} {state.value} at {run.cursor}: {reason}")

    def _check_workflow(self, run: WorkflowRun) -> None:
        if run.workflow != self.definition.name:
            raise RunStateError(
                f"Run {run.run_id} belongs to workflow '{run.workflow}', "
                f"not '{self.definition.name}'"
            )

    async def _save(self, run: WorkflowRun) -> None:
        if self._repository is not None:
            await self._repository.save_run(run)
