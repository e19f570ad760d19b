"""Command line interface for running stepwise workflows."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, List, Optional

import typer

from stepwise import Coordinator, get_repository, load_config, load_workflow
from stepwise.contracts import (
    Completed,
    Failed,
    NeedsInput,
    RunState,
    StepContext,
    StepResult,
    WorkflowRun,
)
from stepwise.delegates import BaseDelegate, ScriptedDelegate, build_delegates
from stepwise.errors import WorkflowDefinitionError, WorkflowNotFoundError
from stepwise.workflows import list_workflows

app = typer.Typer(help="CLI for stepwise workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting workflow definitions")
runs_app = typer.Typer(help="Commands for inspecting recorded runs")

app.add_typer(workflow_app, name="workflow")
app.add_typer(runs_app, name="runs")

ABORT_ANSWER = ":abort"
EXIT_CODES = {
    RunState.COMPLETED: 0,
    RunState.ESCALATED: 1,
    RunState.ABORTED: 2,
}


class PromptDelegate(BaseDelegate):
    """Ask the operator at the terminal for the outcome of each step."""

    name = "operator"

    async def invoke(self, step_id: str, context: StepContext) -> StepResult:
        label = f"{step_id}[{context.branch}]" if context.branch else step_id
        typer.echo(f"\n== {label}: {context.intent}")
        if context.answer is not None:
            typer.echo(f"Answer provided: {context.answer}")
        while True:
            kind = typer.prompt(
                "Outcome (completed/failed/needs_input)", default="completed"
            ).strip()
            if kind == "completed":
                return Completed(output=typer.prompt("Output", default=""))
            if kind == "failed":
                return Failed(reason=typer.prompt("Reason"))
            if kind == "needs_input":
                return NeedsInput(question=typer.prompt("Question"))
            typer.secho(f"Unknown outcome: {kind}", fg=typer.colors.RED)


def _parse_inputs(values: Optional[List[str]]) -> Dict[str, str]:
    inputs: Dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{item}'")
        inputs[key] = value
    return inputs


async def _drive(coordinator: Coordinator, inputs: Dict[str, str]) -> WorkflowRun:
    try:
        run = await coordinator.run(inputs)
        while run.state is RunState.AWAITING_INPUT:
            answer = typer.prompt(
                f"{run.pending_question}\nAnswer ('{ABORT_ANSWER}' to stop)"
            )
            if answer.strip() == ABORT_ANSWER:
                await coordinator.abort(run, "aborted by operator")
            else:
                run = await coordinator.resume(run, answer)
        return run
    finally:
        await coordinator.close()


@app.callback()
def main() -> None:
    """stepwise CLI entry point."""
    pass


@app.command("run")
def run_workflow(
    name: str,
    script: Optional[Path] = typer.Option(
        None, help="YAML file of scripted step results to replay"
    ),
    inputs: Optional[List[str]] = typer.Option(
        None, "--input", "-i", help="Run input as key=value, repeatable"
    ),
) -> None:
    """
    Run a workflow until it completes, escalates or is aborted.

    Delegates configured in stepwise.yaml handle their steps. Every other
    delegate reference is served by the script when one is given, or by
    prompting the operator for each step's outcome.

    Example:
        stepwise run fix --input issue=#42
        stepwise run iterate --script ./outcomes.yaml
    """
    config = load_config()
    try:
        definition = load_workflow(name, config.workflows_path)
    except WorkflowNotFoundError:
        typer.secho(f"Workflow not found: {name}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except WorkflowDefinitionError as e:
        typer.secho(f"Invalid workflow: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    run_inputs = _parse_inputs(inputs)
    delegates = build_delegates(config)
    fallback: BaseDelegate = (
        ScriptedDelegate.from_file(script) if script else PromptDelegate()
    )
    for delegate_name in definition.delegate_names():
        delegates.setdefault(delegate_name, fallback)

    coordinator = Coordinator(
        definition, delegates, limits=config.limits, repository=get_repository()
    )
    run = asyncio.run(_drive(coordinator, run_inputs))
    typer.echo(run.report())
    raise typer.Exit(code=EXIT_CODES[run.state])


@workflow_app.command("list")
def workflow_list() -> None:
    """List built-in and configured workflows."""
    config = load_config()
    try:
        definitions = list_workflows(config.workflows_path)
    except WorkflowDefinitionError as e:
        typer.secho(f"Invalid workflow: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    for definition in definitions:
        typer.echo(f"{definition.name}\t{definition.description}")


@workflow_app.command("show")
def workflow_show(name: str) -> None:
    """Show the steps of a workflow and where each outcome leads."""
    config = load_config()
    try:
        definition = load_workflow(name, config.workflows_path)
    except WorkflowNotFoundError:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    except WorkflowDefinitionError as e:
        typer.secho(f"Invalid workflow: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Workflow {definition.name}: {definition.description}")
    for position, step in enumerate(definition.steps, start=1):
        if step.is_fan_out:
            worker = "parallel: " + ", ".join(
                f"{branch.name}={branch.delegate}" for branch in step.parallel
            )
        else:
            worker = step.delegate
        loop = f" loop={step.loop}" if step.loop else ""
        typer.echo(f"{position}. {step.id} [{worker}]{loop}")
        for kind, target in step.branches.items():
            typer.echo(f"   {kind} -> {target}")
        if step.default:
            typer.echo(f"   otherwise -> {step.default}")


@runs_app.command("list")
def runs_list() -> None:
    """List recorded runs with their final state."""
    repo = get_repository()
    runs = asyncio.run(repo.list_runs())
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.run_id}\t{run.workflow}\t{run.state.value}")


@runs_app.command("show")
def runs_show(run_id: str) -> None:
    """Show the step history of a recorded run."""
    repo = get_repository()
    run = asyncio.run(repo.get_run(run_id))
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(run.report())


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
