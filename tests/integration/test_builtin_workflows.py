"""Scenarios over the workflows shipped with stepwise."""

import pytest

from stepwise import Coordinator, LimitsConfig, load_workflow
from stepwise.contracts import RunState
from stepwise.delegates import ScriptedDelegate


def _coordinator(name, script, **kwargs):
    definition = load_workflow(name)
    delegate = ScriptedDelegate(script)
    delegates = {ref: delegate for ref in definition.delegate_names()}
    return Coordinator(definition, delegates, **kwargs), delegate


@pytest.mark.asyncio
async def test_fix_escalates_after_two_failed_reproductions():
    coordinator, delegate = _coordinator(
        "fix",
        {
            "intake": ["completed"],
            "reproduce": [
                {"failed": "cannot reproduce"},
                {"failed": "still cannot reproduce"},
                "completed",
            ],
        },
        limits=LimitsConfig(loops={"reproduction": 2}),
    )

    run = await coordinator.run({"issue": "crash on save"})

    assert run.state is RunState.ESCALATED
    assert len(run.entries_for("reproduce")) == 2
    # the third attempt is refused before the delegate is called
    assert delegate.pending("reproduce") == 1
    assert run.attempts["reproduction"] == 2
    assert "reproduce (attempt 2) -> failed: still cannot reproduce" in run.report()


@pytest.mark.asyncio
async def test_fix_happy_path_with_one_verification_retry():
    coordinator, _ = _coordinator(
        "fix",
        {
            "intake": ["completed"],
            "reproduce": [{"completed": "tests/test_save.py::test_crash"}],
            "diagnose": ["completed"],
            "implement-fix": ["completed", "completed"],
            "verify": [{"failed": "1 test failed"}, "completed"],
            "commit": [{"completed": "abc123"}],
        },
    )

    run = await coordinator.run()

    assert run.state is RunState.COMPLETED
    assert run.visited_steps == [
        "intake",
        "reproduce",
        "diagnose",
        "implement-fix",
        "verify",
        "implement-fix",
        "verify",
        "commit",
    ]
    assert run.outputs["commit"] == "abc123"


@pytest.mark.asyncio
async def test_iterate_acceptance_check_advances_to_security_review():
    definition = load_workflow("iterate")
    assert definition.successor("acceptance-check", "completed") == "security-review"

    coordinator, _ = _coordinator(
        "iterate",
        {
            "clarify": ["completed"],
            "plan": ["completed"],
            "implement": ["completed"],
            "test": ["completed"],
            "acceptance-check": ["completed"],
            "security-review": [{"needs_input": "Is the token scope intended?"}],
        },
    )

    run = await coordinator.run()

    assert run.state is RunState.AWAITING_INPUT
    assert run.cursor == "security-review"
    assert run.visited_steps[-2:] == ["acceptance-check", "security-review"]


@pytest.mark.asyncio
async def test_iterate_plan_follows_default_branch_on_any_outcome():
    coordinator, _ = _coordinator(
        "iterate",
        {
            "clarify": ["completed"],
            "plan": [{"failed": "too small to plan"}],
            "implement": [{"needs_input": "Which module?"}],
        },
    )

    run = await coordinator.run()

    assert run.visited_steps == ["clarify", "plan", "implement"]


@pytest.mark.asyncio
async def test_deliberate_runs_advocates_in_parallel():
    coordinator, delegate = _coordinator(
        "deliberate",
        {
            "frame": ["completed"],
            "advocate-for": [{"completed": "ship it"}],
            "advocate-against": [{"completed": "wait"}],
            "rebuttal-for": ["completed"],
            "rebuttal-against": ["completed"],
            "decide": [{"completed": "ship behind a flag"}],
        },
    )

    run = await coordinator.run()

    assert run.state is RunState.COMPLETED
    assert run.outputs["argue"] == {"advocate-for": "ship it", "advocate-against": "wait"}
    assert run.attempts["run"] == 6


@pytest.mark.asyncio
async def test_test_audit_partitions_fixers_by_directory():
    coordinator, delegate = _coordinator(
        "test-audit",
        {
            "survey": ["completed"],
            "audit": ["completed"],
            "unit-tests": ["completed"],
            "integration-tests": ["completed"],
            "verify": ["completed"],
            "report": ["completed"],
        },
    )

    run = await coordinator.run()

    assert run.state is RunState.COMPLETED
    writes = {ctx.branch: ctx.writes for key, ctx in delegate.calls if ctx.branch}
    assert writes == {
        "unit-tests": ["tests/unit"],
        "integration-tests": ["tests/integration"],
    }


@pytest.mark.asyncio
async def test_doc_review_revision_loop_is_bounded():
    coordinator, _ = _coordinator(
        "doc-review",
        {
            "inventory": ["completed"],
            "accuracy": ["completed"],
            "clarity": ["completed"],
            "revise": ["completed"] * 5,
            "check": [{"failed": "still unclear"}] * 5,
        },
        limits=LimitsConfig(loops={"revision": 2}),
    )

    run = await coordinator.run()

    assert run.state is RunState.ESCALATED
    assert len(run.entries_for("check")) == 2
    assert "revision" in run.ended_reason
