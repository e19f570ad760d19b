"""Iteration guard tests."""

import pytest

from stepwise import IterationGuard, LimitsConfig
from stepwise.errors import LimitExceeded


def test_record_attempt_until_ceiling():
    attempts = {}
    guard = IterationGuard(attempts, workflow_limits={"review": 2})

    assert guard.remaining("review") == 2
    assert guard.record_attempt("review") == 1
    assert guard.record_attempt("review") == 0

    with pytest.raises(LimitExceeded) as exc_info:
        guard.record_attempt("review")

    assert exc_info.value.ceiling == 2
    assert exc_info.value.attempts == 2
    # counters live on the mapping handed in and never pass the ceiling
    assert attempts == {"review": 2}


def test_record_several_attempts_at_once():
    guard = IterationGuard({}, LimitsConfig(run_budget=3))

    guard.record_attempt("run", 2)
    with pytest.raises(LimitExceeded):
        guard.record_attempt("run", 2)

    assert guard.attempts("run") == 2
    assert guard.remaining("run") == 1


def test_ceiling_precedence():
    limits = LimitsConfig(loops={"reproduction": 5}, default_ceiling=4)
    guard = IterationGuard(
        {}, limits, workflow_limits={"reproduction": 1, "acceptance": 6, "run": 20}
    )

    assert guard.ceiling("reproduction") == 5
    assert guard.ceiling("acceptance") == 6
    assert guard.ceiling("fix-verification") == 3
    assert guard.ceiling("anything-else") == 4
    assert guard.ceiling("run") == 20


def test_default_ceilings():
    guard = IterationGuard({})

    assert guard.ceiling("reproduction") == 2
    assert guard.ceiling("fix-verification") == 3
    assert guard.ceiling("run") == 12
    assert guard.ceiling("unnamed") == 3


def test_record_attempts_is_all_or_nothing():
    attempts = {"run": 1}
    guard = IterationGuard(
        attempts, LimitsConfig(run_budget=2), workflow_limits={"review": 3}
    )

    with pytest.raises(LimitExceeded) as exc_info:
        guard.record_attempts({"review": 1, "run": 2})

    assert exc_info.value.loop_tag == "run"
    assert attempts == {"run": 1}

    guard.record_attempts({"review": 1, "run": 1})
    assert attempts == {"run": 2, "review": 1}
