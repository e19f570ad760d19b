"""Shared constants for stepwise workflows."""

# Reserved branch targets that end a run instead of naming a step.
TERMINAL_COMPLETE = "complete"
TERMINAL_ESCALATE = "escalate"
TERMINAL_TARGETS = frozenset({TERMINAL_COMPLETE, TERMINAL_ESCALATE})

# Loop tag under which every delegate invocation of a run is counted.
RUN_BUDGET_TAG = "run"

DEFAULT_LOOP_CEILINGS = {
    "reproduction": 2,
    "fix-verification": 3,
}
DEFAULT_CEILING = 3
DEFAULT_RUN_BUDGET = 12

DEFAULT_CONFIG_FILE = "stepwise.yaml"
