"""stepwise: multi-step development workflows as an explicit state machine."""

from .config import LimitsConfig, StepwiseConfig, load_config
from .contracts import (
    Completed,
    Failed,
    NeedsInput,
    OutcomeKind,
    RunState,
    StepContext,
    StepLogEntry,
    StepResult,
    WorkflowRun,
)
from .coordinator import Coordinator
from .definition import FanOutBranch, Step, WorkflowDefinition
from .delegates import (
    BaseDelegate,
    CommandDelegate,
    FunctionDelegate,
    ScriptedDelegate,
    build_delegates,
)
from .guard import IterationGuard
from .persistence import get_repository
from .workflows import list_workflows, load_workflow

__version__ = "0.1.0"
__all__ = [
    "BaseDelegate",
    "CommandDelegate",
    "Completed",
    "Coordinator",
    "Failed",
    "FanOutBranch",
    "FunctionDelegate",
    "IterationGuard",
    "LimitsConfig",
    "NeedsInput",
    "OutcomeKind",
    "RunState",
    "ScriptedDelegate",
    "Step",
    "StepContext",
    "StepLogEntry",
    "StepResult",
    "StepwiseConfig",
    "WorkflowDefinition",
    "WorkflowRun",
    "build_delegates",
    "get_repository",
    "list_workflows",
    "load_config",
    "load_workflow",
]
