from __future__ import annotations

import os
from typing import Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_CEILING,
    DEFAULT_CONFIG_FILE,
    DEFAULT_LOOP_CEILINGS,
    DEFAULT_RUN_BUDGET,
    RUN_BUDGET_TAG,
)


class LimitsConfig(BaseModel):
    """Retry ceilings per loop tag and for the whole run.

    Values set here take precedence over a workflow's own ``limits`` block,
    which in turn takes precedence over the built-in defaults.
    """

    loops: Dict[str, int] = Field(default_factory=dict)
    default_ceiling: int = DEFAULT_CEILING
    run_budget: Optional[int] = None

    def ceiling_for(self, loop_tag: str, workflow_limits: Dict[str, int]) -> int:
        if loop_tag == RUN_BUDGET_TAG:
            if self.run_budget is not None:
                return self.run_budget
            return workflow_limits.get(RUN_BUDGET_TAG, DEFAULT_RUN_BUDGET)
        if loop_tag in self.loops:
            return self.loops[loop_tag]
        if loop_tag in workflow_limits:
            return workflow_limits[loop_tag]
        return DEFAULT_LOOP_CEILINGS.get(loop_tag, self.default_ceiling)


class DelegateConfig(BaseModel):
    """Settings for a delegate built from configuration."""

    kind: Literal["command", "scripted"] = "command"
    command: Optional[str] = None
    cwd: Optional[str] = None
    timeout: Optional[float] = None
    script: Optional[str] = None


class StepwiseConfig(BaseModel):
    """Top-level configuration model."""

    limits: LimitsConfig = LimitsConfig()
    database_url: Optional[str] = None
    workflows_path: Optional[str] = None
    delegates: Dict[str, DelegateConfig] = Field(default_factory=dict)


def load_config(path: Optional[str] = None) -> StepwiseConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPWISE_CONFIG env
            variable or 'stepwise.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPWISE_CONFIG", DEFAULT_CONFIG_FILE)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepwiseConfig(**data)
    else:
        config = StepwiseConfig()

    env_db_url = os.getenv("STEPWISE_DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
