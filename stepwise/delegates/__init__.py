"""Delegate implementations and factory."""

from __future__ import annotations

from typing import Dict, Optional

from ..config import StepwiseConfig, load_config
from .base import BaseDelegate
from .command import CommandDelegate
from .function import FunctionDelegate
from .scripted import ScriptedDelegate, parse_result


def build_delegates(config: Optional[StepwiseConfig] = None) -> Dict[str, BaseDelegate]:
    """Factory building the delegates named in configuration."""

    config = config or load_config()
    delegates: Dict[str, BaseDelegate] = {}
    for name, settings in config.delegates.items():
        if settings.kind == "command":
            if not settings.command:
                raise ValueError(f"Delegate '{name}' needs a command")
            delegates[name] = CommandDelegate(
                settings.command,
                name=name,
                cwd=settings.cwd,
                timeout=settings.timeout,
            )
        elif settings.kind == "scripted":
            if not settings.script:
                raise ValueError(f"Delegate '{name}' needs a script file")
            delegate = ScriptedDelegate.from_file(settings.script)
            delegate.name = name
            delegates[name] = delegate
        else:
            raise ValueError(f"Unsupported delegate kind: {settings.kind}")
    return delegates


__all__ = [
    "BaseDelegate",
    "CommandDelegate",
    "FunctionDelegate",
    "ScriptedDelegate",
    "build_delegates",
    "parse_result",
]
