"""Workflow catalog: built-in definitions and user workflow files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from ..definition import WorkflowDefinition
from ..errors import WorkflowDefinitionError, WorkflowNotFoundError

logger = logging.getLogger(__name__)

BUILTIN_DIR = Path(__file__).parent
WORKFLOW_SUFFIXES = (".yaml", ".yml")


def _iter_workflow_files(directory: Path) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        path for path in directory.iterdir() if path.suffix in WORKFLOW_SUFFIXES
    )


def _catalog(search_path: Optional[str | Path] = None) -> Dict[str, Path]:
    """Map workflow names to files; user files override built-ins."""
    files: Dict[str, Path] = {path.stem: path for path in _iter_workflow_files(BUILTIN_DIR)}
    if search_path:
        for path in _iter_workflow_files(Path(search_path).expanduser()):
            files[path.stem] = path
    return files


def load_workflow_file(path: str | Path) -> WorkflowDefinition:
    """Parse and check a workflow definition file.

    Raises:
        WorkflowDefinitionError: the file is not valid YAML or does not
            describe a well-formed workflow.
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise WorkflowDefinitionError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise WorkflowDefinitionError(f"{path} does not contain a workflow mapping")
    data.setdefault("name", path.stem)
    try:
        definition = WorkflowDefinition(**data)
    except ValidationError as e:
        raise WorkflowDefinitionError(f"{path} is not a valid workflow: {e}") from e
    logger.debug(f"Loaded workflow '{definition.name}' from {path}")
    return definition.check()


def load_workflow(
    name: str, search_path: Optional[str | Path] = None
) -> WorkflowDefinition:
    """Select a workflow by name, or load it directly from a file path."""
    candidate = Path(name)
    if candidate.suffix in WORKFLOW_SUFFIXES and candidate.is_file():
        return load_workflow_file(candidate)
    path = _catalog(search_path).get(name)
    if path is None:
        raise WorkflowNotFoundError(name)
    return load_workflow_file(path)


def list_workflows(search_path: Optional[str | Path] = None) -> List[WorkflowDefinition]:
    return [load_workflow_file(path) for _, path in sorted(_catalog(search_path).items())]


__all__ = ["BUILTIN_DIR", "list_workflows", "load_workflow", "load_workflow_file"]
