"""Loading workflow definitions from YAML or JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml

from siteflow.contracts import Workflow

DEFINITION_SUFFIXES = (".yaml", ".yml", ".json")

# camelCase keys as exported by the site builder
_WORKFLOW_KEYS = {"siteId": "site_id", "triggerType": "trigger_type", "isActive": "active"}
_STEP_KEYS = {
    "actionType": "action_type",
    "orderIndex": "order",
    "stopOnError": "stop_on_error",
    "nextStepId": "next_step_id",
    "workflowId": "workflow_id",
}


def _rename(data: Dict[str, Any], keys: Dict[str, str]) -> Dict[str, Any]:
    return {keys.get(k, k): v for k, v in data.items()}


def parse_workflow(data: Dict[str, Any]) -> Workflow:
    """Build a :class:`Workflow` from a plain mapping.

    Steps without an explicit ``order`` keep their position in the file.
    """
    workflow = _rename(data, _WORKFLOW_KEYS)
    steps = []
    for index, raw_step in enumerate(workflow.get("steps") or []):
        step = _rename(raw_step, _STEP_KEYS)
        step.setdefault("order", index)
        step.setdefault("workflow_id", workflow.get("id"))
        steps.append(step)
    workflow["steps"] = steps
    return Workflow.model_validate(workflow)


def _documents(path: Path) -> Any:
    text = path.read_text()
    if path.suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def load_definitions(path: Path) -> List[Workflow]:
    """Return the workflows defined in ``path``.

    A file may hold a single workflow, a list of workflows, or a mapping
    with a ``workflows`` list.
    """
    data = _documents(path)
    if data is None:
        return []
    if isinstance(data, dict) and "workflows" in data:
        data = data["workflows"]
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a workflow mapping or list")
    return [parse_workflow(item) for item in data]


def iter_definition_files(path: Path) -> Iterable[Path]:
    """Yield definition files at ``path``, recursing into directories."""
    if path.is_file():
        yield path
        return
    for candidate in sorted(path.rglob("*")):
        if candidate.is_file() and candidate.suffix in DEFINITION_SUFFIXES:
            yield candidate
