"""Template interpolation over a workflow's variable context."""

from __future__ import annotations

import json
import math
import re
from typing import Any, Mapping

_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


class _Missing:
    """Sentinel for a path that does not resolve."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def get_path(variables: Mapping[str, Any], path: str) -> Any:
    """Walk a dot-separated ``path`` through nested mappings.

    Returns ``MISSING`` as soon as a segment is absent or the current
    value is not a mapping.
    """
    current: Any = variables
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return MISSING
        current = current[part]
    return current


def stringify(value: Any) -> str:
    """Render a context value the way it appears inside a template."""
    if value is MISSING:
        return ""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def to_number(value: Any) -> float:
    """Coerce ``value`` to a float, yielding NaN when it is not numeric."""
    if isinstance(value, bool):
        return float(value)
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def interpolate(template: str, variables: Mapping[str, Any]) -> str:
    """Replace every ``{{path}}`` in ``template`` with its value.

    Placeholders whose path does not resolve are left untouched.
    """
    if not isinstance(template, str):
        template = stringify(template)

    def _replace(match: re.Match[str]) -> str:
        value = get_path(variables, match.group(1).strip())
        if value is MISSING:
            return match.group(0)
        return stringify(value)

    return _PLACEHOLDER.sub(_replace, template)


def interpolate_json(value: Any, variables: Mapping[str, Any]) -> Any:
    """Interpolate a JSON-compatible value through its serialized form."""
    return json.loads(interpolate(json.dumps(value), variables))
