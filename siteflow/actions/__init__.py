"""Action handler registry."""

from __future__ import annotations

from typing import Dict, Type

from ..contracts import ActionType
from .base import ActionServices, BaseAction
from .flow import Condition, ConditionOperator, Delay, Loop, evaluate_clause
from .messaging import SendEmail, SendNotification, SendWebhook
from .records import CreateRecord, CreateTask, DeleteRecord, UpdateRecord
from .users import AddTag, AssignRole, RemoveTag

ACTIONS: Dict[ActionType, Type[BaseAction]] = {
    action.action_type: action
    for action in (
        SendEmail,
        SendWebhook,
        CreateRecord,
        UpdateRecord,
        DeleteRecord,
        AddTag,
        RemoveTag,
        AssignRole,
        Delay,
        Condition,
        Loop,
        CreateTask,
        SendNotification,
    )
}

_missing = set(ActionType) - set(ACTIONS)
if _missing:
    raise RuntimeError(
        f"No handler registered for: {', '.join(sorted(a.value for a in _missing))}"
    )


def build_actions(services: ActionServices) -> Dict[ActionType, BaseAction]:
    """Instantiate every registered handler against ``services``."""
    return {action_type: cls(services) for action_type, cls in ACTIONS.items()}


__all__ = [
    "ACTIONS",
    "ActionServices",
    "BaseAction",
    "ConditionOperator",
    "build_actions",
    "evaluate_clause",
]
