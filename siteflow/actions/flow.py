"""Control-flow actions: delay, condition and loop."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping

from ..contracts import ActionType, StepResult, WorkflowContext
from ..interpolation import MISSING, get_path, stringify, to_number
from ..scheduling import delay_to_ms
from .base import BaseAction


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


def _strict_equals(left: Any, right: Any) -> bool:
    # booleans never equal numbers, a missing path never equals anything
    if left is MISSING or right is MISSING:
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _is_empty(value: Any) -> bool:
    return value is MISSING or not value


def evaluate_clause(clause: Mapping[str, Any], variables: Mapping[str, Any]) -> bool:
    """Evaluate one ``{field, operator, value}`` clause against ``variables``.

    Unknown operators evaluate to ``False``.
    """
    field_value = get_path(variables, str(clause.get("field", "")))
    expected = clause.get("value")

    try:
        operator = ConditionOperator(clause.get("operator"))
    except ValueError:
        return False

    if operator is ConditionOperator.EQUALS:
        return _strict_equals(field_value, expected)
    if operator is ConditionOperator.NOT_EQUALS:
        return not _strict_equals(field_value, expected)
    if operator is ConditionOperator.CONTAINS:
        return stringify(expected) in stringify(field_value)
    if operator is ConditionOperator.NOT_CONTAINS:
        return stringify(expected) not in stringify(field_value)
    if operator is ConditionOperator.GREATER_THAN:
        return to_number(field_value) > to_number(expected)
    if operator is ConditionOperator.LESS_THAN:
        return to_number(field_value) < to_number(expected)
    if operator is ConditionOperator.IS_EMPTY:
        return _is_empty(field_value)
    return not _is_empty(field_value)


class Delay(BaseAction):
    """Pause the run, inline for short waits or via the delayed-job queue."""

    action_type = ActionType.DELAY

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        ms = delay_to_ms(config.get("duration", 0), config.get("unit"))
        output = await self.services.scheduler.schedule(
            ms,
            context,
            next_step_id=config.get("nextStepId"),
            next_step_config=config.get("nextStepConfig"),
        )
        return StepResult(success=True, output=output)


class Condition(BaseAction):
    """Evaluate clauses and point the controller at the matching branch.

    ``logic`` of ``and`` requires every clause; any other value requires
    at least one.
    """

    action_type = ActionType.CONDITION

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        clauses = config.get("conditions") or []
        logic = config.get("logic", "and")

        results = [evaluate_clause(clause, context.variables) for clause in clauses]
        passed = all(results) if logic == "and" else any(results)

        branch = config.get("trueSteps") if passed else config.get("falseSteps")
        return StepResult(
            success=True,
            output={"passed": passed, "results": results},
            next_steps=list(branch) if branch else None,
        )


class Loop(BaseAction):
    """Plan one pass of ``steps`` per item.

    The controller does not re-enter the listed steps; the output records
    which steps each item would run. The last item is bound under
    ``variable`` (default ``item``) for the steps that follow.
    """

    action_type = ActionType.LOOP

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        items = config.get("items")
        if isinstance(items, str):
            items = get_path(context.variables, items)

        if not isinstance(items, list):
            return StepResult.failure("Loop items must be an array")

        variable = config.get("variable") or "item"
        steps: List[str] = config.get("steps") or []
        results = [{"item": item, "stepsToExecute": steps} for item in items]
        return StepResult(
            success=True,
            output={"itemCount": len(items), "variable": variable, "results": results},
            variables={variable: items[-1]} if items else None,
        )
