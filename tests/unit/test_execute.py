"""Execution controller tests."""

import pytest

from siteflow.contracts import (
    ExecutionStatus,
    StepLimitExceededError,
    StepNotFoundError,
    TriggerType,
    WorkflowNotFoundError,
    WorkflowStep,
)
from siteflow.execute import StepGraph


def _step(step_id, action_type, order, **kwargs):
    return WorkflowStep(id=step_id, action_type=action_type, order=order, **kwargs)


def _failing_update(step_id, order, **kwargs):
    return _step(
        step_id, "update_record", order, config={"recordId": "missing", "data": {}}, **kwargs
    )


@pytest.mark.asyncio
async def test_welcome_email_scenario(runtime, repository, outbox, workflow_factory):
    workflow = workflow_factory(
        "wf-welcome",
        [
            _step(
                "send",
                "send_email",
                0,
                config={
                    "to": "{{trigger.email}}",
                    "subject": "Welcome {{trigger.name}}!",
                    "body": "Thanks for signing up",
                },
            )
        ],
    )
    await repository.save_workflow(workflow)

    result = await runtime.executor.execute(
        "wf-welcome",
        TriggerType.FORM_SUBMIT,
        {"name": "John", "email": "john@example.com"},
    )

    assert result.success
    assert outbox.sent[0][1].subject == "Welcome John!"
    execution = await repository.get_execution(result.execution_id)
    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.trigger_payload == {"name": "John", "email": "john@example.com"}
    assert execution.result["send"]["success"] is True
    assert execution.completed_at is not None

    logs = await repository.list_step_logs(result.execution_id)
    assert [(log.step_id, log.status) for log in logs] == [
        ("send", ExecutionStatus.COMPLETED)
    ]
    assert logs[0].output["subject"] == "Welcome John!"


@pytest.mark.asyncio
async def test_condition_jumps_to_branch_target(runtime, repository, workflow_factory):
    workflow = workflow_factory(
        "wf-branch",
        [
            _step(
                "cond",
                "condition",
                0,
                config={
                    "conditions": [
                        {"field": "trigger.vip", "operator": "equals", "value": True}
                    ],
                    "trueSteps": ["B"],
                    "falseSteps": ["A"],
                },
            ),
            _step("A", "create_task", 1, config={"title": "regular"}),
            _step("B", "create_task", 2, config={"title": "vip"}),
        ],
    )
    await repository.save_workflow(workflow)

    result = await runtime.executor.execute(
        "wf-branch", TriggerType.MANUAL, {"vip": True}
    )

    assert result.success
    assert set(result.results) == {"cond", "B"}
    assert [t.title for t in repository.tasks.values()] == ["vip"]


@pytest.mark.asyncio
async def test_branch_follows_first_listed_id(runtime, repository, workflow_factory):
    workflow = workflow_factory(
        "wf-order",
        [
            _step(
                "cond",
                "condition",
                0,
                config={"conditions": [], "trueSteps": ["ghost", "C", "B"]},
            ),
            _step("B", "create_task", 1, config={"title": "B"}, next_step_id="end"),
            _step("C", "create_task", 2, config={"title": "C"}, next_step_id="end"),
            _step("end", "create_task", 3, config={"title": "end"}),
        ],
    )
    await repository.save_workflow(workflow)

    result = await runtime.executor.execute("wf-order", TriggerType.MANUAL, {})

    assert list(result.results) == ["cond", "C", "end"]


@pytest.mark.asyncio
async def test_step_outputs_are_visible_to_later_steps(
    runtime, repository, workflow_factory
):
    workflow = workflow_factory(
        "wf-chain",
        [
            _step("rec", "create_record", 0, config={"collectionId": "c", "data": {}}),
            _step(
                "task",
                "create_task",
                1,
                config={"title": "Review {{step_rec.recordId}}"},
            ),
        ],
    )
    await repository.save_workflow(workflow)

    result = await runtime.executor.execute("wf-chain", TriggerType.MANUAL, {})

    record_id = result.results["rec"].output["recordId"]
    assert result.results["task"].output["title"] == f"Review {record_id}"


@pytest.mark.asyncio
async def test_loop_binds_last_item_for_later_steps(
    runtime, repository, workflow_factory
):
    workflow = workflow_factory(
        "wf-loop",
        [
            _step("each", "loop", 0, config={"items": "trigger.items", "variable": "sku"}),
            _step("task", "create_task", 1, config={"title": "Restock {{sku}}"}),
        ],
    )
    await repository.save_workflow(workflow)

    result = await runtime.executor.execute(
        "wf-loop", TriggerType.MANUAL, {"items": ["a", "b"]}
    )

    assert result.success
    assert result.results["each"].output["variable"] == "sku"
    assert result.results["task"].output["title"] == "Restock b"
    execution = await repository.get_execution(result.execution_id)
    assert "variables" not in execution.result["each"]


@pytest.mark.asyncio
async def test_failure_halts_by_default(runtime, repository, workflow_factory):
    workflow = workflow_factory(
        "wf-halt",
        [_failing_update("bad", 0), _step("after", "create_task", 1, config={"title": "x"})],
    )
    await repository.save_workflow(workflow)

    result = await runtime.executor.execute("wf-halt", TriggerType.MANUAL, {})

    assert not result.success
    assert list(result.results) == ["bad"]
    execution = await repository.get_execution(result.execution_id)
    assert execution.status == ExecutionStatus.FAILED
    logs = await repository.list_step_logs(result.execution_id)
    assert logs[0].status == ExecutionStatus.FAILED
    assert logs[0].error


@pytest.mark.asyncio
async def test_stop_on_error_false_continues(runtime, repository, workflow_factory):
    bad = _step(
        "bad",
        "update_record",
        0,
        config={"recordId": "missing", "data": {}, "stopOnError": False},
    )
    workflow = workflow_factory(
        "wf-continue",
        [bad, _step("after", "create_task", 1, config={"title": "x"})],
    )
    await repository.save_workflow(workflow)

    result = await runtime.executor.execute("wf-continue", TriggerType.MANUAL, {})

    assert not result.success
    assert list(result.results) == ["bad", "after"]
    assert result.results["after"].success
    execution = await repository.get_execution(result.execution_id)
    assert execution.status == ExecutionStatus.FAILED


@pytest.mark.asyncio
async def test_step_level_stop_on_error_overrides_config(
    runtime, repository, workflow_factory
):
    workflow = workflow_factory(
        "wf-step-flag",
        [
            _failing_update("bad", 0, stop_on_error=False),
            _step("after", "create_task", 1, config={"title": "x"}),
        ],
    )
    await repository.save_workflow(workflow)

    result = await runtime.executor.execute("wf-step-flag", TriggerType.MANUAL, {})
    assert list(result.results) == ["bad", "after"]


@pytest.mark.asyncio
async def test_unknown_action_always_halts(runtime, repository, workflow_factory):
    workflow = workflow_factory(
        "wf-unknown",
        [
            _step("mystery", "teleport", 0, config={"stopOnError": False}),
            _step("after", "create_task", 1, config={"title": "x"}),
        ],
    )
    await repository.save_workflow(workflow)

    result = await runtime.executor.execute("wf-unknown", TriggerType.MANUAL, {})

    assert not result.success
    assert list(result.results) == ["mystery"]
    assert result.results["mystery"].error == "Unknown action type: teleport"
    assert await repository.list_step_logs(result.execution_id) == []
    execution = await repository.get_execution(result.execution_id)
    assert execution.status == ExecutionStatus.FAILED


@pytest.mark.asyncio
async def test_missing_or_inactive_workflow_is_rejected(
    runtime, repository, workflow_factory
):
    await repository.save_workflow(workflow_factory("wf-off", [], active=False))

    with pytest.raises(WorkflowNotFoundError, match="Workflow not found or inactive"):
        await runtime.executor.execute("wf-off", TriggerType.MANUAL, {})
    with pytest.raises(WorkflowNotFoundError):
        await runtime.executor.execute("wf-none", TriggerType.MANUAL, {})

    assert await repository.list_executions() == []


@pytest.mark.asyncio
async def test_unknown_start_step_is_rejected(runtime, repository, workflow_factory):
    await repository.save_workflow(workflow_factory("wf-1", []))
    with pytest.raises(StepNotFoundError):
        await runtime.executor.execute(
            "wf-1", TriggerType.MANUAL, {}, start_step_id="gone"
        )
    assert await repository.list_executions() == []


@pytest.mark.asyncio
async def test_cycle_hits_step_limit(runtime, repository, workflow_factory):
    workflow = workflow_factory(
        "wf-cycle",
        [
            _step("a", "create_task", 0, config={"title": "a"}, next_step_id="b"),
            _step("b", "create_task", 1, config={"title": "b"}, next_step_id="a"),
        ],
    )
    await repository.save_workflow(workflow)
    runtime.executor.max_steps = 5

    with pytest.raises(StepLimitExceededError):
        await runtime.executor.execute("wf-cycle", TriggerType.MANUAL, {})

    [execution] = await repository.list_executions(workflow_id="wf-cycle")
    assert execution.status == ExecutionStatus.FAILED
    assert "5 steps" in execution.error
    assert len(repository.tasks) == 5


@pytest.mark.asyncio
async def test_storage_fault_marks_failed_and_reraises(
    runtime, repository, workflow_factory
):
    await repository.save_workflow(
        workflow_factory("wf-io", [_step("t", "create_task", 0, config={"title": "x"})])
    )

    async def broken_start(execution_id, step_id):
        raise RuntimeError("disk full")

    repository.start_step_log = broken_start

    with pytest.raises(RuntimeError, match="disk full"):
        await runtime.executor.execute("wf-io", TriggerType.MANUAL, {})

    [execution] = await repository.list_executions()
    assert execution.status == ExecutionStatus.FAILED
    assert execution.error == "disk full"


def test_step_graph_successors(workflow_factory):
    workflow = workflow_factory(
        "wf",
        [
            _step("c", "create_task", 2),
            _step("a", "create_task", 0, next_step_id="c"),
            _step("b", "create_task", 1, next_step_id="nowhere"),
        ],
    )
    graph = StepGraph(workflow)

    assert [s.id for s in graph.steps] == ["a", "b", "c"]
    assert graph.first().id == "a"
    assert graph.successor(graph.get("a")).id == "c"
    assert graph.successor(graph.get("b")).id == "c"
    assert graph.successor(graph.get("c")) is None
    assert graph.follow(graph.get("a"), ["b"]).id == "b"
    assert graph.follow(graph.get("a"), ["missing"]).id == "c"
