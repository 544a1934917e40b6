"""Action handler tests."""

import json

import pytest

from siteflow.actions import ACTIONS, evaluate_clause
from siteflow.contracts import ActionType


def test_registry_covers_every_action_type():
    assert set(ACTIONS) == set(ActionType)
    for action_type, cls in ACTIONS.items():
        assert cls.action_type is action_type


@pytest.mark.parametrize(
    "operator,field_value,value,expected",
    [
        ("equals", "vip", "vip", True),
        ("equals", 1, True, False),
        ("not_equals", "vip", "basic", True),
        ("contains", "hello world", "world", True),
        ("not_contains", "hello world", "moon", True),
        ("greater_than", "10", 5, True),
        ("greater_than", "abc", 5, False),
        ("less_than", 3, "4", True),
        ("is_empty", "", None, True),
        ("is_empty", [], None, True),
        ("is_not_empty", "x", None, True),
        ("bogus", "x", "x", False),
    ],
)
def test_condition_operators(operator, field_value, value, expected):
    clause = {"field": "trigger.value", "operator": operator, "value": value}
    assert evaluate_clause(clause, {"trigger": {"value": field_value}}) is expected


def test_missing_field_is_empty_and_never_equal():
    variables = {"trigger": {}}
    assert evaluate_clause({"field": "trigger.x", "operator": "is_empty"}, variables)
    assert not evaluate_clause(
        {"field": "trigger.x", "operator": "equals", "value": None}, variables
    )


@pytest.mark.asyncio
async def test_condition_and_or_logic(runtime, context_factory):
    condition = runtime.executor._actions[ActionType.CONDITION]
    context = context_factory(trigger={"plan": "pro", "seats": 2})
    clauses = [
        {"field": "trigger.plan", "operator": "equals", "value": "pro"},
        {"field": "trigger.seats", "operator": "greater_than", "value": 5},
    ]

    result = await condition.run(
        {"conditions": clauses, "trueSteps": ["a"], "falseSteps": ["b"]}, context
    )
    assert result.success
    assert result.output == {"passed": False, "results": [True, False]}
    assert result.next_steps == ["b"]

    result = await condition.run(
        {"conditions": clauses, "logic": "or", "trueSteps": ["a"]}, context
    )
    assert result.output["passed"] is True
    assert result.next_steps == ["a"]


@pytest.mark.asyncio
async def test_condition_without_branch_has_no_next_steps(runtime, context_factory):
    condition = runtime.executor._actions[ActionType.CONDITION]
    result = await condition.run({"conditions": []}, context_factory())
    assert result.output == {"passed": True, "results": []}
    assert result.next_steps is None


@pytest.mark.asyncio
async def test_loop_requires_array(runtime, context_factory):
    loop = runtime.executor._actions[ActionType.LOOP]
    context = context_factory(trigger={"items": "not-a-list"})

    result = await loop.run({"items": "trigger.items", "steps": ["s1"]}, context)
    assert not result.success
    assert result.error == "Loop items must be an array"

    result = await loop.run({"items": 7}, context)
    assert result.error == "Loop items must be an array"


@pytest.mark.asyncio
async def test_loop_plans_steps_per_item(runtime, context_factory):
    loop = runtime.executor._actions[ActionType.LOOP]
    context = context_factory(trigger={"items": ["a", "b"]})

    result = await loop.run({"items": "trigger.items", "steps": ["s1"]}, context)
    assert result.success
    assert result.output == {
        "itemCount": 2,
        "variable": "item",
        "results": [
            {"item": "a", "stepsToExecute": ["s1"]},
            {"item": "b", "stepsToExecute": ["s1"]},
        ],
    }
    assert result.variables == {"item": "b"}
    assert "item" not in context.variables


@pytest.mark.asyncio
async def test_send_email_interpolates_each_recipient(runtime, outbox, context_factory):
    send_email = runtime.executor._actions[ActionType.SEND_EMAIL]
    context = context_factory(trigger={"name": "John", "email": "john@example.com"})

    result = await send_email.run(
        {
            "to": ["{{trigger.email}}", "ops@example.com"],
            "subject": "Welcome {{trigger.name}}!",
            "body": "<p>Hi {{trigger.name}}</p>",
            "ctaText": "Open",
            "ctaUrl": "https://example.com/u/{{trigger.name}}",
        },
        context,
    )

    assert result.success
    assert result.output["sent"] is True
    assert result.output["subject"] == "Welcome John!"
    assert [r["to"] for r in result.output["recipients"]] == [
        "john@example.com",
        "ops@example.com",
    ]
    recipient, email = outbox.sent[0]
    assert recipient == "john@example.com"
    assert email.body == "<p>Hi John</p>"
    assert email.cta_url == "https://example.com/u/John"


@pytest.mark.asyncio
async def test_send_email_partial_failure(runtime, outbox, context_factory):
    from siteflow.mail import EmailResult

    async def flaky_send(recipient, email):
        if recipient.startswith("bad"):
            return EmailResult(success=False, error="rejected")
        return EmailResult(success=True)

    outbox.send = flaky_send
    send_email = runtime.executor._actions[ActionType.SEND_EMAIL]
    result = await send_email.run(
        {"to": ["good@x.io", "bad@x.io"], "subject": "s", "body": "b"},
        context_factory(),
    )

    assert not result.success
    assert result.error == "Some emails failed to send"
    assert result.output["recipients"][1] == {
        "to": "bad@x.io",
        "success": False,
        "error": "rejected",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "to", [None, [], "", ["ops@example.com", "{{trigger.email}}"]]
)
async def test_send_email_without_recipients_fails(
    runtime, outbox, context_factory, to
):
    send_email = runtime.executor._actions[ActionType.SEND_EMAIL]
    config = {"subject": "Hi", "body": "b"}
    if to is not None:
        config["to"] = to

    result = await send_email.run(config, context_factory(trigger={"email": ""}))

    assert not result.success
    assert result.error == "No recipients configured"
    assert outbox.sent == []


@pytest.mark.asyncio
async def test_send_webhook_posts_interpolated_body(
    runtime, webhook_requests, context_factory
):
    webhook = runtime.executor._actions[ActionType.SEND_WEBHOOK]
    context = context_factory(trigger={"id": 42, "email": "a@b.c"})

    result = await webhook.run(
        {
            "url": "https://hooks.example.com/leads/{{trigger.id}}",
            "headers": {"X-Token": "t"},
            "body": {"email": "{{trigger.email}}"},
        },
        context,
    )

    assert result.success
    assert result.output == {"status": 200, "data": {"received": {"email": "a@b.c"}}}
    request = webhook_requests[0]
    assert request.method == "POST"
    assert request.url.path == "/leads/42"
    assert request.headers["content-type"] == "application/json"
    assert request.headers["x-token"] == "t"
    assert json.loads(request.content) == {"email": "a@b.c"}


@pytest.mark.asyncio
async def test_send_webhook_error_status(runtime, context_factory):
    webhook = runtime.executor._actions[ActionType.SEND_WEBHOOK]
    result = await webhook.run(
        {"url": "https://hooks.example.com/fail", "method": "put"}, context_factory()
    )
    assert not result.success
    assert result.error == "HTTP 500"
    assert result.output == {"status": 500, "data": None}


@pytest.mark.asyncio
async def test_record_actions(runtime, repository, context_factory):
    actions = runtime.executor._actions
    context = context_factory(trigger={"email": "a@b.c"})

    created = await actions[ActionType.CREATE_RECORD].run(
        {"collectionId": "leads", "data": {"email": "{{trigger.email}}"}}, context
    )
    assert created.success
    record_id = created.output["recordId"]
    assert created.output["data"] == {"email": "a@b.c"}

    context = context.with_step_output("create", created.output)
    updated = await actions[ActionType.UPDATE_RECORD].run(
        {"recordId": "{{step_create.recordId}}", "data": {"status": "contacted"}},
        context,
    )
    assert updated.success
    stored = await repository.get_record(record_id)
    assert stored.data == {"status": "contacted"}
    assert stored.updated_by == "workflow"

    deleted = await actions[ActionType.DELETE_RECORD].run(
        {"recordId": record_id}, context
    )
    assert deleted.output == {"deleted": True, "recordId": record_id}
    assert await repository.get_record(record_id) is None


@pytest.mark.asyncio
async def test_update_missing_record_fails(runtime, context_factory):
    update = runtime.executor._actions[ActionType.UPDATE_RECORD]
    result = await update.run({"recordId": "nope", "data": {}}, context_factory())
    assert not result.success
    assert "nope" in result.error


@pytest.mark.asyncio
async def test_tag_actions_write_only_on_change(runtime, repository, context_factory):
    user = await repository.create_site_user("site-1", tags=["lead"])
    context = context_factory(trigger={"userId": user.id})
    actions = runtime.executor._actions

    added = await actions[ActionType.ADD_TAG].run(
        {"userId": "{{trigger.userId}}", "tag": "vip"}, context
    )
    assert added.output == {"userId": user.id, "tags": ["lead", "vip"]}

    again = await actions[ActionType.ADD_TAG].run(
        {"userId": user.id, "tag": "vip"}, context
    )
    assert again.output["tags"] == ["lead", "vip"]

    removed = await actions[ActionType.REMOVE_TAG].run(
        {"userId": user.id, "tag": "lead"}, context
    )
    assert removed.output["tags"] == ["vip"]
    assert await repository.get_user_tags(user.id) == ["vip"]

    missing = await actions[ActionType.ADD_TAG].run(
        {"userId": "ghost", "tag": "vip"}, context
    )
    assert not missing.success


@pytest.mark.asyncio
async def test_assign_role_is_idempotent(runtime, repository, context_factory):
    assign = runtime.executor._actions[ActionType.ASSIGN_ROLE]
    context = context_factory()

    first = await assign.run({"userId": "u1", "roleId": "member"}, context)
    second = await assign.run({"userId": "u1", "roleId": "member"}, context)

    assert first.output == {"userId": "u1", "roleId": "member", "assigned": True}
    assert second.success
    assert second.output["assigned"] is False
    assert await repository.has_role("u1", "member")


@pytest.mark.asyncio
async def test_task_and_notification(runtime, repository, context_factory):
    actions = runtime.executor._actions
    context = context_factory(trigger={"name": "Ada", "userId": "u1"})

    task = await actions[ActionType.CREATE_TASK].run(
        {"title": "Call {{trigger.name}}", "dueDate": "2025-01-01", "assignee": "u9"},
        context,
    )
    assert task.output["title"] == "Call Ada"
    stored = repository.tasks[task.output["taskId"]]
    assert stored.site_id == "site-1"
    assert stored.assignee_id == "u9"
    assert stored.status == "pending"

    note = await actions[ActionType.SEND_NOTIFICATION].run(
        {"userId": "{{trigger.userId}}", "title": "Hi", "message": "{{trigger.name}}"},
        context,
    )
    notification = repository.notifications[note.output["notificationId"]]
    assert notification.user_id == "u1"
    assert notification.message == "Ada"
    assert notification.type == "info"


@pytest.mark.asyncio
async def test_run_converts_missing_config_into_failure(runtime, context_factory):
    create = runtime.executor._actions[ActionType.CREATE_RECORD]
    result = await create.run({}, context_factory())
    assert not result.success
    assert "collectionId" in result.error
