import pytest

import siteflow.persistence as persistence
from siteflow.config import load_config
from siteflow.contracts import (
    ExecutionStatus,
    RecordNotFoundError,
    TriggerType,
    Workflow,
    WorkflowStep,
)
from siteflow.persistence import (
    InMemoryWorkflowRepository,
    PostgresWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
    open_repository,
)


def _workflow(workflow_id="wf-1", active=True, site_id="site-1"):
    return Workflow(
        id=workflow_id,
        site_id=site_id,
        name="Welcome",
        trigger_type=TriggerType.USER_SIGNUP,
        active=active,
        steps=[
            WorkflowStep(
                id=f"{workflow_id}-b",
                action_type="delay",
                order=1,
                config={"duration": 1},
                stop_on_error=False,
            ),
            WorkflowStep(
                id=f"{workflow_id}-a",
                action_type="send_email",
                order=0,
                config={"to": "{{trigger.email}}"},
                next_step_id=f"{workflow_id}-b",
            ),
        ],
    )


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteWorkflowRepository(tmp_path / "wf.db")
    return InMemoryWorkflowRepository()


@pytest.mark.asyncio
async def test_workflow_roundtrip(repo):
    await repo.save_workflow(_workflow())
    await repo.save_workflow(_workflow("wf-2", active=False))
    await repo.save_workflow(_workflow("wf-3", site_id="site-2"))

    wf = await repo.get_workflow("wf-1")
    assert wf is not None
    ordered = wf.ordered_steps()
    assert [s.id for s in ordered] == ["wf-1-a", "wf-1-b"]
    assert ordered[0].config == {"to": "{{trigger.email}}"}
    assert ordered[0].next_step_id == "wf-1-b"
    assert ordered[0].stop_on_error is None
    assert ordered[1].stop_on_error is False
    assert all(s.workflow_id == "wf-1" for s in ordered)

    assert await repo.get_active_workflow("wf-2") is None
    assert (await repo.get_workflow("wf-2")).active is False

    active = await repo.find_active_workflows("site-1", TriggerType.USER_SIGNUP)
    assert [w.id for w in active] == ["wf-1"]
    assert await repo.find_active_workflows("site-1", TriggerType.ORDER_PLACED) == []

    assert {w.id for w in await repo.list_workflows()} == {"wf-1", "wf-2", "wf-3"}
    assert [w.id for w in await repo.list_workflows("site-2")] == ["wf-3"]


@pytest.mark.asyncio
async def test_save_workflow_replaces_steps(repo):
    await repo.save_workflow(_workflow())
    updated = _workflow().model_copy(update={"steps": [], "name": "Renamed"})
    await repo.save_workflow(updated)

    wf = await repo.get_workflow("wf-1")
    assert wf.name == "Renamed"
    assert wf.steps == []


@pytest.mark.asyncio
async def test_execution_and_step_logs(repo):
    execution = await repo.create_execution(
        "wf-1", TriggerType.FORM_SUBMIT, {"email": "a@b.c"}
    )
    assert execution.status == ExecutionStatus.RUNNING

    log = await repo.start_step_log(execution.id, "step-1")
    await repo.finish_step_log(
        log.id, ExecutionStatus.COMPLETED, output={"sent": True}
    )
    await repo.complete_execution(
        execution.id, ExecutionStatus.COMPLETED, result={"step-1": {"success": True}}
    )

    stored = await repo.get_execution(execution.id)
    assert stored.status == ExecutionStatus.COMPLETED
    assert stored.trigger_payload == {"email": "a@b.c"}
    assert stored.result == {"step-1": {"success": True}}
    assert stored.completed_at is not None

    [stored_log] = await repo.list_step_logs(execution.id)
    assert stored_log.status == ExecutionStatus.COMPLETED
    assert stored_log.output == {"sent": True}

    failed = await repo.create_execution("wf-2", TriggerType.MANUAL, {})
    await repo.complete_execution(failed.id, ExecutionStatus.FAILED, error="boom")

    assert [e.id for e in await repo.list_executions()] == [failed.id, execution.id]
    assert [e.id for e in await repo.list_executions(workflow_id="wf-1")] == [
        execution.id
    ]
    [only_failed] = await repo.list_executions(status=ExecutionStatus.FAILED)
    assert only_failed.error == "boom"
    assert await repo.get_execution("missing") is None


@pytest.mark.asyncio
async def test_collection_records(repo):
    record = await repo.create_record("leads", {"email": "a@b.c"})
    assert record.created_by == "workflow"

    updated = await repo.update_record(record.id, {"email": "x@y.z"})
    assert updated.data == {"email": "x@y.z"}
    assert (await repo.get_record(record.id)).data == {"email": "x@y.z"}

    await repo.delete_record(record.id)
    assert await repo.get_record(record.id) is None
    await repo.delete_record(record.id)

    with pytest.raises(RecordNotFoundError):
        await repo.update_record(record.id, {})


@pytest.mark.asyncio
async def test_users_tags_and_roles(repo):
    user = await repo.create_site_user("site-1", email="a@b.c", tags=["lead"])
    assert await repo.get_user_tags(user.id) == ["lead"]

    await repo.set_user_tags(user.id, ["lead", "vip"])
    assert await repo.get_user_tags(user.id) == ["lead", "vip"]

    with pytest.raises(RecordNotFoundError):
        await repo.get_user_tags("ghost")
    with pytest.raises(RecordNotFoundError):
        await repo.set_user_tags("ghost", [])

    assert not await repo.has_role(user.id, "member")
    await repo.assign_role(user.id, "member")
    await repo.assign_role(user.id, "member")
    assert await repo.has_role(user.id, "member")


@pytest.mark.asyncio
async def test_tasks_and_notifications(repo):
    task = await repo.create_task("site-1", "Call", due_date="2025-01-01")
    assert task.status == "pending"
    assert task.created_by == "workflow"

    notification = await repo.create_notification("site-1", "u1", "Hi", "There")
    assert notification.type == "info"
    assert notification.id


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("SITEFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    repo = get_repository(f"sqlite://{tmp_path / 'wf.db'}")
    assert isinstance(repo, SQLiteWorkflowRepository)

    with pytest.raises(ValueError):
        get_repository("mysql://localhost/db")


def test_open_repository_by_scheme(tmp_path):
    assert isinstance(open_repository(None), InMemoryWorkflowRepository)
    assert isinstance(
        open_repository(f"sqlite://{tmp_path / 'a.db'}"), SQLiteWorkflowRepository
    )
    assert isinstance(
        open_repository("postgresql://user@localhost/siteflow"),
        PostgresWorkflowRepository,
    )
    for url in ("sqlite://", "localhost/db"):
        with pytest.raises(ValueError):
            open_repository(url)


def test_get_repository_reads_database_url_from_config(tmp_path, monkeypatch):
    monkeypatch.setenv("SITEFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("SITEFLOW_DATABASE_URL", f"sqlite://{tmp_path / 'env.db'}")
    monkeypatch.setattr(persistence, "_repository_instance", None)

    repo = get_repository(config=load_config())
    assert isinstance(repo, SQLiteWorkflowRepository)
    assert get_repository() is repo
