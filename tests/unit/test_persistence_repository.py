"""Repository behaviour shared by the in-memory and SQLite backends."""

import pytest

from flowcraft.errors import WorkflowNotFoundError
from flowcraft.models import NodeTypeEntry, RunStatus, StepStatus
from flowcraft.persistence import (
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
)


@pytest.fixture(params=["inmemory", "sqlite"])
def store(request, tmp_path):
    if request.param == "inmemory":
        yield InMemoryWorkflowRepository()
    else:
        repo = SQLiteWorkflowRepository(tmp_path / "flowcraft.db")
        yield repo
        repo.close()


@pytest.mark.asyncio
async def test_workflow_structure_roundtrip(store):
    wf = await store.create_workflow("etl", "nightly import")
    fetch = await store.add_node(wf.id, "httpRequest", {"url": "https://x"}, name="fetch")
    keep = await store.add_node(wf.id, "filter", '{"field": "ok"}', position_x=10)
    await store.add_connection(wf.id, fetch.id, keep.id, target_handle="items")

    loaded = await store.get_workflow(wf.id)
    assert loaded.name == "etl"
    assert loaded.description == "nightly import"
    assert [n.id for n in loaded.nodes] == [fetch.id, keep.id]
    assert loaded.nodes[0].config == '{"url": "https://x"}'
    assert loaded.nodes[1].config == '{"field": "ok"}'
    assert loaded.nodes[1].position_x == 10
    conn = loaded.connections[0]
    assert (conn.source_node_id, conn.target_node_id) == (fetch.id, keep.id)
    assert (conn.source_handle, conn.target_handle) == ("output", "items")

    assert await store.get_workflow(9999) is None


@pytest.mark.asyncio
async def test_nodes_require_existing_workflow(store):
    with pytest.raises(WorkflowNotFoundError):
        await store.add_node(404, "filter")
    with pytest.raises(WorkflowNotFoundError):
        await store.create_run(404)


@pytest.mark.asyncio
async def test_default_node_types_are_seeded(store):
    keys = {entry.key for entry in await store.list_node_types()}
    assert {"httpRequest", "filter", "transform"} <= keys
    entry = await store.get_node_type("filter")
    assert entry.executor_class == "filter"
    assert entry.category == "Data Processing"


@pytest.mark.asyncio
async def test_register_node_type_replaces(store):
    await store.register_node_type(
        NodeTypeEntry(key="upper", executor_class="plugin:/opt/upper.py")
    )
    await store.register_node_type(
        NodeTypeEntry(key="upper", executor_class="plugin:/opt/upper2.py")
    )
    entry = await store.get_node_type("upper")
    assert entry.executor_class == "plugin:/opt/upper2.py"
    assert await store.get_node_type("missing") is None


@pytest.mark.asyncio
async def test_run_lifecycle(store):
    wf = await store.create_workflow("wf")
    node = await store.add_node(wf.id, "transform")
    run = await store.create_run(wf.id, '{"x": 1}')
    assert run.status == RunStatus.PENDING
    assert run.input_data == '{"x": 1}'

    assert await store.claim_run(run.id) is True
    assert await store.claim_run(run.id) is False
    assert await store.claim_run(9999) is False

    step = await store.create_step_run(run.id, node.id)
    assert step.status == StepStatus.RUNNING
    assert step.started_at is not None
    await store.update_step_run(step.id, input_data='{"input": 1}')
    assert await store.completed_node_ids(run.id) == set()

    await store.update_step_run(
        step.id, status=StepStatus.COMPLETED, output_data="[1]", completed=True
    )
    assert await store.completed_node_ids(run.id) == {node.id}

    await store.finish_run(run.id, RunStatus.COMPLETED, '{"1": [1]}')
    loaded = await store.get_run(run.id)
    assert loaded.status == RunStatus.COMPLETED
    assert loaded.started_at is not None
    assert loaded.completed_at is not None
    assert loaded.output == {"1": [1]}
    assert len(loaded.steps) == 1
    stored_step = loaded.steps[0]
    assert stored_step.input_data == '{"input": 1}'
    assert stored_step.output_data == "[1]"
    assert stored_step.completed_at is not None


@pytest.mark.asyncio
async def test_list_runs(store):
    first = await store.create_workflow("a")
    second = await store.create_workflow("b")
    await store.create_run(first.id)
    await store.create_run(second.id)
    await store.create_run(second.id)

    assert len(await store.list_runs()) == 3
    assert [r.workflow_id for r in await store.list_runs(second.id)] == [
        second.id,
        second.id,
    ]


@pytest.mark.asyncio
async def test_sqlite_data_survives_reopen(tmp_path):
    path = tmp_path / "wf.db"
    repo = SQLiteWorkflowRepository(path)
    wf = await repo.create_workflow("persisted")
    run = await repo.create_run(wf.id)
    repo.close()

    reopened = SQLiteWorkflowRepository(path)
    assert (await reopened.get_workflow(wf.id)).name == "persisted"
    assert (await reopened.get_run(run.id)).status == RunStatus.PENDING
    reopened.close()


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    assert isinstance(get_repository(), InMemoryWorkflowRepository)
    assert get_repository() is get_repository()

    repo = get_repository(f"sqlite://{tmp_path / 'x.db'}")
    assert isinstance(repo, SQLiteWorkflowRepository)
    repo.close()

    with pytest.raises(ValueError):
        get_repository("mysql://nope")
