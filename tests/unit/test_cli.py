import asyncio
import json
from pathlib import Path

from typer.testing import CliRunner

import flowcraft.cli as cli
import flowcraft.persistence as persistence
from flowcraft.cli import app
from flowcraft.models import EXECUTE_WORKFLOW, RunStatus
from flowcraft.persistence import InMemoryWorkflowRepository
from flowcraft.queues.inmemory import InMemoryTaskQueue

WORKFLOW_YAML = """
name: greet
description: say hello to adults
nodes:
  - key: shape
    type: transform
    config:
      mapping:
        greeting: "Hello {{name}}"
        age: "{{age}}"
  - key: adults
    type: filter
    config: {field: age, operator: greater_than, value: 17}
connections:
  - source: shape
    target: adults
"""


def _setup_repo() -> InMemoryWorkflowRepository:
    repo = InMemoryWorkflowRepository()
    persistence._repository_instance = repo
    return repo


def _import(runner, tmp_path, text=WORKFLOW_YAML, name="greet.yaml"):
    path = tmp_path / name
    path.write_text(text)
    return runner.invoke(app, ["workflow", "import", str(path)])


def test_workflow_import_and_show(tmp_path):
    repo = _setup_repo()
    runner = CliRunner()

    result = _import(runner, tmp_path)
    assert result.exit_code == 0, result.output
    assert "Imported workflow 1 'greet' (2 nodes, 1 connections)" in result.output

    wf = asyncio.run(repo.get_workflow(1))
    assert [n.node_type for n in wf.nodes] == ["transform", "filter"]
    assert [n.name for n in wf.nodes] == ["shape", "adults"]
    assert json.loads(wf.nodes[1].config)["operator"] == "greater_than"

    result = runner.invoke(app, ["workflow", "show", "1"])
    assert result.exit_code == 0, result.output
    assert "Workflow 1: greet" in result.output
    assert "[filter] adults" in result.output


def test_workflow_import_json_file(tmp_path):
    _setup_repo()
    definition = {
        "name": "single",
        "nodes": [{"key": "only", "type": "transform", "config": {"mapping": {}}}],
    }
    result = _import(CliRunner(), tmp_path, json.dumps(definition), "single.json")
    assert result.exit_code == 0, result.output
    assert "(1 nodes, 0 connections)" in result.output


def test_workflow_import_rejects_unknown_node_key(tmp_path):
    _setup_repo()
    text = """
name: broken
nodes:
  - {key: a, type: transform}
connections:
  - {source: a, target: b}
"""
    result = _import(CliRunner(), tmp_path, text)
    assert result.exit_code == 1
    assert "unknown node 'b'" in result.output


def test_workflow_import_missing_file(tmp_path):
    _setup_repo()
    result = CliRunner().invoke(app, ["workflow", "import", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1


def test_run_execute_show_and_list(tmp_path):
    repo = _setup_repo()
    runner = CliRunner()
    _import(runner, tmp_path)

    people = {"input": [{"name": "Ada", "age": 36}, {"name": "Tim", "age": 7}]}
    result = runner.invoke(app, ["run", "execute", "1", "--input", json.dumps(people)])
    assert result.exit_code == 0, result.output
    assert "Run 1 (workflow 1): completed" in result.output

    run = asyncio.run(repo.get_run(1))
    assert run.status == RunStatus.COMPLETED
    assert run.output["2"] == [{"greeting": "Hello Ada", "age": 36}]

    result = runner.invoke(app, ["run", "show", "1"])
    assert result.exit_code == 0, result.output
    assert "- node 1: completed" in result.output
    assert "- node 2: completed" in result.output

    result = runner.invoke(app, ["run", "list", "--workflow", "1"])
    assert result.exit_code == 0, result.output
    assert "1\t1\tcompleted" in result.output


def test_run_execute_reports_failure(tmp_path):
    repo = _setup_repo()
    wf = asyncio.run(repo.create_workflow("bad"))
    asyncio.run(repo.add_node(wf.id, "transform", {}))

    result = CliRunner().invoke(app, ["run", "execute", str(wf.id)])
    assert result.exit_code == 1
    assert "mapping is required in config" in result.output


def test_run_show_missing_and_empty_list():
    _setup_repo()
    runner = CliRunner()
    result = runner.invoke(app, ["run", "show", "42"])
    assert result.exit_code == 1
    assert "Run not found" in result.output

    result = runner.invoke(app, ["run", "list"])
    assert result.exit_code == 0
    assert "No runs found" in result.output


def test_run_submit_enqueues_task(tmp_path, monkeypatch):
    repo = _setup_repo()
    queue = InMemoryTaskQueue()
    monkeypatch.setattr(cli, "get_queue", lambda *args, **kwargs: queue)
    runner = CliRunner()
    _import(runner, tmp_path)

    result = runner.invoke(app, ["run", "submit", "1", "--input", '{"input": []}'])
    assert result.exit_code == 0, result.output
    assert "Run 1 submitted" in result.output

    run = asyncio.run(repo.get_run(1))
    assert run.status == RunStatus.PENDING
    assert run.input_data == '{"input": []}'
    envelope = asyncio.run(queue.dequeue("workflow_tasks", timeout=0))
    assert envelope.task_type == EXECUTE_WORKFLOW
    assert envelope.payload == {"execution_id": 1}


def test_run_submit_unknown_workflow(monkeypatch):
    _setup_repo()
    monkeypatch.setattr(cli, "get_queue", lambda *args, **kwargs: InMemoryTaskQueue())
    result = CliRunner().invoke(app, ["run", "submit", "5"])
    assert result.exit_code == 1
    assert "workflow 5 not found" in result.output


def test_run_submit_rejects_non_object_input():
    _setup_repo()
    result = CliRunner().invoke(app, ["run", "submit", "1", "--input", "[1, 2]"])
    assert result.exit_code == 1
    assert "Input must be a JSON object" in result.output


def test_node_types_list():
    _setup_repo()
    result = CliRunner().invoke(app, ["node-types", "list"])
    assert result.exit_code == 0
    assert "httpRequest\tAPI\thttpRequest" in result.output
    assert "filter" in result.output
    assert "transform" in result.output


def test_worker_rejects_invalid_options():
    result = CliRunner().invoke(app, ["worker", "--poll-interval", "soon"])
    assert result.exit_code == 1
    assert "Invalid worker options" in result.output


def test_guide_workflow_imports_and_runs():
    repo = _setup_repo()
    runner = CliRunner()
    path = Path(__file__).resolve().parents[2] / "guides" / "greet_workflow.yaml"

    result = runner.invoke(app, ["workflow", "import", str(path)])
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        app, ["run", "execute", "1", "--input", '{"input": [{"name": "Ada", "age": 36}]}']
    )
    assert result.exit_code == 0, result.output
    assert asyncio.run(repo.get_run(1)).output["2"] == [
        {"greeting": "Hello Ada", "age": 36}
    ]
