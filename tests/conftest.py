"""Shared fixtures for the flowcraft test suite."""

from __future__ import annotations

from typing import Any, Dict

import pytest

import flowcraft.persistence as persistence
from flowcraft.errors import ExecutionError
from flowcraft.executors import ExecutorRegistry, NodeExecutor
from flowcraft.persistence import InMemoryWorkflowRepository


class EchoExecutor(NodeExecutor):
    """Returns its config tag together with everything it received."""

    async def execute(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Any:
        return {"tag": config.get("tag"), "inputs": inputs}


class FailingExecutor(NodeExecutor):
    async def execute(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Any:
        raise ExecutionError(config.get("message", "boom"))


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from local config files and the repository singleton."""
    monkeypatch.setenv("FLOWCRAFT_CONFIG", str(tmp_path / "missing.yaml"))
    for var in ("FLOWCRAFT_DATABASE_URL", "DATABASE_URL", "REDIS_URL", "FLOWCRAFT_QUEUE"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)


@pytest.fixture
def repo():
    return InMemoryWorkflowRepository()


@pytest.fixture
def registry():
    registry = ExecutorRegistry()
    registry.register("echo", EchoExecutor)
    registry.register("fail", FailingExecutor)
    return registry
