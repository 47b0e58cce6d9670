"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from ..errors import WorkflowNotFoundError
from ..models import (
    Connection,
    Node,
    NodeTypeEntry,
    RunStatus,
    StepRun,
    StepStatus,
    Workflow,
    WorkflowRun,
    utcnow,
)
from .node_types import DEFAULT_NODE_TYPES
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflows and runs in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Reads return copies so callers
    observe a snapshot.
    """

    def __init__(self) -> None:
        self._workflows: Dict[int, Workflow] = {}
        self._runs: Dict[int, WorkflowRun] = {}
        self._steps: Dict[int, StepRun] = {}
        self._node_types: Dict[str, NodeTypeEntry] = {
            entry.key: entry for entry in DEFAULT_NODE_TYPES
        }
        self._ids: Dict[str, int] = {}

    def _next_id(self, kind: str) -> int:
        self._ids[kind] = self._ids.get(kind, 0) + 1
        return self._ids[kind]

    def _require(self, workflow_id: int) -> Workflow:
        wf = self._workflows.get(workflow_id)
        if wf is None:
            raise WorkflowNotFoundError(f"workflow {workflow_id} not found")
        return wf

    # ------------------------------------------------------------------
    async def create_workflow(self, name: str, description: str = "") -> Workflow:
        wf = Workflow(id=self._next_id("workflow"), name=name, description=description)
        self._workflows[wf.id] = wf
        return wf.model_copy(deep=True)

    async def add_node(
        self,
        workflow_id: int,
        node_type: str,
        config: dict[str, Any] | str = "{}",
        name: str = "",
        position_x: float = 0.0,
        position_y: float = 0.0,
    ) -> Node:
        node = Node(
            id=self._next_id("node"),
            workflow_id=workflow_id,
            node_type=node_type,
            name=name,
            config=config if isinstance(config, str) else json.dumps(config),
            position_x=position_x,
            position_y=position_y,
        )
        self._require(workflow_id).nodes.append(node)
        return node.model_copy()

    async def add_connection(
        self,
        workflow_id: int,
        source_node_id: int,
        target_node_id: int,
        source_handle: str = "output",
        target_handle: str = "input",
    ) -> Connection:
        conn = Connection(
            id=self._next_id("connection"),
            workflow_id=workflow_id,
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            source_handle=source_handle,
            target_handle=target_handle,
        )
        self._require(workflow_id).connections.append(conn)
        return conn.model_copy()

    async def get_workflow(self, workflow_id: int) -> Workflow | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    # ------------------------------------------------------------------
    async def register_node_type(self, entry: NodeTypeEntry) -> None:
        self._node_types[entry.key] = entry

    async def get_node_type(self, key: str) -> NodeTypeEntry | None:
        return self._node_types.get(key)

    async def list_node_types(self) -> list[NodeTypeEntry]:
        return list(self._node_types.values())

    # ------------------------------------------------------------------
    async def create_run(self, workflow_id: int, input_data: str = "{}") -> WorkflowRun:
        self._require(workflow_id)
        run = WorkflowRun(
            id=self._next_id("run"), workflow_id=workflow_id, input_data=input_data
        )
        self._runs[run.id] = run
        return run.model_copy(deep=True)

    async def get_run(self, run_id: int) -> WorkflowRun | None:
        run = self._runs.get(run_id)
        if run is None:
            return None
        snapshot = run.model_copy(deep=True)
        snapshot.steps = [
            step.model_copy() for step in self._steps.values() if step.run_id == run_id
        ]
        return snapshot

    async def list_runs(self, workflow_id: Optional[int] = None) -> list[WorkflowRun]:
        return [
            run.model_copy(deep=True)
            for run in self._runs.values()
            if workflow_id is None or run.workflow_id == workflow_id
        ]

    async def claim_run(self, run_id: int) -> bool:
        run = self._runs.get(run_id)
        if run is None or run.status != RunStatus.PENDING:
            return False
        run.status = RunStatus.RUNNING
        run.started_at = utcnow()
        return True

    async def finish_run(
        self,
        run_id: int,
        status: RunStatus,
        output_data: str,
        error_message: str | None = None,
    ) -> None:
        run = self._runs.get(run_id)
        if run:
            run.status = status
            run.output_data = output_data
            run.error_message = error_message
            run.completed_at = utcnow()

    # ------------------------------------------------------------------
    async def create_step_run(self, run_id: int, node_id: int) -> StepRun:
        step = StepRun(
            id=self._next_id("step"),
            run_id=run_id,
            node_id=node_id,
            status=StepStatus.RUNNING,
            started_at=utcnow(),
        )
        self._steps[step.id] = step
        return step.model_copy()

    async def update_step_run(
        self,
        step_id: int,
        status: StepStatus | None = None,
        input_data: str | None = None,
        output_data: str | None = None,
        error_message: str | None = None,
        completed: bool = False,
    ) -> None:
        step = self._steps.get(step_id)
        if not step:
            return
        if status is not None:
            step.status = status
        if input_data is not None:
            step.input_data = input_data
        if output_data is not None:
            step.output_data = output_data
        if error_message is not None:
            step.error_message = error_message
        if completed:
            step.completed_at = utcnow()

    async def completed_node_ids(self, run_id: int) -> set[int]:
        return {
            step.node_id
            for step in self._steps.values()
            if step.run_id == run_id and step.status == StepStatus.COMPLETED
        }
