"""Repository abstraction for workflow and run persistence."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from ..models import (
    Connection,
    Node,
    NodeTypeEntry,
    RunStatus,
    StepRun,
    StepStatus,
    Workflow,
    WorkflowRun,
)


class WorkflowRepository(Protocol):
    """Protocol for the data-access layer shared by the engine and workers.

    Each method is a single-row read or write; no method spans a whole
    traversal.
    """

    # Workflow structure ------------------------------------------------
    async def create_workflow(self, name: str, description: str = "") -> Workflow:
        """Persist an empty workflow."""

    async def add_node(
        self,
        workflow_id: int,
        node_type: str,
        config: dict[str, Any] | str = "{}",
        name: str = "",
        position_x: float = 0.0,
        position_y: float = 0.0,
    ) -> Node:
        """Append a node to a workflow."""

    async def add_connection(
        self,
        workflow_id: int,
        source_node_id: int,
        target_node_id: int,
        source_handle: str = "output",
        target_handle: str = "input",
    ) -> Connection:
        """Append a connection to a workflow."""

    async def get_workflow(self, workflow_id: int) -> Workflow | None:
        """Load a workflow with its nodes and connections in id order."""

    # Node types ----------------------------------------------------------
    async def register_node_type(self, entry: NodeTypeEntry) -> None:
        """Insert or replace a node type entry."""

    async def get_node_type(self, key: str) -> NodeTypeEntry | None:
        """Look up a node type entry by key."""

    async def list_node_types(self) -> list[NodeTypeEntry]:
        """Return all registered node types."""

    # Runs ------------------------------------------------------------------
    async def create_run(self, workflow_id: int, input_data: str = "{}") -> WorkflowRun:
        """Persist a new ``pending`` run."""

    async def get_run(self, run_id: int) -> WorkflowRun | None:
        """Retrieve a run together with its step-runs."""

    async def list_runs(self, workflow_id: Optional[int] = None) -> list[WorkflowRun]:
        """Return runs, optionally restricted to one workflow."""

    async def claim_run(self, run_id: int) -> bool:
        """Atomically move a run from ``pending`` to ``running``.

        Returns ``False`` when the run is not pending.
        """

    async def finish_run(
        self,
        run_id: int,
        status: RunStatus,
        output_data: str,
        error_message: str | None = None,
    ) -> None:
        """Record the final state of a run."""

    # Step-runs ---------------------------------------------------------------
    async def create_step_run(self, run_id: int, node_id: int) -> StepRun:
        """Persist a ``running`` step-run with its start time."""

    async def update_step_run(
        self,
        step_id: int,
        status: StepStatus | None = None,
        input_data: str | None = None,
        output_data: str | None = None,
        error_message: str | None = None,
        completed: bool = False,
    ) -> None:
        """Update a step-run in place; ``completed`` stamps completion time."""

    async def completed_node_ids(self, run_id: int) -> set[int]:
        """Ids of nodes with a ``completed`` step-run in ``run_id``."""
