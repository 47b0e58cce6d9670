"""Data models for workflows, runs and queued tasks."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

EXECUTE_WORKFLOW = "execute_workflow"
DEFAULT_SOURCE_HANDLE = "output"
DEFAULT_TARGET_HANDLE = "input"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    # Reserved for conditional branches; never assigned by the engine.
    SKIPPED = "skipped"


class Node(BaseModel):
    """One step of a workflow graph."""

    id: int
    workflow_id: int
    node_type: str
    name: str = ""
    config: str = Field(default="{}", description="JSON configuration document")
    position_x: float = 0.0
    position_y: float = 0.0


class Connection(BaseModel):
    """Directed edge between two named ports of the same workflow."""

    id: int
    workflow_id: int
    source_node_id: int
    target_node_id: int
    source_handle: str = DEFAULT_SOURCE_HANDLE
    target_handle: str = DEFAULT_TARGET_HANDLE


class Workflow(BaseModel):
    """Named container of nodes and connections."""

    id: int
    name: str
    description: str = ""
    is_active: bool = True
    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)


class StepRun(BaseModel):
    """Execution record of a single node within a run."""

    id: int
    run_id: int
    node_id: int
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    input_data: str = "{}"
    output_data: str = "{}"
    error_message: Optional[str] = None


class WorkflowRun(BaseModel):
    """One execution attempt of a workflow."""

    id: int
    workflow_id: int
    status: RunStatus = RunStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    input_data: str = "{}"
    output_data: str = "{}"
    error_message: Optional[str] = None
    steps: list[StepRun] = Field(default_factory=list)

    @property
    def output(self) -> dict[str, Any]:
        """Decoded output document keyed by node id."""
        return json.loads(self.output_data or "{}")


class NodeTypeEntry(BaseModel):
    """Maps a node type key to its executor reference.

    The schemas are carried for editing tools and are not enforced at run
    time.
    """

    key: str
    name: str = ""
    description: str = ""
    icon: str = ""
    category: str = "Uncategorized"
    config_schema: dict[str, Any] = Field(default_factory=dict)
    input_schema: dict[str, Any] = Field(default_factory=dict)
    output_schema: dict[str, Any] = Field(default_factory=dict)
    executor_class: str


class TaskEnvelope(BaseModel):
    """Unit carried by the task queue."""

    task_type: str
    payload: Any = None

    def to_json(self) -> str:
        return json.dumps(
            {"task_type": self.task_type, "payload": self.payload},
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, data: str | bytes) -> "TaskEnvelope":
        return cls.model_validate_json(data)


class ExecuteWorkflowPayload(BaseModel):
    """Payload of an ``execute_workflow`` task."""

    execution_id: int = Field(ge=0)
