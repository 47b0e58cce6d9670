"""Loading workflow definition files for the ``workflow import`` command."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from flowcraft.models import DEFAULT_SOURCE_HANDLE, DEFAULT_TARGET_HANDLE, Workflow
from flowcraft.persistence import WorkflowRepository


class NodeDefinition(BaseModel):
    key: str
    type: str
    name: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)
    position: List[float] = Field(default_factory=lambda: [0.0, 0.0])


class ConnectionDefinition(BaseModel):
    source: str
    target: str
    source_handle: str = DEFAULT_SOURCE_HANDLE
    target_handle: str = DEFAULT_TARGET_HANDLE


class WorkflowDefinition(BaseModel):
    """A workflow as written in a YAML or JSON file.

    Nodes carry file-local keys; connections refer to nodes by key.
    """

    name: str
    description: str = ""
    nodes: List[NodeDefinition] = Field(default_factory=list)
    connections: List[ConnectionDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_keys(self) -> "WorkflowDefinition":
        keys = [node.key for node in self.nodes]
        duplicates = sorted({key for key in keys if keys.count(key) > 1})
        if duplicates:
            raise ValueError(f"duplicate node keys: {', '.join(duplicates)}")
        known = set(keys)
        for conn in self.connections:
            for key in (conn.source, conn.target):
                if key not in known:
                    raise ValueError(f"connection references unknown node '{key}'")
        return self


def load_definition(path: Path) -> WorkflowDefinition:
    """Parse a workflow definition from ``path``.

    Files ending in ``.json`` are read as JSON, anything else as YAML.

    Raises:
        ValueError: if the file is malformed or fails validation.
    """
    text = path.read_text()
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise ValueError(f"cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a workflow mapping")
    try:
        return WorkflowDefinition.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"invalid workflow definition in {path}: {e}") from e


async def import_workflow(
    repository: WorkflowRepository, definition: WorkflowDefinition
) -> Workflow:
    """Persist ``definition`` and return the stored workflow."""
    workflow = await repository.create_workflow(
        definition.name, definition.description
    )
    node_ids: Dict[str, int] = {}
    for node in definition.nodes:
        x, y = (list(node.position) + [0.0, 0.0])[:2]
        stored = await repository.add_node(
            workflow.id,
            node.type,
            config=node.config,
            name=node.name or node.key,
            position_x=x,
            position_y=y,
        )
        node_ids[node.key] = stored.id
    for conn in definition.connections:
        await repository.add_connection(
            workflow.id,
            node_ids[conn.source],
            node_ids[conn.target],
            source_handle=conn.source_handle,
            target_handle=conn.target_handle,
        )
    return await repository.get_workflow(workflow.id)
