"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import asyncpg

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

RUN_COLUMNS = (
    "id, workflow_id, status, started_at, completed_at, input_data, "
    "output_data, error_message"
)
STEP_COLUMNS = (
    "id, workflow_execution_id, node_id, status, started_at, completed_at, "
    "input_data, output_data, error_message"
)
NODE_TYPE_UPSERT = """
    INSERT INTO node_types (key, name, description, icon, category,
        config_schema, input_schema, output_schema, executor_class)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
"""


def _run_from_record(r: asyncpg.Record) -> WorkflowRun:
    return WorkflowRun(
        id=r["id"],
        workflow_id=r["workflow_id"],
        status=RunStatus(r["status"]),
        started_at=r["started_at"],
        completed_at=r["completed_at"],
        input_data=r["input_data"],
        output_data=r["output_data"],
        error_message=r["error_message"],
    )


def _step_from_record(r: asyncpg.Record) -> StepRun:
    return StepRun(
        id=r["id"],
        run_id=r["workflow_execution_id"],
        node_id=r["node_id"],
        status=StepStatus(r["status"]),
        started_at=r["started_at"],
        completed_at=r["completed_at"],
        input_data=r["input_data"],
        output_data=r["output_data"],
        error_message=r["error_message"],
    )


def _node_type_from_record(r: asyncpg.Record) -> NodeTypeEntry:
    return NodeTypeEntry(
        key=r["key"],
        name=r["name"],
        description=r["description"],
        icon=r["icon"],
        category=r["category"],
        config_schema=json.loads(r["config_schema"]),
        input_schema=json.loads(r["input_schema"]),
        output_schema=json.loads(r["output_schema"]),
        executor_class=r["executor_class"],
    )


def _node_type_params(entry: NodeTypeEntry) -> tuple:
    return (
        entry.key,
        entry.name,
        entry.description,
        entry.icon,
        entry.category,
        json.dumps(entry.config_schema),
        json.dumps(entry.input_schema),
        json.dumps(entry.output_schema),
        entry.executor_class,
    )


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflows and runs using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        conn = await asyncpg.connect(self._dsn)
        try:
            if not self._initialized:
                await self._ensure_schema(conn)
                self._initialized = True
            yield conn
        finally:
            await conn.close()

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id SERIAL PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                is_active BOOLEAN NOT NULL DEFAULT TRUE
            );
            CREATE TABLE IF NOT EXISTS nodes (
                id SERIAL PRIMARY KEY,
                workflow_id INTEGER NOT NULL REFERENCES workflows(id),
                node_type TEXT NOT NULL,
                name TEXT NOT NULL DEFAULT '',
                config TEXT NOT NULL DEFAULT '{}',
                position_x DOUBLE PRECISION NOT NULL DEFAULT 0,
                position_y DOUBLE PRECISION NOT NULL DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS connections (
                id SERIAL PRIMARY KEY,
                workflow_id INTEGER NOT NULL REFERENCES workflows(id),
                source_node_id INTEGER NOT NULL,
                target_node_id INTEGER NOT NULL,
                source_handle TEXT NOT NULL DEFAULT 'output',
                target_handle TEXT NOT NULL DEFAULT 'input'
            );
            CREATE TABLE IF NOT EXISTS node_types (
                key TEXT PRIMARY KEY,
                name TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                icon TEXT NOT NULL DEFAULT '',
                category TEXT NOT NULL DEFAULT 'Uncategorized',
                config_schema TEXT NOT NULL DEFAULT '{}',
                input_schema TEXT NOT NULL DEFAULT '{}',
                output_schema TEXT NOT NULL DEFAULT '{}',
                executor_class TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id SERIAL PRIMARY KEY,
                workflow_id INTEGER NOT NULL REFERENCES workflows(id),
                status TEXT NOT NULL DEFAULT 'pending',
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                input_data TEXT NOT NULL DEFAULT '{}',
                output_data TEXT NOT NULL DEFAULT '{}',
                error_message TEXT
            );
            CREATE TABLE IF NOT EXISTS node_executions (
                id SERIAL PRIMARY KEY,
                workflow_execution_id INTEGER NOT NULL
                    REFERENCES workflow_executions(id) ON DELETE CASCADE,
                node_id INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                input_data TEXT NOT NULL DEFAULT '{}',
                output_data TEXT NOT NULL DEFAULT '{}',
                error_message TEXT
            );
            """
        )
        await conn.executemany(
            NODE_TYPE_UPSERT + " ON CONFLICT (key) DO NOTHING",
            [_node_type_params(entry) for entry in DEFAULT_NODE_TYPES],
        )

    async def _require_workflow(self, conn: asyncpg.Connection, workflow_id: int) -> None:
        if await conn.fetchval("SELECT id FROM workflows WHERE id = $1", workflow_id) is None:
            raise WorkflowNotFoundError(f"workflow {workflow_id} not found")

    # ------------------------------------------------------------------
    async def create_workflow(self, name: str, description: str = "") -> Workflow:
        async with self._connection() as conn:
            workflow_id = await conn.fetchval(
                "INSERT INTO workflows (name, description) VALUES ($1, $2) RETURNING id",
                name,
                description,
            )
        return Workflow(id=workflow_id, name=name, description=description)

    async def add_node(
        self,
        workflow_id: int,
        node_type: str,
        config: dict[str, Any] | str = "{}",
        name: str = "",
        position_x: float = 0.0,
        position_y: float = 0.0,
    ) -> Node:
        raw_config = config if isinstance(config, str) else json.dumps(config)
        async with self._connection() as conn:
            await self._require_workflow(conn, workflow_id)
            node_id = await conn.fetchval(
                "INSERT INTO nodes (workflow_id, node_type, name, config, position_x, position_y) "
                "VALUES ($1, $2, $3, $4, $5, $6) RETURNING id",
                workflow_id,
                node_type,
                name,
                raw_config,
                position_x,
                position_y,
            )
        return Node(
            id=node_id,
            workflow_id=workflow_id,
            node_type=node_type,
            name=name,
            config=raw_config,
            position_x=position_x,
            position_y=position_y,
        )

    async def add_connection(
        self,
        workflow_id: int,
        source_node_id: int,
        target_node_id: int,
        source_handle: str = "output",
        target_handle: str = "input",
    ) -> Connection:
        async with self._connection() as conn:
            await self._require_workflow(conn, workflow_id)
            conn_id = await conn.fetchval(
                "INSERT INTO connections (workflow_id, source_node_id, target_node_id, "
                "source_handle, target_handle) VALUES ($1, $2, $3, $4, $5) RETURNING id",
                workflow_id,
                source_node_id,
                target_node_id,
                source_handle,
                target_handle,
            )
        return Connection(
            id=conn_id,
            workflow_id=workflow_id,
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            source_handle=source_handle,
            target_handle=target_handle,
        )

    async def get_workflow(self, workflow_id: int) -> Workflow | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT id, name, description, is_active FROM workflows WHERE id = $1",
                workflow_id,
            )
            if not row:
                return None
            node_rows = await conn.fetch(
                "SELECT id, workflow_id, node_type, name, config, position_x, position_y "
                "FROM nodes WHERE workflow_id = $1 ORDER BY id",
                workflow_id,
            )
            conn_rows = await conn.fetch(
                "SELECT id, workflow_id, source_node_id, target_node_id, source_handle, "
                "target_handle FROM connections WHERE workflow_id = $1 ORDER BY id",
                workflow_id,
            )
        return Workflow(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            is_active=row["is_active"],
            nodes=[Node(**dict(r)) for r in node_rows],
            connections=[Connection(**dict(r)) for r in conn_rows],
        )

    # ------------------------------------------------------------------
    async def register_node_type(self, entry: NodeTypeEntry) -> None:
        async with self._connection() as conn:
            await conn.execute(
                NODE_TYPE_UPSERT
                + """ ON CONFLICT (key) DO UPDATE SET
                    name = EXCLUDED.name,
                    description = EXCLUDED.description,
                    icon = EXCLUDED.icon,
                    category = EXCLUDED.category,
                    config_schema = EXCLUDED.config_schema,
                    input_schema = EXCLUDED.input_schema,
                    output_schema = EXCLUDED.output_schema,
                    executor_class = EXCLUDED.executor_class""",
                *_node_type_params(entry),
            )

    async def get_node_type(self, key: str) -> NodeTypeEntry | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM node_types WHERE key = $1", key)
        return _node_type_from_record(row) if row else None

    async def list_node_types(self) -> list[NodeTypeEntry]:
        async with self._connection() as conn:
            rows = await conn.fetch("SELECT * FROM node_types ORDER BY key")
        return [_node_type_from_record(r) for r in rows]

    # ------------------------------------------------------------------
    async def create_run(self, workflow_id: int, input_data: str = "{}") -> WorkflowRun:
        async with self._connection() as conn:
            await self._require_workflow(conn, workflow_id)
            run_id = await conn.fetchval(
                "INSERT INTO workflow_executions (workflow_id, status, input_data) "
                "VALUES ($1, $2, $3) RETURNING id",
                workflow_id,
                RunStatus.PENDING.value,
                input_data,
            )
        return WorkflowRun(id=run_id, workflow_id=workflow_id, input_data=input_data)

    async def get_run(self, run_id: int) -> WorkflowRun | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {RUN_COLUMNS} FROM workflow_executions WHERE id = $1", run_id
            )
            if not row:
                return None
            step_rows = await conn.fetch(
                f"SELECT {STEP_COLUMNS} FROM node_executions "
                "WHERE workflow_execution_id = $1 ORDER BY id",
                run_id,
            )
        run = _run_from_record(row)
        run.steps = [_step_from_record(r) for r in step_rows]
        return run

    async def list_runs(self, workflow_id: Optional[int] = None) -> list[WorkflowRun]:
        async with self._connection() as conn:
            if workflow_id is None:
                rows = await conn.fetch(
                    f"SELECT {RUN_COLUMNS} FROM workflow_executions ORDER BY id"
                )
            else:
                rows = await conn.fetch(
                    f"SELECT {RUN_COLUMNS} FROM workflow_executions "
                    "WHERE workflow_id = $1 ORDER BY id",
                    workflow_id,
                )
        return [_run_from_record(r) for r in rows]

    async def claim_run(self, run_id: int) -> bool:
        async with self._connection() as conn:
            claimed = await conn.fetchval(
                "UPDATE workflow_executions SET status = $1, started_at = $2 "
                "WHERE id = $3 AND status = $4 RETURNING id",
                RunStatus.RUNNING.value,
                utcnow(),
                run_id,
                RunStatus.PENDING.value,
            )
        return claimed is not None

    async def finish_run(
        self,
        run_id: int,
        status: RunStatus,
        output_data: str,
        error_message: str | None = None,
    ) -> None:
        async with self._connection() as conn:
            await conn.execute(
                "UPDATE workflow_executions "
                "SET status = $1, output_data = $2, error_message = $3, completed_at = $4 "
                "WHERE id = $5",
                RunStatus(status).value,
                output_data,
                error_message,
                utcnow(),
                run_id,
            )

    # ------------------------------------------------------------------
    async def create_step_run(self, run_id: int, node_id: int) -> StepRun:
        started_at = utcnow()
        async with self._connection() as conn:
            step_id = await conn.fetchval(
                "INSERT INTO node_executions (workflow_execution_id, node_id, status, started_at) "
                "VALUES ($1, $2, $3, $4) RETURNING id",
                run_id,
                node_id,
                StepStatus.RUNNING.value,
                started_at,
            )
        return StepRun(
            id=step_id,
            run_id=run_id,
            node_id=node_id,
            status=StepStatus.RUNNING,
            started_at=started_at,
        )

    async def update_step_run(
        self,
        step_id: int,
        status: StepStatus | None = None,
        input_data: str | None = None,
        output_data: str | None = None,
        error_message: str | None = None,
        completed: bool = False,
    ) -> None:
        values: dict[str, Any] = {}
        if status is not None:
            values["status"] = StepStatus(status).value
        if input_data is not None:
            values["input_data"] = input_data
        if output_data is not None:
            values["output_data"] = output_data
        if error_message is not None:
            values["error_message"] = error_message
        if completed:
            values["completed_at"] = utcnow()
        if not values:
            return
        assignments = ", ".join(
            f"{column} = ${i}" for i, column in enumerate(values, start=1)
        )
        async with self._connection() as conn:
            await conn.execute(
                f"UPDATE node_executions SET {assignments} WHERE id = ${len(values) + 1}",
                *values.values(),
                step_id,
            )

    async def completed_node_ids(self, run_id: int) -> set[int]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT node_id FROM node_executions "
                "WHERE workflow_execution_id = $1 AND status = $2",
                run_id,
                StepStatus.COMPLETED.value,
            )
        return {r["node_id"] for r in rows}
