"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

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


def _ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _run_from_row(row: sqlite3.Row) -> WorkflowRun:
    return WorkflowRun(
        id=row["id"],
        workflow_id=row["workflow_id"],
        status=RunStatus(row["status"]),
        started_at=_ts(row["started_at"]),
        completed_at=_ts(row["completed_at"]),
        input_data=row["input_data"],
        output_data=row["output_data"],
        error_message=row["error_message"],
    )


def _step_from_row(row: sqlite3.Row) -> StepRun:
    return StepRun(
        id=row["id"],
        run_id=row["workflow_execution_id"],
        node_id=row["node_id"],
        status=StepStatus(row["status"]),
        started_at=_ts(row["started_at"]),
        completed_at=_ts(row["completed_at"]),
        input_data=row["input_data"],
        output_data=row["output_data"],
        error_message=row["error_message"],
    )


def _node_type_from_row(row: sqlite3.Row) -> NodeTypeEntry:
    return NodeTypeEntry(
        key=row["key"],
        name=row["name"],
        description=row["description"],
        icon=row["icon"],
        category=row["category"],
        config_schema=json.loads(row["config_schema"]),
        input_schema=json.loads(row["input_schema"]),
        output_schema=json.loads(row["output_schema"]),
        executor_class=row["executor_class"],
    )


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflows and runs using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                is_active INTEGER NOT NULL DEFAULT 1
            );
            CREATE TABLE IF NOT EXISTS nodes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_id INTEGER NOT NULL REFERENCES workflows(id),
                node_type TEXT NOT NULL,
                name TEXT NOT NULL DEFAULT '',
                config TEXT NOT NULL DEFAULT '{}',
                position_x REAL NOT NULL DEFAULT 0,
                position_y REAL NOT NULL DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS connections (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
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
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_id INTEGER NOT NULL REFERENCES workflows(id),
                status TEXT NOT NULL DEFAULT 'pending',
                started_at TEXT,
                completed_at TEXT,
                input_data TEXT NOT NULL DEFAULT '{}',
                output_data TEXT NOT NULL DEFAULT '{}',
                error_message TEXT
            );
            CREATE TABLE IF NOT EXISTS node_executions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_execution_id INTEGER NOT NULL
                    REFERENCES workflow_executions(id) ON DELETE CASCADE,
                node_id INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                started_at TEXT,
                completed_at TEXT,
                input_data TEXT NOT NULL DEFAULT '{}',
                output_data TEXT NOT NULL DEFAULT '{}',
                error_message TEXT
            );
            """
        )
        for entry in DEFAULT_NODE_TYPES:
            cur.execute(
                "INSERT OR IGNORE INTO node_types VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._node_type_params(entry),
            )
        self._conn.commit()

    @staticmethod
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

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> sqlite3.Cursor:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    async def _insert(self, query: str, *params: Any) -> int:
        cur = await asyncio.to_thread(self._execute, query, *params)
        return cur.lastrowid

    async def _require_workflow(self, workflow_id: int) -> None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT id FROM workflows WHERE id = ?", workflow_id
        )
        if row is None:
            raise WorkflowNotFoundError(f"workflow {workflow_id} not found")

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Workflow structure
    async def create_workflow(self, name: str, description: str = "") -> Workflow:
        workflow_id = await self._insert(
            "INSERT INTO workflows (name, description) VALUES (?, ?)",
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
        await self._require_workflow(workflow_id)
        raw_config = config if isinstance(config, str) else json.dumps(config)
        node_id = await self._insert(
            "INSERT INTO nodes (workflow_id, node_type, name, config, position_x, position_y) "
            "VALUES (?, ?, ?, ?, ?, ?)",
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
        await self._require_workflow(workflow_id)
        conn_id = await self._insert(
            "INSERT INTO connections (workflow_id, source_node_id, target_node_id, "
            "source_handle, target_handle) VALUES (?, ?, ?, ?, ?)",
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
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT id, name, description, is_active FROM workflows WHERE id = ?",
            workflow_id,
        )
        if not row:
            return None
        node_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM nodes WHERE workflow_id = ? ORDER BY id",
            workflow_id,
        )
        conn_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM connections WHERE workflow_id = ? ORDER BY id",
            workflow_id,
        )
        return Workflow(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            is_active=bool(row["is_active"]),
            nodes=[Node(**dict(r)) for r in node_rows],
            connections=[Connection(**dict(r)) for r in conn_rows],
        )

    # ------------------------------------------------------------------
    # Node types
    async def register_node_type(self, entry: NodeTypeEntry) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO node_types VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            *self._node_type_params(entry),
        )

    async def get_node_type(self, key: str) -> NodeTypeEntry | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM node_types WHERE key = ?", key
        )
        return _node_type_from_row(row) if row else None

    async def list_node_types(self) -> list[NodeTypeEntry]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT * FROM node_types ORDER BY key"
        )
        return [_node_type_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Runs
    async def create_run(self, workflow_id: int, input_data: str = "{}") -> WorkflowRun:
        await self._require_workflow(workflow_id)
        run_id = await self._insert(
            "INSERT INTO workflow_executions (workflow_id, status, input_data) VALUES (?, ?, ?)",
            workflow_id,
            RunStatus.PENDING.value,
            input_data,
        )
        return WorkflowRun(id=run_id, workflow_id=workflow_id, input_data=input_data)

    async def get_run(self, run_id: int) -> WorkflowRun | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {RUN_COLUMNS} FROM workflow_executions WHERE id = ?",
            run_id,
        )
        if not row:
            return None
        step_rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {STEP_COLUMNS} FROM node_executions "
            "WHERE workflow_execution_id = ? ORDER BY id",
            run_id,
        )
        run = _run_from_row(row)
        run.steps = [_step_from_row(r) for r in step_rows]
        return run

    async def list_runs(self, workflow_id: Optional[int] = None) -> list[WorkflowRun]:
        if workflow_id is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {RUN_COLUMNS} FROM workflow_executions ORDER BY id",
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {RUN_COLUMNS} FROM workflow_executions "
                "WHERE workflow_id = ? ORDER BY id",
                workflow_id,
            )
        return [_run_from_row(r) for r in rows]

    async def claim_run(self, run_id: int) -> bool:
        cur = await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_executions SET status = ?, started_at = ? "
            "WHERE id = ? AND status = ?",
            RunStatus.RUNNING.value,
            utcnow().isoformat(),
            run_id,
            RunStatus.PENDING.value,
        )
        return cur.rowcount == 1

    async def finish_run(
        self,
        run_id: int,
        status: RunStatus,
        output_data: str,
        error_message: str | None = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_executions "
            "SET status = ?, output_data = ?, error_message = ?, completed_at = ? "
            "WHERE id = ?",
            RunStatus(status).value,
            output_data,
            error_message,
            utcnow().isoformat(),
            run_id,
        )

    # ------------------------------------------------------------------
    # Step-runs
    async def create_step_run(self, run_id: int, node_id: int) -> StepRun:
        started_at = utcnow()
        step_id = await self._insert(
            "INSERT INTO node_executions (workflow_execution_id, node_id, status, started_at) "
            "VALUES (?, ?, ?, ?)",
            run_id,
            node_id,
            StepStatus.RUNNING.value,
            started_at.isoformat(),
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
        fields: list[str] = []
        params: list[Any] = []
        if status is not None:
            fields.append("status = ?")
            params.append(StepStatus(status).value)
        if input_data is not None:
            fields.append("input_data = ?")
            params.append(input_data)
        if output_data is not None:
            fields.append("output_data = ?")
            params.append(output_data)
        if error_message is not None:
            fields.append("error_message = ?")
            params.append(error_message)
        if completed:
            fields.append("completed_at = ?")
            params.append(utcnow().isoformat())
        if not fields:
            return
        await asyncio.to_thread(
            self._execute,
            f"UPDATE node_executions SET {', '.join(fields)} WHERE id = ?",
            *params,
            step_id,
        )

    async def completed_node_ids(self, run_id: int) -> set[int]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT node_id FROM node_executions "
            "WHERE workflow_execution_id = ? AND status = ?",
            run_id,
            StepStatus.COMPLETED.value,
        )
        return {r["node_id"] for r in rows}
