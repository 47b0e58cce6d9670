"""Persistence layer for workflows, runs and step-runs."""

from __future__ import annotations

import os
from typing import Optional

from ..config import FlowcraftConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .node_types import DEFAULT_NODE_TYPES
from .postgres import PostgresWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

SQLITE_SCHEME = "sqlite://"
POSTGRES_SCHEMES = ("postgres://", "postgresql://")

_repository_instance: WorkflowRepository | None = None


def _open_repository(database_url: str) -> WorkflowRepository:
    if database_url.startswith(SQLITE_SCHEME):
        return SQLiteWorkflowRepository(database_url[len(SQLITE_SCHEME) :])
    if database_url.startswith(POSTGRES_SCHEMES):
        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[FlowcraftConfig] = None
) -> WorkflowRepository:
    """Return the process-wide workflow repository.

    ``database_url`` wins over ``FLOWCRAFT_DATABASE_URL``/``DATABASE_URL``,
    which win over ``database_url`` in the loaded configuration. Without any
    of them the store lives in memory. Calls without arguments reuse the
    last repository created.
    """
    global _repository_instance
    if database_url is None and config is None and _repository_instance is not None:
        return _repository_instance

    url = (
        database_url
        or os.getenv("FLOWCRAFT_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or (config or load_config()).database_url
    )
    _repository_instance = (
        _open_repository(url) if url else InMemoryWorkflowRepository()
    )
    return _repository_instance


__all__ = [
    "DEFAULT_NODE_TYPES",
    "InMemoryWorkflowRepository",
    "PostgresWorkflowRepository",
    "SQLiteWorkflowRepository",
    "WorkflowRepository",
    "get_repository",
]
