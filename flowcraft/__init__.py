"""Flowcraft: queue-driven execution of node-graph workflows."""

from .dispatch import WorkflowDispatcher
from .engine import WorkflowEngine
from .executors import ExecutorRegistry, NodeExecutor
from .persistence import get_repository
from .queues import get_queue
from .worker import WorkerPool

__version__ = "0.1.0"
__all__ = [
    "ExecutorRegistry",
    "NodeExecutor",
    "WorkerPool",
    "WorkflowDispatcher",
    "WorkflowEngine",
    "get_queue",
    "get_repository",
]
