"""Executor contract, built-in step kinds and executor resolution."""

from __future__ import annotations

from .base import NodeExecutor, input_items
from .filter import FilterExecutor
from .http_request import HttpRequestExecutor
from .registry import (
    BUILTIN_EXECUTORS,
    FACTORY_NAME,
    PLUGIN_PREFIX,
    ExecutorRegistry,
)
from .transform import TransformExecutor

__all__ = [
    "NodeExecutor",
    "input_items",
    "FilterExecutor",
    "HttpRequestExecutor",
    "TransformExecutor",
    "ExecutorRegistry",
    "BUILTIN_EXECUTORS",
    "FACTORY_NAME",
    "PLUGIN_PREFIX",
]
