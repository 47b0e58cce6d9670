"""Resolution of node type keys to executor instances."""

from __future__ import annotations

import hashlib
import inspect
import logging
import sys
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path
from types import ModuleType
from typing import Callable, Dict

from ..errors import (
    ExtensionContractError,
    ExtensionLoadError,
    UnknownExecutorError,
)
from .base import NodeExecutor
from .filter import FilterExecutor
from .http_request import HttpRequestExecutor
from .transform import TransformExecutor

logger = logging.getLogger(__name__)

PLUGIN_PREFIX = "plugin:"
FACTORY_NAME = "new_executor"

ExecutorFactory = Callable[[], NodeExecutor]

BUILTIN_EXECUTORS: Dict[str, ExecutorFactory] = {
    "httpRequest": HttpRequestExecutor,
    "filter": FilterExecutor,
    "transform": TransformExecutor,
}


def _has_execute(obj: object) -> bool:
    return callable(getattr(obj, "execute", None))


class ExecutorRegistry:
    """Named executor factories plus ``plugin:<path>`` extensions.

    A plugin is a Python source file exposing a parameterless
    ``new_executor()`` that returns an object with an ``execute(config,
    inputs)`` method.
    """

    def __init__(self, include_builtins: bool = True) -> None:
        self._factories: Dict[str, ExecutorFactory] = (
            dict(BUILTIN_EXECUTORS) if include_builtins else {}
        )
        self._plugins: Dict[Path, ModuleType] = {}

    def register(self, name: str, factory: ExecutorFactory) -> None:
        """Register ``factory`` under ``name``, replacing any previous one."""
        if name.startswith(PLUGIN_PREFIX):
            raise ValueError(f"executor names may not start with {PLUGIN_PREFIX!r}")
        self._factories[name] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def resolve(self, executor_class: str) -> NodeExecutor:
        """Return a fresh executor for ``executor_class``."""
        factory = self._factories.get(executor_class)
        if factory is not None:
            return factory()
        if executor_class.startswith(PLUGIN_PREFIX):
            return self._load_plugin(executor_class[len(PLUGIN_PREFIX) :])
        raise UnknownExecutorError(f"unknown executor class: {executor_class}")

    # ------------------------------------------------------------------
    def _import_plugin(self, path: Path) -> ModuleType:
        if path in self._plugins:
            return self._plugins[path]
        if not path.is_file():
            raise ExtensionLoadError(f"plugin not found: {path}")

        digest = hashlib.sha1(str(path).encode()).hexdigest()[:12]
        module_name = f"flowcraft_plugin_{path.stem}_{digest}"
        spec = spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ExtensionLoadError(f"cannot load plugin from {path}")
        module = module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise ExtensionLoadError(f"failed to load plugin {path}: {e}") from e

        logger.info(f"Loaded executor plugin {path}")
        self._plugins[path] = module
        return module

    def _load_plugin(self, location: str) -> NodeExecutor:
        path = Path(location).expanduser().resolve()
        module = self._import_plugin(path)

        factory = getattr(module, FACTORY_NAME, None)
        if factory is None:
            raise ExtensionLoadError(f"plugin {path} does not define {FACTORY_NAME}")
        if not callable(factory):
            raise ExtensionContractError(f"{FACTORY_NAME} in {path} is not callable")
        try:
            signature = inspect.signature(factory)
        except (TypeError, ValueError):
            signature = None
        if signature is not None and any(
            p.default is p.empty
            and p.kind not in (p.VAR_POSITIONAL, p.VAR_KEYWORD)
            for p in signature.parameters.values()
        ):
            raise ExtensionContractError(
                f"{FACTORY_NAME} in {path} must not require arguments"
            )

        try:
            executor = factory()
        except Exception as e:
            raise ExtensionContractError(f"{FACTORY_NAME} in {path} failed: {e}") from e
        if not _has_execute(executor):
            raise ExtensionContractError(
                f"plugin {path} does not provide a valid executor"
            )
        return executor
