"""Executor contract shared by built-in and extension step kinds."""

from __future__ import annotations

import abc
from typing import Any, Dict, List


class NodeExecutor(metaclass=abc.ABCMeta):
    """Runtime behaviour bound to a node type key.

    ``config`` is the node's decoded configuration document and ``inputs``
    maps each target handle to the value (or list of values) delivered on
    it. Executors raise a :class:`~flowcraft.errors.NodeError` subclass on
    failure.
    """

    @abc.abstractmethod
    async def execute(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Any:
        raise NotImplementedError


def input_items(inputs: Dict[str, Any]) -> List[Any]:
    """Return the list of items an item-wise executor should process.

    A single input port is used directly. With several ports (or none) the
    port named ``input`` is used. Non-list values become one-element lists.
    """
    if len(inputs) == 1:
        value = next(iter(inputs.values()))
    elif "input" in inputs:
        value = inputs["input"]
    else:
        return []
    if isinstance(value, list):
        return value
    return [value]
