"""Exception hierarchy for flowcraft."""

from __future__ import annotations

from typing import Optional


class FlowcraftError(Exception):
    """Base exception for all flowcraft errors."""


class NodeError(FlowcraftError):
    """Failure attributable to a single node of a run."""

    def __init__(self, message: str, node_id: Optional[int] = None) -> None:
        self.node_id = node_id
        super().__init__(message)


class ConfigError(NodeError):
    """A required configuration value is missing or has the wrong shape."""


class ConfigParseError(NodeError):
    """The node's configuration document is not valid JSON."""


class UnknownExecutorError(NodeError):
    """No built-in or extension executor matches the type key."""


UnknownExecutor = UnknownExecutorError


class ExtensionLoadError(NodeError):
    """An extension module could not be loaded or lacks its factory."""


class ExtensionContractError(NodeError):
    """An extension factory does not produce a usable executor."""


class ExecutionError(NodeError):
    """An executor failed while running."""


class ExecutionTimeoutError(FlowcraftError):
    """A run exceeded its execution budget and was cancelled."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout
        if timeout is None:
            super().__init__("execution timed out")
        else:
            super().__init__(f"execution timed out after {timeout:g}s")


class InputParseError(FlowcraftError):
    """The run's input document is malformed."""


class GraphError(FlowcraftError):
    """The workflow graph cannot be executed."""


class NoStartNodeError(GraphError):
    """Every node has an incoming connection."""

    def __init__(self, message: str = "workflow has no start nodes") -> None:
        super().__init__(message)


class CyclicGraphError(GraphError):
    """The workflow graph contains a cycle."""

    def __init__(self, node_ids: list[int]) -> None:
        self.node_ids = node_ids
        super().__init__(
            "workflow contains a cycle through nodes "
            + ", ".join(str(n) for n in node_ids)
        )


class RunNotFoundError(FlowcraftError):
    """No run exists with the given identifier."""


class WorkflowNotFoundError(FlowcraftError):
    """No workflow exists with the given identifier."""


class RunAlreadyClaimedError(FlowcraftError):
    """The run is no longer pending and was claimed by someone else."""


class QueueError(FlowcraftError):
    """Base class for task queue transport failures."""


class QueueUnavailableError(QueueError):
    """The queue backend cannot be reached."""


class SerializationError(QueueError):
    """A task could not be serialized into an envelope."""


class DeserializationError(QueueError):
    """A popped envelope could not be decoded."""
