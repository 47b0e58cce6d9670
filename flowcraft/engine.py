"""Execution engine: walks a workflow graph and runs each ready node."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import (
    ConfigParseError,
    ExecutionError,
    ExecutionTimeoutError,
    FlowcraftError,
    InputParseError,
    NodeError,
    RunAlreadyClaimedError,
    RunNotFoundError,
    WorkflowNotFoundError,
)
from .executors import ExecutorRegistry, NodeExecutor
from .graph import WorkflowGraph
from .models import Node, RunStatus, StepRun, StepStatus, WorkflowRun
from .persistence import WorkflowRepository, get_repository

logger = logging.getLogger(__name__)


def _parse_document(text: Optional[str]) -> Any:
    if text is None or not text.strip():
        return {}
    return json.loads(text)


def parse_run_input(text: Optional[str]) -> Dict[str, Any]:
    """Decode a run's input document."""
    try:
        data = _parse_document(text)
    except ValueError as e:
        raise InputParseError(f"failed to parse input data: {e}") from e
    if not isinstance(data, dict):
        raise InputParseError("input data must be a JSON object")
    return data


def parse_node_config(node: Node) -> Dict[str, Any]:
    """Decode a node's configuration document."""
    try:
        data = _parse_document(node.config)
    except ValueError as e:
        raise ConfigParseError(f"failed to parse node config: {e}", node.id) from e
    if not isinstance(data, dict):
        raise ConfigParseError("node config must be a JSON object", node.id)
    return data


@dataclass
class RunState:
    """In-memory bookkeeping for one traversal."""

    run_id: int
    input: Dict[str, Any] = field(default_factory=dict)
    results: Dict[int, Any] = field(default_factory=dict)
    executed: set[int] = field(default_factory=set)
    current_step: Optional[StepRun] = None

    def output_json(self) -> str:
        return json.dumps({str(node_id): value for node_id, value in self.results.items()})


class WorkflowEngine:
    """Executes workflow runs against a repository.

    Nodes of one run execute one at a time, depth-first from the source
    nodes in declaration order. A node runs once all of its predecessors
    have a completed step-run in the same run.
    """

    def __init__(
        self,
        repository: WorkflowRepository | None = None,
        registry: ExecutorRegistry | None = None,
    ) -> None:
        self._repository = repository or get_repository()
        self._registry = registry or ExecutorRegistry()

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    async def execute_run(
        self, run_id: int, timeout: Optional[float] = None
    ) -> WorkflowRun:
        """Claim and execute a pending run, returning its final state.

        Node and graph failures are recorded on the run rather than raised.

        Raises:
            RunNotFoundError: if the run does not exist.
            RunAlreadyClaimedError: if the run is no longer pending.
        """
        run = await self._repository.get_run(run_id)
        if run is None:
            raise RunNotFoundError(f"run {run_id} not found")
        if not await self._repository.claim_run(run_id):
            raise RunAlreadyClaimedError(f"run {run_id} is already {run.status.value}")

        logger.info(f"Executing run {run_id} of workflow {run.workflow_id}")
        state = RunState(run_id=run_id)
        error: Optional[BaseException] = None
        try:
            await self._traverse_within(run, state, timeout)
        except ExecutionTimeoutError as e:
            error = e
            await self._fail_in_flight(state, str(error))
        except FlowcraftError as e:
            error = e
        except asyncio.CancelledError:
            await self._fail_in_flight(state, "run cancelled")
            await self._finish(state, RunStatus.FAILED, "run cancelled")
            raise
        except Exception as e:
            logger.exception(f"Unexpected failure in run {run_id}")
            await self._fail_in_flight(state, str(e))
            await self._finish(state, RunStatus.FAILED, f"internal error: {e}")
            raise

        if error is None:
            await self._finish(state, RunStatus.COMPLETED, None)
            logger.info(f"Run {run_id} completed ({len(state.executed)} nodes)")
        else:
            await self._finish(state, RunStatus.FAILED, str(error))
            logger.warning(f"Run {run_id} failed: {error}")

        return await self._repository.get_run(run_id)

    # ------------------------------------------------------------------
    async def _traverse_within(
        self, run: WorkflowRun, state: RunState, timeout: Optional[float]
    ) -> None:
        if not timeout:
            await self._traverse(run, state)
            return

        # Only budget expiry maps to ExecutionTimeoutError; a TimeoutError
        # raised by the store propagates unchanged.
        task = asyncio.ensure_future(self._traverse(run, state))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            await self._cancel(task)
            raise
        if not done:
            await self._cancel(task)
            raise ExecutionTimeoutError(timeout)
        task.result()

    @staticmethod
    async def _cancel(task: asyncio.Future) -> None:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _traverse(self, run: WorkflowRun, state: RunState) -> None:
        workflow = await self._repository.get_workflow(run.workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"workflow {run.workflow_id} not found")

        state.input = parse_run_input(run.input_data)
        graph = WorkflowGraph(workflow.nodes, workflow.connections)
        sources = graph.validate()

        stack = [node.id for node in reversed(sources)]
        while stack:
            node_id = stack.pop()
            if node_id in state.executed:
                continue
            if node_id not in graph.nodes:
                logger.warning(
                    f"Run {state.run_id}: connection targets unknown node {node_id}"
                )
                continue
            if not await self._is_ready(graph, state.run_id, node_id):
                continue
            await self._execute_node(graph.nodes[node_id], graph, state)
            state.executed.add(node_id)
            stack.extend(reversed(graph.successors(node_id)))

    async def _is_ready(self, graph: WorkflowGraph, run_id: int, node_id: int) -> bool:
        predecessors = graph.predecessors(node_id)
        if not predecessors:
            return True
        completed = await self._repository.completed_node_ids(run_id)
        return all(source in completed for source in predecessors)

    def _gather_inputs(
        self, node_id: int, graph: WorkflowGraph, state: RunState
    ) -> Dict[str, Any]:
        incoming = graph.incoming.get(node_id)
        if not incoming:
            return dict(state.input)

        grouped: Dict[str, list[Any]] = {}
        for conn in incoming:
            if conn.source_node_id in state.results:
                grouped.setdefault(conn.target_handle, []).append(
                    state.results[conn.source_node_id]
                )
        # A lone contribution is delivered unwrapped so filter and transform
        # nodes can chain; the source system always wrapped it in a list.
        return {
            handle: values[0] if len(values) == 1 else values
            for handle, values in grouped.items()
        }

    async def _resolve_executor(self, node: Node) -> NodeExecutor:
        entry = await self._repository.get_node_type(node.node_type)
        executor_class = entry.executor_class if entry else node.node_type
        return self._registry.resolve(executor_class)

    async def _execute_node(
        self, node: Node, graph: WorkflowGraph, state: RunState
    ) -> None:
        step = await self._repository.create_step_run(state.run_id, node.id)
        state.current_step = step
        logger.debug(f"Run {state.run_id}: executing node {node.id} ({node.node_type})")

        try:
            inputs = self._gather_inputs(node.id, graph, state)
            await self._repository.update_step_run(step.id, input_data=json.dumps(inputs))
            config = parse_node_config(node)
            executor = await self._resolve_executor(node)
            if inspect.iscoroutinefunction(executor.execute):
                result = await executor.execute(config, inputs)
            else:
                result = await asyncio.to_thread(executor.execute, config, inputs)
            try:
                output = json.dumps(result)
            except (TypeError, ValueError) as e:
                raise ExecutionError(f"executor returned non-JSON output: {e}") from e
        except FlowcraftError as e:
            if isinstance(e, NodeError) and e.node_id is None:
                e.node_id = node.id
            await self._fail_step(state, step, str(e))
            raise
        except Exception as e:
            await self._fail_step(state, step, f"execution failed: {e}")
            raise ExecutionError(f"execution failed: {e}", node.id) from e

        await self._repository.update_step_run(
            step.id, status=StepStatus.COMPLETED, output_data=output, completed=True
        )
        state.results[node.id] = result
        state.current_step = None
        logger.debug(f"Run {state.run_id}: node {node.id} completed")

    async def _fail_step(self, state: RunState, step: StepRun, message: str) -> None:
        await self._repository.update_step_run(
            step.id, status=StepStatus.FAILED, error_message=message, completed=True
        )
        state.current_step = None

    async def _fail_in_flight(self, state: RunState, message: str) -> None:
        if state.current_step is not None:
            await self._fail_step(state, state.current_step, message)

    async def _finish(
        self, state: RunState, status: RunStatus, error_message: Optional[str]
    ) -> None:
        await self._repository.finish_run(
            state.run_id, status, state.output_json(), error_message
        )
