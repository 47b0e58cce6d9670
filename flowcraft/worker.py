"""Worker pool consuming task envelopes from the task queue."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from .config import WorkerConfig
from .engine import WorkflowEngine
from .errors import (
    DeserializationError,
    QueueError,
    RunAlreadyClaimedError,
    RunNotFoundError,
)
from .models import EXECUTE_WORKFLOW, ExecuteWorkflowPayload, RunStatus, TaskEnvelope
from .queues import BaseTaskQueue
from .utils.retry import compute_backoff

logger = logging.getLogger(__name__)

TaskHandler = Callable[[Any, int], Awaitable[None]]


class WorkerPool:
    """Runs ``config.workers`` concurrent dequeue loops.

    Each loop waits up to ``poll_interval`` for a task, dispatches it by
    task type and moves on. Runs are bounded by ``execution_timeout``;
    the engine cancels the traversal and records the run as failed when
    the budget is exceeded.
    """

    def __init__(
        self,
        queue: BaseTaskQueue,
        engine: WorkflowEngine,
        config: Optional[WorkerConfig] = None,
    ) -> None:
        self._queue = queue
        self._engine = engine
        self.config = config or WorkerConfig()
        self._stop = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._handlers: Dict[str, TaskHandler] = {
            EXECUTE_WORKFLOW: self._handle_execute_workflow,
        }

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        """Launch the worker loops on the running event loop."""
        if self._tasks:
            raise RuntimeError("worker pool already started")
        logger.info(
            f"Starting worker with configuration: workers={self.config.workers}, "
            f"queue={self.config.queue}, poll-interval={self.config.poll_interval:g}s, "
            f"execution-timeout={self.config.execution_timeout:g}s"
        )
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(self._worker_loop(i), name=f"flowcraft-worker-{i}")
            for i in range(1, self.config.workers + 1)
        ]

    def request_stop(self) -> None:
        """Ask every loop to stop after its current dequeue or task."""
        self._stop.set()

    async def shutdown(self, grace: Optional[float] = None) -> bool:
        """Stop the loops, waiting up to ``grace`` seconds for in-flight work.

        Returns ``True`` when every loop stopped on its own.
        """
        grace = self.config.shutdown_grace if grace is None else grace
        self.request_stop()
        if not self._tasks:
            return True
        logger.info("Shutting down workers gracefully...")
        _, pending = await asyncio.wait(self._tasks, timeout=grace)
        graceful = not pending
        if graceful:
            logger.info("All workers gracefully stopped")
        else:
            logger.warning("Forcing shutdown after timeout")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []
        return graceful

    async def run(self) -> None:
        """Start the pool and block until :meth:`request_stop` is called."""
        self.start()
        await self._stop.wait()
        await self.shutdown()

    # ------------------------------------------------------------------
    async def _worker_loop(self, worker_id: int) -> None:
        logger.info(f"Worker {worker_id} started")
        failures = 0
        while not self._stop.is_set():
            try:
                task = await self._queue.dequeue(
                    self.config.queue, self.config.poll_interval
                )
            except DeserializationError as e:
                logger.error(f"Worker {worker_id}: Dropping malformed task: {e}")
                continue
            except QueueError as e:
                failures += 1
                logger.error(f"Worker {worker_id}: Error dequeuing task: {e}")
                await self._pause(compute_backoff(failures))
                continue

            failures = 0
            if task is None:
                continue
            await self.process(task, worker_id)
        logger.info(f"Worker {worker_id} stopped")

    async def _pause(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), delay)
        except asyncio.TimeoutError:
            pass

    async def process(self, task: TaskEnvelope, worker_id: int = 0) -> None:
        """Dispatch one task to its handler; unknown types are discarded."""
        logger.info(f"Worker {worker_id}: Processing task: {task.task_type}")
        handler = self._handlers.get(task.task_type)
        if handler is None:
            logger.warning(f"Worker {worker_id}: Unknown task type: {task.task_type}")
            return
        try:
            await handler(task.payload, worker_id)
        except Exception:
            logger.exception(
                f"Worker {worker_id}: Unhandled error processing {task.task_type}"
            )

    async def _handle_execute_workflow(self, payload: Any, worker_id: int) -> None:
        try:
            if isinstance(payload, (str, bytes)):
                request = ExecuteWorkflowPayload.model_validate_json(payload)
            else:
                request = ExecuteWorkflowPayload.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Worker {worker_id}: Error unmarshalling payload: {e}")
            return

        run_id = request.execution_id
        try:
            run = await self._engine.execute_run(
                run_id, timeout=self.config.execution_timeout or None
            )
        except (RunNotFoundError, RunAlreadyClaimedError) as e:
            logger.warning(f"Worker {worker_id}: Skipping workflow {run_id}: {e}")
            return

        if run.status == RunStatus.COMPLETED:
            logger.info(f"Worker {worker_id}: Workflow {run_id} execution completed")
        else:
            logger.error(
                f"Worker {worker_id}: Error executing workflow {run_id}: {run.error_message}"
            )
