"""Submission of workflow runs to the task queue."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from .config import DEFAULT_QUEUE_NAME
from .errors import SerializationError, WorkflowNotFoundError
from .models import EXECUTE_WORKFLOW, ExecuteWorkflowPayload, WorkflowRun
from .persistence import WorkflowRepository
from .queues import BaseTaskQueue

logger = logging.getLogger(__name__)


class WorkflowDispatcher:
    """Creates pending runs and enqueues their ``execute_workflow`` trigger."""

    def __init__(
        self,
        repository: WorkflowRepository,
        queue: BaseTaskQueue,
        queue_name: str = DEFAULT_QUEUE_NAME,
    ) -> None:
        self._repository = repository
        self._queue = queue
        self._queue_name = queue_name

    async def dispatch_workflow(
        self, workflow_id: int, input_data: Optional[Dict[str, Any]] = None
    ) -> WorkflowRun:
        """Create a run of ``workflow_id`` and hand it to the workers.

        Args:
            workflow_id: Workflow to execute.
            input_data: Input document delivered to the source nodes.

        Returns:
            The newly created ``pending`` run.
        """
        if await self._repository.get_workflow(workflow_id) is None:
            raise WorkflowNotFoundError(f"workflow {workflow_id} not found")
        try:
            raw_input = json.dumps(input_data or {})
        except (TypeError, ValueError) as e:
            raise SerializationError(f"input data is not JSON serializable: {e}") from e

        run = await self._repository.create_run(workflow_id, raw_input)
        payload = ExecuteWorkflowPayload(execution_id=run.id)
        await self._queue.enqueue(self._queue_name, EXECUTE_WORKFLOW, payload.model_dump())
        logger.info(
            f"Dispatched run {run.id} of workflow {workflow_id} to {self._queue_name}"
        )
        return run
