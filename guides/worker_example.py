"""Example running a worker pool and a dispatcher in one process."""

import asyncio
import logging

from flowcraft import WorkerPool, WorkflowDispatcher, WorkflowEngine
from flowcraft.config import WorkerConfig
from flowcraft.models import RunStatus
from flowcraft.persistence import InMemoryWorkflowRepository
from flowcraft.queues import InMemoryTaskQueue


async def main():
    repository = InMemoryWorkflowRepository()
    queue = InMemoryTaskQueue()

    workflow = await repository.create_workflow("adults")
    shape = await repository.add_node(
        workflow.id,
        "transform",
        {"mapping": {"greeting": "Hello {{name}}", "age": "{{age}}"}},
    )
    adults = await repository.add_node(
        workflow.id, "filter", {"field": "age", "operator": "greater_than", "value": 17}
    )
    await repository.add_connection(workflow.id, shape.id, adults.id)

    pool = WorkerPool(
        queue,
        WorkflowEngine(repository),
        WorkerConfig(workers=2, poll_interval="500ms", execution_timeout="1m"),
    )
    pool.start()

    dispatcher = WorkflowDispatcher(repository, queue)
    run = await dispatcher.dispatch_workflow(
        workflow.id,
        {"input": [{"name": "Ada", "age": 36}, {"name": "Tim", "age": 7}]},
    )

    while (await repository.get_run(run.id)).status in (
        RunStatus.PENDING,
        RunStatus.RUNNING,
    ):
        await asyncio.sleep(0.1)
    await pool.shutdown()

    result = await repository.get_run(run.id)
    print(f"Run {result.id}: {result.status.value}")
    print(result.output[str(adults.id)])


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
