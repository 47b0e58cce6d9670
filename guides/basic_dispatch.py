"""Simple example showing basic workflow dispatch."""

import asyncio

from flowcraft import WorkflowDispatcher, get_queue, get_repository


async def main():
    """Store a two-node workflow and submit a run of it."""
    queue = get_queue()
    await queue.connect()
    repository = get_repository()

    workflow = await repository.create_workflow("active-users")
    fetch = await repository.add_node(
        workflow.id,
        "httpRequest",
        {"url": "https://jsonplaceholder.typicode.com/users"},
        name="fetch-users",
    )
    shape = await repository.add_node(
        workflow.id,
        "transform",
        {"mapping": {"name": "{{name}}", "city": "{{address.city}}"}},
        name="shape",
    )
    await repository.add_connection(workflow.id, fetch.id, shape.id)

    dispatcher = WorkflowDispatcher(repository, queue)
    run = await dispatcher.dispatch_workflow(workflow.id)

    print(f"Run {run.id} dispatched for workflow {workflow.id}")
    print("Start a worker with: flowcraft worker")

    await queue.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
