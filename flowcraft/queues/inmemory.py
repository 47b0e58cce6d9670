"""In-memory task queue for tests and single-process use."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, Optional

from .base import BaseTaskQueue


class InMemoryTaskQueue(BaseTaskQueue):
    """Simple in-process queue keyed by queue name."""

    def __init__(self) -> None:
        self._queues: Dict[str, asyncio.Queue[str]] = defaultdict(asyncio.Queue)

    async def push_raw(self, queue_name: str, data: str) -> None:
        self._queues[queue_name].put_nowait(data)

    async def pop_raw(self, queue_name: str, timeout: float) -> Optional[str]:
        queue = self._queues[queue_name]
        if timeout <= 0:
            try:
                return queue.get_nowait()
            except asyncio.QueueEmpty:
                return None
        try:
            return await asyncio.wait_for(queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def qsize(self, queue_name: str) -> int:
        return self._queues[queue_name].qsize()
