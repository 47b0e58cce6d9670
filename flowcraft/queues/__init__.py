"""Task queue factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import FlowcraftConfig, load_config
from .base import BaseTaskQueue, decode_envelope, encode_envelope
from .inmemory import InMemoryTaskQueue


def get_queue(
    backend: Optional[str] = None, config: Optional[FlowcraftConfig] = None
) -> BaseTaskQueue:
    """Factory function to get the configured task queue."""

    config = config or load_config()
    backend = (
        backend or os.getenv("FLOWCRAFT_QUEUE") or config.queue.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryTaskQueue()
    elif backend == "redis":
        from .redis import RedisTaskQueue

        redis_conf = config.queue.redis
        return RedisTaskQueue(
            url=redis_conf.url,
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
        )
    elif backend == "rabbitmq":
        from .rabbitmq import RabbitMQTaskQueue

        return RabbitMQTaskQueue(url=config.queue.rabbitmq.url)
    else:
        raise ValueError(f"Unsupported queue backend: {backend}")


__all__ = [
    "BaseTaskQueue",
    "InMemoryTaskQueue",
    "decode_envelope",
    "encode_envelope",
    "get_queue",
]
