"""Redis task queue for cross-process hand-off."""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import QueueUnavailableError
from .base import BaseTaskQueue


class RedisTaskQueue(BaseTaskQueue):
    """Redis list per queue name: RPUSH to enqueue, BLPOP to dequeue."""

    def __init__(
        self,
        url: Optional[str] = None,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        self.url = url
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis and verify the connection."""
        if self.url:
            client = redis.Redis.from_url(self.url, decode_responses=True)
        else:
            client = redis.Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                password=self.password,
                decode_responses=True,
            )
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            raise QueueUnavailableError(f"cannot connect to Redis: {e}") from e
        self._redis = client

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def push_raw(self, queue_name: str, data: str) -> None:
        if not self._redis:
            await self.connect()
        try:
            await self._redis.rpush(queue_name, data)
        except RedisError as e:
            raise QueueUnavailableError(f"failed to push task to queue: {e}") from e

    async def pop_raw(self, queue_name: str, timeout: float) -> Optional[str]:
        if not self._redis:
            await self.connect()
        try:
            # BLPOP treats 0 as "block forever"
            if timeout <= 0:
                return await self._redis.lpop(queue_name)
            result = await self._redis.blpop([queue_name], timeout=timeout)
        except RedisError as e:
            raise QueueUnavailableError(f"failed to pop task from queue: {e}") from e
        if not result:
            return None
        _, data = result
        return data
