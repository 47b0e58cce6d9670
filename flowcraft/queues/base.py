"""Base task queue interface."""

from __future__ import annotations

import abc
from typing import Any, Optional

from pydantic import ValidationError

from ..errors import DeserializationError, SerializationError
from ..models import TaskEnvelope


def encode_envelope(task_type: str, payload: Any) -> str:
    """Serialize ``{task_type, payload}`` into a single envelope string."""
    try:
        return TaskEnvelope(task_type=task_type, payload=payload).to_json()
    except (TypeError, ValueError) as e:
        raise SerializationError(f"failed to serialize {task_type} task: {e}") from e


def decode_envelope(raw: str | bytes) -> TaskEnvelope:
    try:
        return TaskEnvelope.from_json(raw)
    except (ValidationError, ValueError) as e:
        raise DeserializationError(f"failed to decode task envelope: {e}") from e


class BaseTaskQueue(metaclass=abc.ABCMeta):
    """Named FIFO hand-off of task envelopes.

    Each envelope is removed atomically by :meth:`dequeue`, so it reaches
    exactly one consumer.
    """

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    async def enqueue(self, queue_name: str, task_type: str, payload: Any) -> None:
        """Append a task to ``queue_name``.

        Raises:
            SerializationError: if the payload cannot be encoded.
            QueueUnavailableError: if the backend cannot be reached.
        """
        await self.push_raw(queue_name, encode_envelope(task_type, payload))

    async def dequeue(
        self, queue_name: str, timeout: float
    ) -> Optional[TaskEnvelope]:
        """Wait up to ``timeout`` seconds for the next envelope.

        Returns ``None`` when nothing arrived in time.

        Raises:
            DeserializationError: if the popped envelope is malformed. The
                envelope has already been removed from the queue.
            QueueUnavailableError: if the backend cannot be reached.
        """
        raw = await self.pop_raw(queue_name, timeout)
        if raw is None:
            return None
        return decode_envelope(raw)

    @abc.abstractmethod
    async def push_raw(self, queue_name: str, data: str) -> None:
        """Append an already encoded envelope."""
        raise NotImplementedError

    @abc.abstractmethod
    async def pop_raw(self, queue_name: str, timeout: float) -> Optional[str | bytes]:
        """Remove and return the oldest encoded envelope, or ``None``."""
        raise NotImplementedError
