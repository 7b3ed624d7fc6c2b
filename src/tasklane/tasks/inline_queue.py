"""In-process queue with visibility timeouts and dead-letter redrive.

Backs TASKS_BACKEND=inline (dev runs and tests). Semantics follow a
standard visibility-timeout queue:
- receive() hides the message for the visibility timeout and bumps its
  receive count
- change_visibility() moves the next delivery earlier or later
- delete() acknowledges the message
- a message already received max_receive_count times is moved to the
  dead-letter queue instead of being delivered again
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from tasklane.infra.time import Clock, utc_now
from tasklane.observability.logging import get_logger
from tasklane.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_VISIBILITY_TIMEOUT = 30


class InvalidReceiptHandle(Exception):
    """Raised when a receipt handle does not match an in-flight message."""


@dataclass
class _StoredMessage:
    message_id: str
    body: dict[str, Any]
    visible_at: datetime
    receive_count: int = 0
    receipt_handle: str | None = None


@dataclass(frozen=True)
class ReceivedMessage:
    """A delivered message.

    Attributes:
        message_id: Queue-assigned identifier.
        body: Message body.
        receive_count: Times this message has been delivered, this one included.
        receipt_handle: Handle for delete / change_visibility.
    """

    message_id: str
    body: dict[str, Any]
    receive_count: int
    receipt_handle: str


class InlineQueue:
    """Thread-safe in-memory queue.

    Args:
        name: Queue name (for logs).
        visibility_timeout: Seconds a received message stays hidden.
        max_receive_count: Receives allowed before redrive to dead_letter_queue.
        dead_letter_queue: Queue receiving exhausted messages.
        clock: Source of UTC timestamps.
    """

    def __init__(
        self,
        name: str,
        *,
        visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT,
        max_receive_count: int | None = None,
        dead_letter_queue: "InlineQueue | None" = None,
        clock: Clock = utc_now,
    ) -> None:
        if max_receive_count is not None and dead_letter_queue is None:
            raise ValueError("max_receive_count requires a dead_letter_queue")
        self.name = name
        self._visibility_timeout = visibility_timeout
        self._max_receive_count = max_receive_count
        self._dead_letter_queue = dead_letter_queue
        self._clock = clock
        self._messages: list[_StoredMessage] = []
        self._lock = threading.Lock()

    def send(self, body: dict[str, Any], delay_seconds: int = 0) -> str:
        """Append a message; returns its message id."""
        message = _StoredMessage(
            message_id=str(uuid.uuid4()),
            body=body,
            visible_at=self._clock() + timedelta(seconds=delay_seconds),
        )
        with self._lock:
            self._messages.append(message)
        return message.message_id

    def receive(self) -> ReceivedMessage | None:
        """Deliver the first visible message, or None when nothing is visible."""
        redriven: list[_StoredMessage] = []
        delivered: ReceivedMessage | None = None

        with self._lock:
            now = self._clock()
            for message in list(self._messages):
                if message.visible_at > now:
                    continue
                if (
                    self._max_receive_count is not None
                    and message.receive_count >= self._max_receive_count
                ):
                    self._messages.remove(message)
                    redriven.append(message)
                    continue
                message.receive_count += 1
                message.receipt_handle = str(uuid.uuid4())
                message.visible_at = now + timedelta(seconds=self._visibility_timeout)
                delivered = ReceivedMessage(
                    message_id=message.message_id,
                    body=message.body,
                    receive_count=message.receive_count,
                    receipt_handle=message.receipt_handle,
                )
                break

        for message in redriven:
            logger.warning(
                "message moved to dead-letter queue",
                extra={
                    "extra_fields": safe_log_context(
                        queue=self.name,
                        message_id=message.message_id,
                        receive_count=message.receive_count,
                    )
                },
            )
            self._dead_letter_queue.send(message.body)

        return delivered

    def change_visibility(self, receipt_handle: str, seconds: int) -> None:
        """Hide an in-flight message for ``seconds`` from now.

        Raises:
            InvalidReceiptHandle: If no in-flight message has this handle.
        """
        with self._lock:
            message = self._find(receipt_handle)
            message.visible_at = self._clock() + timedelta(seconds=seconds)

    def request_delay(self, handle: str, seconds: int) -> None:
        """DelayRequester binding: delay redelivery via the visibility timeout."""
        self.change_visibility(handle, seconds)

    def delete(self, receipt_handle: str) -> None:
        """Acknowledge an in-flight message.

        Raises:
            InvalidReceiptHandle: If no in-flight message has this handle.
        """
        with self._lock:
            self._messages.remove(self._find(receipt_handle))

    def peek(self) -> list[dict[str, Any]]:
        """List queued messages (visible or not) without receiving them."""
        with self._lock:
            return [
                {
                    "message_id": m.message_id,
                    "body": m.body,
                    "receive_count": m.receive_count,
                    "visible_at": m.visible_at.isoformat(),
                }
                for m in self._messages
            ]

    def clear(self) -> None:
        """Drop all messages (useful for testing)."""
        with self._lock:
            self._messages.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def _find(self, receipt_handle: str) -> _StoredMessage:
        for message in self._messages:
            if message.receipt_handle == receipt_handle:
                return message
        raise InvalidReceiptHandle(f"Unknown receipt handle on {self.name}")
