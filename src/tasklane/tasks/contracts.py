"""Task message contract v1 - the body carried on the task and dead-letter queues."""

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True)
class TaskMessageV1:
    """Task message v1.

    Attributes:
        version: Contract version (always "v1").
        task_id: Referenced task.
        payload: Opaque task payload, copied from the submission.
    """

    version: Literal["v1"] = field(default="v1", init=False)
    task_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "version": self.version,
            "task_id": self.task_id,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "TaskMessageV1":
        """Create from a decoded message body.

        Raises:
            ValueError: If the body is not a valid v1 task message.
        """
        if not isinstance(data, dict):
            raise ValueError("Message body must be an object")
        if data.get("version") != "v1":
            raise ValueError(f"Unsupported version: {data.get('version')}")
        task_id = data.get("task_id")
        if not isinstance(task_id, str) or not task_id.strip():
            raise ValueError("task_id must be a non-empty string")
        payload = data.get("payload", {})
        if not isinstance(payload, dict):
            raise ValueError("payload must be an object")
        return cls(task_id=task_id, payload=payload)
