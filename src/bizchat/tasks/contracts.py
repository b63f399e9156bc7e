"""Task contracts v1 - payloads exchanged between webhook and worker.

Every task body is wrapped in a versioned envelope so both sides can
reject payloads they do not understand.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

PROCESS_INBOUND_MESSAGE = "process_inbound_message"


@dataclass(frozen=True)
class TaskEnvelopeV1:
    """Task envelope v1.

    Attributes:
        version: Contract version (always "v1").
        task_name: Name identifying the task type.
        payload: Task-specific data.
        task_id: Unique identifier for idempotency.
    """

    version: Literal["v1"] = field(default="v1", init=False)
    task_name: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    task_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "task_name": self.task_name,
            "payload": self.payload,
            "task_id": self.task_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskEnvelopeV1":
        """Raises ValueError for any version other than v1."""
        if data.get("version") != "v1":
            raise ValueError(f"Unsupported version: {data.get('version')}")
        return cls(
            task_name=data.get("task_name", ""),
            payload=data.get("payload", {}),
            task_id=data.get("task_id", ""),
        )


def inbound_task_id(channel: str, message_id: str) -> str:
    return f"inbound:{channel}:{message_id}"
