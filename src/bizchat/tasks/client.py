"""Tasks client with idempotent enqueue.

Backends, selected via TASKS_BACKEND:
- inline (default): runs the handler in-process (after the webhook response
  when scheduled through FastAPI background tasks)
- http: POSTs the task to the worker service

Seen task_ids are kept in a bounded, oldest-first map with a TTL. The window
only has to cover provider redelivery bursts; durable dedupe of inbound
messages is the unique provider_message_id index in the database.
"""

import os
import threading
import time
from collections import OrderedDict
from typing import Callable

DEFAULT_MAX_TRACKED_IDS = 10_000
DEFAULT_SEEN_TTL_SECONDS = 6 * 3600


def tasks_backend() -> str:
    return os.environ.get("TASKS_BACKEND", "inline")


class TasksClient:
    """Tasks client with idempotent enqueue by task_id.

    Tracks recent task_ids so the same task does not run twice from this
    process (provider webhook redeliveries share a task_id). At most
    `max_tracked_ids` ids are remembered, oldest evicted first, and ids
    older than `ttl_seconds` are forgotten.
    """

    def __init__(
        self,
        backend: str | None = None,
        max_tracked_ids: int = DEFAULT_MAX_TRACKED_IDS,
        ttl_seconds: float = DEFAULT_SEEN_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._executed_ids: OrderedDict[str, float] = OrderedDict()
        self._enqueued_http: list[dict] = []
        self._backend = backend or tasks_backend()
        self._max_tracked_ids = max_tracked_ids
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def backend(self) -> str:
        return self._backend

    def _seen(self, task_id: str) -> bool:
        seen_at = self._executed_ids.get(task_id)
        if seen_at is None:
            return False
        if self._clock() - seen_at > self._ttl:
            del self._executed_ids[task_id]
            return False
        return True

    def _mark(self, task_id: str) -> None:
        now = self._clock()
        self._executed_ids[task_id] = now
        self._executed_ids.move_to_end(task_id)
        # Oldest first, so expired ids sit at the front
        while self._executed_ids:
            oldest_id, seen_at = next(iter(self._executed_ids.items()))
            if len(self._executed_ids) <= self._max_tracked_ids and now - seen_at <= self._ttl:
                break
            del self._executed_ids[oldest_id]

    def _claim(self, task_id: str) -> bool:
        with self._lock:
            if self._seen(task_id):
                return False
            self._mark(task_id)
            return True

    def enqueue(
        self,
        task_id: str,
        handler: Callable[[dict], None],
        payload: dict,
    ) -> bool:
        """Run handler(payload) inline.

        Returns:
            True if the task ran (new task_id), False if task_id was seen.
        """
        if not self._claim(task_id):
            return False

        handler(payload)
        return True

    def enqueue_http(
        self,
        task_id: str,
        url_path: str,
        payload: dict,
        correlation_id: str | None = None,
    ) -> bool:
        """Hand the task to the worker.

        With the inline backend the task is only recorded (tests inspect it
        via get_enqueued_tasks).

        Returns:
            True if enqueued, False if task_id was seen or the POST failed.

        Raises:
            ValueError: If TASKS_BACKEND is unknown.
        """
        if self._backend == "inline":
            if not self._claim(task_id):
                return False
            self._enqueued_http.append(
                {
                    "task_id": task_id,
                    "url_path": url_path,
                    "payload": payload,
                    "correlation_id": correlation_id,
                }
            )
            return True

        if self._backend == "http":
            from bizchat.tasks.http_backend import enqueue_http

            if self.was_executed(task_id):
                return False
            enqueued = enqueue_http(task_id, url_path, payload, correlation_id)
            if enqueued:
                with self._lock:
                    self._mark(task_id)
            return enqueued

        raise ValueError(f"Unknown TASKS_BACKEND: {self._backend}")

    def was_executed(self, task_id: str) -> bool:
        with self._lock:
            return self._seen(task_id)

    def tracked_count(self) -> int:
        with self._lock:
            return len(self._executed_ids)

    def get_enqueued_tasks(self) -> list[dict]:
        return list(self._enqueued_http)

    def clear(self) -> None:
        with self._lock:
            self._executed_ids.clear()
        self._enqueued_http.clear()
