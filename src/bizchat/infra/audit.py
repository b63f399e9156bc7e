"""Audit sink - fire-and-forget record of business-relevant actions.

Audit writes never block or fail the message pipeline: the Postgres sink
hands rows to a single background thread and only logs its own failures.
"""

import json
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

from bizchat.infra.db import txn
from bizchat.observability.correlation import get_correlation_id
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import safe_log_context

logger = get_logger(__name__)


class AuditSink(Protocol):
    def log_action(
        self,
        action: str,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        ...


class LoggingAuditSink:
    """Writes audit events to the structured log only."""

    def log_action(
        self,
        action: str,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        logger.info(
            "audit",
            extra={
                "extra_fields": {
                    "action": action,
                    **safe_log_context(
                        resource_type=resource_type,
                        resource_id=resource_id,
                        **(metadata or {}),
                    ),
                }
            },
        )


def insert_audit_log(
    cur: Any,
    *,
    action: str,
    resource_type: str | None,
    resource_id: str | None,
    metadata: dict[str, Any] | None,
    correlation_id: str | None,
) -> None:
    cur.execute(
        """
        INSERT INTO audit_logs (action, resource_type, resource_id, metadata, correlation_id)
        VALUES (%s, %s, %s, %s::jsonb, %s)
        """,
        (action, resource_type, resource_id, json.dumps(metadata or {}, default=str), correlation_id),
    )


class PgAuditSink:
    """Writes audit_logs rows on a background thread."""

    def __init__(self, executor: ThreadPoolExecutor | None = None) -> None:
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="audit"
        )

    def log_action(
        self,
        action: str,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        # Correlation id is a ContextVar; capture it on the caller's thread
        correlation_id = get_correlation_id() or None
        self._executor.submit(
            self._write, action, resource_type, resource_id, metadata, correlation_id
        )

    def _write(
        self,
        action: str,
        resource_type: str | None,
        resource_id: str | None,
        metadata: dict[str, Any] | None,
        correlation_id: str | None,
    ) -> None:
        try:
            with txn() as cur:
                insert_audit_log(
                    cur,
                    action=action,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    metadata=metadata,
                    correlation_id=correlation_id,
                )
        except Exception as e:
            logger.error(
                "audit write failed",
                extra={
                    "extra_fields": safe_log_context(
                        action=action,
                        error_type=type(e).__name__,
                    )
                },
            )

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
