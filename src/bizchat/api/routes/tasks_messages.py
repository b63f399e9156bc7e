"""Inbound message processing task.

Webhooks acknowledge the provider first and hand the normalized message
to `schedule_inbound`; the message is processed either in-process after
the response (TASKS_BACKEND=inline) or by the worker route below
(TASKS_BACKEND=http).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool

from bizchat.api.deps import get_context, get_tasks_client
from bizchat.api.task_auth import verify_task_auth
from bizchat.channels.models import StandardizedMessage
from bizchat.domain.dispatcher import process_inbound
from bizchat.observability.correlation import correlation_scope, get_correlation_id
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import id_prefix, safe_log_context
from bizchat.tasks.contracts import (
    PROCESS_INBOUND_MESSAGE,
    TaskEnvelopeV1,
    inbound_task_id,
)

router = APIRouter(prefix="/tasks/messages", tags=["tasks"])

logger = get_logger(__name__)

TASK_PATH = "/tasks/messages/process"


def run_inbound_task(payload: dict[str, Any]) -> None:
    """Process one inbound message payload in this process."""
    with correlation_scope(payload.get("correlation_id")):
        message = StandardizedMessage.from_dict(payload["message"])
        process_inbound(get_context(), message)


def schedule_inbound(background_tasks: BackgroundTasks, message: StandardizedMessage) -> str:
    """Queue processing to start after the webhook response is sent.

    Returns:
        The task id (idempotent per channel and provider message id).
    """
    task_id = inbound_task_id(message.channel, message.id)
    correlation_id = get_correlation_id()
    payload = {"message": message.to_dict(), "correlation_id": correlation_id}
    client = get_tasks_client()

    if client.backend == "inline":
        background_tasks.add_task(client.enqueue, task_id, run_inbound_task, payload)
    else:
        envelope = TaskEnvelopeV1(
            task_name=PROCESS_INBOUND_MESSAGE,
            payload=payload,
            task_id=task_id,
        )
        background_tasks.add_task(
            client.enqueue_http, task_id, TASK_PATH, envelope.to_dict(), correlation_id
        )

    logger.info(
        "inbound message scheduled",
        extra={
            "extra_fields": safe_log_context(
                message_id_prefix=id_prefix(message.id),
                channel=message.channel,
                provider=message.provider,
                type=message.type,
                backend=client.backend,
            )
        },
    )
    return task_id


@router.post("/process")
async def process_message_task(request: Request) -> Response:
    """Worker entry point for TASKS_BACKEND=http.

    Returns:
        200 with the dispatch status ("handled", "duplicate", "failed").
        400 for a body that is not a v1 inbound-message envelope.
        401 if task authentication fails.
    """
    if not verify_task_auth(request):
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        data = await request.json()
        envelope = TaskEnvelopeV1.from_dict(data)
    except (ValueError, AttributeError):
        logger.warning("invalid task envelope")
        return Response(status_code=400, content="invalid envelope")

    if envelope.task_name != PROCESS_INBOUND_MESSAGE:
        return Response(status_code=400, content="unknown task")

    try:
        message = StandardizedMessage.from_dict(envelope.payload["message"])
    except (KeyError, TypeError, ValueError):
        logger.warning(
            "invalid inbound message in task",
            extra={"extra_fields": safe_log_context(task_id=envelope.task_id)},
        )
        return Response(status_code=400, content="invalid message")

    ctx = get_context()
    outcome = await run_in_threadpool(process_inbound, ctx, message)
    return Response(status_code=200, content=outcome.status)
