"""WhatsApp webhook routes - Meta Cloud API.

GET answers Meta's verification handshake. POST verifies the
X-Hub-Signature-256 HMAC over the raw body, acknowledges with 200 and
processes every message in the delivery after the response.

Security: logs contain NO phone numbers and NO message text.
"""

import json
import os
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Header, Query, Request, Response

from bizchat.channels.meta import (
    WHATSAPP_BUSINESS_OBJECT,
    SignatureVerificationError,
    normalize_all,
    verify_signature,
)
from bizchat.observability.correlation import get_correlation_id
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import safe_log_context

from .tasks_messages import schedule_inbound

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)


@router.get("")
async def whatsapp_webhook_verify(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
) -> Response:
    """Echo hub.challenge when hub.verify_token matches META_VERIFY_TOKEN.

    Returns:
        200 with hub.challenge if valid, 403 otherwise.
    """
    expected_token = os.environ.get("META_VERIFY_TOKEN", "")

    if expected_token and hub_mode == "subscribe" and hub_verify_token == expected_token:
        logger.info("whatsapp webhook verification successful")
        return Response(status_code=200, content=hub_challenge or "")

    logger.warning(
        "whatsapp webhook verification failed",
        extra={
            "extra_fields": safe_log_context(
                hub_mode=hub_mode or "missing",
                token_configured=bool(expected_token),
            )
        },
    )
    return Response(status_code=403, content="verification failed")


@router.post("")
async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_hub_signature_256: str | None = Header(None, alias="X-Hub-Signature-256"),
) -> Response:
    """Receive a Meta Cloud API webhook.

    Returns:
        200 for every authentic delivery (including status updates and
        message types we do not handle, so Meta does not retry).
        400 if the body is not JSON.
        401 if the signature is missing or wrong, or META_APP_SECRET is unset.
    """
    correlation_id = get_correlation_id()
    body_bytes = await request.body()

    app_secret = os.environ.get("META_APP_SECRET", "")
    if not app_secret:
        logger.error("META_APP_SECRET not configured - fail closed")
        return Response(status_code=401, content="invalid signature")

    try:
        verify_signature(body_bytes, x_hub_signature_256 or "", app_secret)
    except SignatureVerificationError as e:
        logger.warning(
            "whatsapp signature verification failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, error=str(e))},
        )
        return Response(status_code=401, content="invalid signature")

    try:
        payload: dict[str, Any] = json.loads(body_bytes)
    except ValueError:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid json")

    if not isinstance(payload, dict) or payload.get("object") != WHATSAPP_BUSINESS_OBJECT:
        logger.debug("non-whatsapp webhook ignored")
        return Response(status_code=200, content="ok")

    messages = normalize_all(payload)
    if not messages:
        # Status updates and unsupported message types
        logger.debug("whatsapp delivery without messages")
        return Response(status_code=200, content="ok")

    for message in messages:
        schedule_inbound(background_tasks, message)
    return Response(status_code=200, content="ok")
