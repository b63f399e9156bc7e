"""SMS webhook route - one endpoint for every SMS provider.

Providers post different shapes (MSG91 JSON or form fields, AWS SNS
notifications as text/plain JSON); `detect_payload` tags the body before it
is normalized. An optional X-Webhook-Secret header guards the endpoint.

Security: logs contain NO phone numbers and NO message text.
"""

import hmac
import json
import os
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, BackgroundTasks, Header, Request, Response

from bizchat.channels import meta, sms, twilio
from bizchat.channels.base import InvalidPayloadError
from bizchat.channels.models import StandardizedMessage
from bizchat.channels.webhook_payloads import (
    Msg91Payload,
    SnsPayload,
    TwilioPayload,
    WebhookPayload,
    detect_payload,
)
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import safe_log_context

from .tasks_messages import schedule_inbound

router = APIRouter(prefix="/webhooks/sms", tags=["webhooks"])

logger = get_logger(__name__)


def _parse_body(raw: bytes) -> Any:
    """JSON when it parses, form fields otherwise."""
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return dict(parse_qsl(text, keep_blank_values=True))


def normalize_payload(payload: WebhookPayload) -> StandardizedMessage:
    """Hand a tagged payload to the normalizer for its provider.

    Raises:
        InvalidPayloadError: The payload holds no message we can represent.
    """
    if isinstance(payload, (Msg91Payload, SnsPayload)):
        return sms.normalize(payload)
    if isinstance(payload, TwilioPayload):
        return twilio.normalize(payload.form)
    return meta.normalize(payload.body)


@router.post("")
async def sms_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_webhook_secret: str | None = Header(None, alias="X-Webhook-Secret"),
) -> Response:
    """Receive an inbound SMS from any supported provider.

    Returns:
        200 once the message is scheduled.
        400 for a body no provider produces.
        401 if SMS_WEBHOOK_SECRET is set and the header does not match.
    """
    expected_secret = os.environ.get("SMS_WEBHOOK_SECRET", "")
    if expected_secret and not hmac.compare_digest(x_webhook_secret or "", expected_secret):
        logger.warning("sms webhook secret mismatch")
        return Response(status_code=401, content="unauthorized")

    body = _parse_body(await request.body())

    try:
        payload = detect_payload(body, request.headers)
        message = normalize_payload(payload)
    except (InvalidPayloadError, ValueError) as e:
        logger.warning(
            "invalid sms payload",
            extra={"extra_fields": safe_log_context(reason=str(e))},
        )
        return Response(status_code=400, content="invalid payload")

    schedule_inbound(background_tasks, message)
    return Response(status_code=200, content="ok")
