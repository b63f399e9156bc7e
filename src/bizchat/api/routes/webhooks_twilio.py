"""Twilio webhook route - WhatsApp and SMS on one form-encoded endpoint.

The channel is decided by the "whatsapp:" prefix on From. With
TWILIO_VALIDATE_SIGNATURE=true the X-Twilio-Signature header is checked
against TWILIO_AUTH_TOKEN and the public request URL.

Security: logs contain NO phone numbers and NO message text.
"""

import os

from fastapi import APIRouter, BackgroundTasks, Header, Request, Response
from twilio.twiml.messaging_response import MessagingResponse

from bizchat.channels import twilio
from bizchat.channels.base import InvalidPayloadError
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import safe_log_context

from .tasks_messages import schedule_inbound

router = APIRouter(prefix="/webhooks/twilio", tags=["webhooks"])

logger = get_logger(__name__)


def _signature_required() -> bool:
    return os.environ.get("TWILIO_VALIDATE_SIGNATURE", "false").lower() == "true"


def _public_url(request: Request) -> str:
    """URL Twilio signed: PUBLIC_BASE_URL + path when behind a proxy."""
    base = os.environ.get("PUBLIC_BASE_URL")
    if not base:
        return str(request.url)
    query = f"?{request.url.query}" if request.url.query else ""
    return f"{base.rstrip('/')}{request.url.path}{query}"


def _twiml() -> Response:
    # No immediate reply; answers go out through the REST API
    return Response(status_code=200, content=str(MessagingResponse()), media_type="text/xml")


@router.post("")
async def twilio_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_twilio_signature: str | None = Header(None, alias="X-Twilio-Signature"),
) -> Response:
    """Receive a Twilio message webhook.

    Returns:
        200 with empty TwiML once the message is scheduled.
        400 if the form is not a message.
        401 if signature validation is on and fails.
    """
    form = dict(await request.form())

    if _signature_required():
        auth_token = os.environ.get("TWILIO_AUTH_TOKEN", "")
        if not auth_token or not twilio.validate_signature(
            auth_token, _public_url(request), form, x_twilio_signature
        ):
            logger.warning(
                "twilio signature verification failed",
                extra={"extra_fields": safe_log_context(token_configured=bool(auth_token))},
            )
            return Response(status_code=401, content="invalid signature")

    try:
        message = twilio.normalize(form)
    except (InvalidPayloadError, ValueError) as e:
        logger.warning(
            "invalid twilio payload",
            extra={"extra_fields": safe_log_context(reason=str(e))},
        )
        return Response(status_code=400, content="invalid payload")

    schedule_inbound(background_tasks, message)
    return _twiml()
