"""Tagged inbound webhook payloads.

`detect_payload` decides which provider sent a body before any parsing
happens, so each adapter only ever sees the shape it understands.

Detection order: body shape first (it is authoritative), then provider
headers as a hint for the ambiguous cases.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Union

from .base import InvalidPayloadError
from .meta import WHATSAPP_BUSINESS_OBJECT


@dataclass(frozen=True)
class WhatsAppPayload:
    """Meta Cloud API webhook body (entry[].changes[].value...)."""

    body: dict[str, Any]
    provider: str = "meta"


@dataclass(frozen=True)
class TwilioPayload:
    """Twilio form fields (From, To, Body, MessageSid, ...)."""

    form: dict[str, Any]
    provider: str = "twilio"


@dataclass(frozen=True)
class Msg91Payload:
    """MSG91 inbound SMS."""

    sender: str
    message: str
    datetime: str | None = None
    request_id: str | None = None
    provider: str = "msg91"


@dataclass(frozen=True)
class SnsPayload:
    """AWS SNS notification wrapping an inbound SMS as JSON in `Message`."""

    origination_number: str
    message_body: str
    message_id: str | None = None
    destination_number: str | None = None
    provider: str = "sns"


WebhookPayload = Union[WhatsAppPayload, TwilioPayload, Msg91Payload, SnsPayload]

PROVIDER_HEADERS: dict[str, str] = {
    "x-msg91-signature": "msg91",
    "x-twilio-signature": "twilio",
    "x-amz-sns-message-type": "sns",
}


def provider_hint(headers: Mapping[str, str] | None) -> str | None:
    """Provider named by request headers, if any."""
    if not headers:
        return None
    lowered = {k.lower() for k in headers}
    for header, provider in PROVIDER_HEADERS.items():
        if header in lowered:
            return provider
    return None


def _parse_sns(body: Mapping[str, Any]) -> SnsPayload:
    raw = body.get("Message")
    try:
        message = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError as e:
        raise InvalidPayloadError(f"sns message is not json: {e}") from e
    if not isinstance(message, dict):
        raise InvalidPayloadError("sns message is not an object")

    origination = message.get("originationNumber") or message.get("phoneNumber")
    text = message.get("messageBody") or message.get("message")
    if not origination or text is None:
        raise InvalidPayloadError("sns message without sender or body")
    return SnsPayload(
        origination_number=str(origination),
        message_body=str(text),
        message_id=message.get("inboundMessageId") or message.get("messageId"),
        destination_number=message.get("destinationNumber"),
    )


def _parse_msg91(body: Mapping[str, Any]) -> Msg91Payload:
    sender = body.get("msisdn") or body.get("sender") or body.get("mobile")
    text = body.get("message") if body.get("message") is not None else body.get("content")
    if not sender or text is None:
        raise InvalidPayloadError("msg91 payload without sender or message")
    request_id = body.get("requestId") or body.get("id")
    return Msg91Payload(
        sender=str(sender),
        message=str(text),
        datetime=body.get("datetime"),
        request_id=str(request_id) if request_id else None,
    )


def detect_payload(
    body: Any,
    headers: Mapping[str, str] | None = None,
) -> WebhookPayload:
    """Tag a raw webhook body with its provider.

    Raises:
        InvalidPayloadError: Shape matches no known provider.
    """
    if not isinstance(body, Mapping):
        raise InvalidPayloadError("webhook body is not an object")

    if body.get("object") == WHATSAPP_BUSINESS_OBJECT or "entry" in body:
        return WhatsAppPayload(body=dict(body))

    if body.get("Type") == "Notification" and "Message" in body:
        return _parse_sns(body)

    if body.get("From") and (body.get("MessageSid") or body.get("SmsMessageSid")):
        return TwilioPayload(form=dict(body))

    if body.get("msisdn") or body.get("sender") or body.get("mobile"):
        return _parse_msg91(body)

    hint = provider_hint(headers)
    if hint == "sns" and "Message" in body:
        return _parse_sns(body)
    if hint == "twilio" and body.get("From"):
        return TwilioPayload(form=dict(body))

    raise InvalidPayloadError("unrecognized webhook payload shape")
