"""Twilio adapter for WhatsApp and SMS.

Twilio posts flat form fields (From, To, Body, MessageSid, NumMedia,
MediaUrl0, ...). WhatsApp senders carry a "whatsapp:" prefix that is stripped
on the way in and added back on the way out.

Security: NEVER log phone numbers or message text. Only hashes and lengths.
"""

from __future__ import annotations

import os
from typing import Any, Mapping

import requests
from twilio.base.exceptions import TwilioException
from twilio.request_validator import RequestValidator
from twilio.rest import Client

from bizchat.infra.time import normalize_timestamp
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import hash_identifier, safe_log_context

from .base import InvalidPayloadError, MediaType, MessageChannel
from .models import (
    ButtonContent,
    ChannelType,
    DocumentContent,
    ImageContent,
    LocationContent,
    SendResult,
    StandardizedMessage,
    TextContent,
)
from .phone import canonical_phone, is_twilio_whatsapp, to_e164, to_twilio_whatsapp
from .templates import TemplateUnavailableError, render_stored_template

logger = get_logger(__name__)


def validate_signature(
    auth_token: str,
    url: str,
    params: Mapping[str, Any],
    signature: str | None,
) -> bool:
    """Check X-Twilio-Signature for a form-encoded webhook."""
    if not signature:
        return False
    return RequestValidator(auth_token).validate(url, dict(params), signature)


def channel_of(form: Mapping[str, Any]) -> ChannelType:
    """WhatsApp vs SMS is decided by the prefix on From."""
    return "whatsapp" if is_twilio_whatsapp(str(form.get("From", ""))) else "sms"


def normalize(form: Mapping[str, Any]) -> StandardizedMessage:
    """Normalize Twilio webhook form fields into a StandardizedMessage.

    Raises:
        InvalidPayloadError: Missing From/MessageSid.
    """
    if not isinstance(form, Mapping):
        raise InvalidPayloadError("payload is not a form mapping")

    raw_from = str(form.get("From", "")).strip()
    message_sid = str(form.get("MessageSid") or form.get("SmsMessageSid") or "").strip()
    if not raw_from:
        raise InvalidPayloadError("missing From")
    if not message_sid:
        raise InvalidPayloadError("missing MessageSid")

    recipient = str(form.get("To", "")).strip()
    common: dict[str, Any] = {
        "id": message_sid,
        "sender": canonical_phone(raw_from),
        "timestamp": normalize_timestamp(None),
        "channel": channel_of(form),
        "provider": "twilio",
        "recipient": canonical_phone(recipient) if recipient else None,
    }
    body = str(form.get("Body") or "")

    if form.get("Latitude") and form.get("Longitude"):
        return StandardizedMessage(
            type="location",
            location=LocationContent(
                latitude=float(form["Latitude"]),
                longitude=float(form["Longitude"]),
                name=form.get("Label") or None,
                address=form.get("Address") or None,
            ),
            **common,
        )

    if form.get("ButtonPayload"):
        return StandardizedMessage(
            type="button",
            button=ButtonContent(
                payload=str(form["ButtonPayload"]),
                text=str(form.get("ButtonText") or body),
            ),
            **common,
        )

    try:
        num_media = int(form.get("NumMedia") or 0)
    except ValueError:
        num_media = 0

    if num_media > 0:
        media_url = form.get("MediaUrl0")
        content_type = str(form.get("MediaContentType0") or "")
        if content_type.startswith("image/"):
            return StandardizedMessage(
                type="image",
                image=ImageContent(url=media_url, caption=body or None),
                **common,
            )
        return StandardizedMessage(
            type="document",
            document=DocumentContent(url=media_url, caption=body or None),
            **common,
        )

    return StandardizedMessage(type="text", text=TextContent(body=body), **common)


class TwilioChannel(MessageChannel):
    """One Twilio number bound to one channel (whatsapp or sms).

    Config comes from constructor args or env:
    - TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN
    - TWILIO_WHATSAPP_NUMBER (whatsapp) / TWILIO_SMS_NUMBER (sms)
    """

    provider = "twilio"

    def __init__(
        self,
        channel: ChannelType,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        template_store: Any = None,
        client: Client | None = None,
    ) -> None:
        super().__init__()
        if channel not in ("whatsapp", "sms"):
            raise ValueError(f"twilio does not serve channel {channel!r}")
        self._channel = channel
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._template_store = template_store
        self._client = client

    @property
    def channel_type(self) -> ChannelType:
        return self._channel

    @property
    def auth_token(self) -> str:
        return self._auth_token or os.environ.get("TWILIO_AUTH_TOKEN", "")

    def _load_credentials(self) -> bool:
        self._account_sid = self._account_sid or os.environ.get("TWILIO_ACCOUNT_SID", "")
        self._auth_token = self._auth_token or os.environ.get("TWILIO_AUTH_TOKEN", "")
        number_var = "TWILIO_WHATSAPP_NUMBER" if self._channel == "whatsapp" else "TWILIO_SMS_NUMBER"
        self._from_number = self._from_number or os.environ.get(number_var, "")

        if not self._from_number:
            logger.error(
                "missing twilio config",
                extra={"extra_fields": safe_log_context(missing=number_var)},
            )
            return False
        if self._client is None:
            if not self._account_sid or not self._auth_token:
                logger.error(
                    "missing twilio config: TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN required"
                )
                return False
            self._client = Client(self._account_sid, self._auth_token)
        return True

    def _address(self, phone: str) -> str:
        if self._channel == "whatsapp":
            return to_twilio_whatsapp(phone)
        return to_e164(phone)

    def normalize(self, payload: Any) -> StandardizedMessage:
        message = normalize(payload)
        if message.channel != self._channel:
            raise InvalidPayloadError(
                f"twilio payload for {message.channel} sent to {self._channel} adapter"
            )
        return message

    def send_text_message(self, to: str, text: str) -> SendResult:
        return self._create(
            to, {"body": text}, log_ctx=safe_log_context(text_len=len(text), kind="text")
        )

    def send_template_message(
        self,
        to: str,
        template_name: str,
        parameters: dict[str, Any],
    ) -> SendResult:
        try:
            text = render_stored_template(self._template_store, template_name, parameters)
        except TemplateUnavailableError as e:
            logger.warning(
                "template unavailable",
                extra={"extra_fields": safe_log_context(template=template_name, reason=str(e))},
            )
            return SendResult.failed(str(e))
        return self.send_text_message(to, text)

    def send_media(
        self,
        to: str,
        media_type: MediaType,
        media_url: str,
        caption: str | None = None,
    ) -> SendResult:
        params: dict[str, Any] = {"media_url": [media_url]}
        if caption:
            params["body"] = caption
        return self._create(to, params, log_ctx=safe_log_context(kind=media_type))

    def _create(self, to: str, params: dict[str, Any], *, log_ctx: dict[str, str]) -> SendResult:
        not_ready = self.ensure_initialized()
        if not_ready is not None:
            return not_ready

        ctx = {
            **log_ctx,
            "to_hash": hash_identifier(canonical_phone(to)),
            "provider": "twilio",
            "channel": self._channel,
        }
        try:
            message = self._client.messages.create(
                from_=self._address(self._from_number),
                to=self._address(to),
                **params,
            )
        except (TwilioException, requests.RequestException) as e:
            logger.error(
                "outbound send via twilio failed",
                extra={"extra_fields": {**ctx, "error_type": type(e).__name__}},
            )
            return SendResult.failed(f"twilio send failed: {e}")

        logger.info("outbound message sent via twilio", extra={"extra_fields": ctx})
        return SendResult(success=True, message_id=message.sid)
