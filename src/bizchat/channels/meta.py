"""WhatsApp Cloud API (Meta) adapter.

Validates and normalizes Meta webhook payloads and sends outbound messages
through the Graph API.

Security: NEVER log phone numbers or message text. Only hashes and lengths.
"""

from __future__ import annotations

import hashlib
import hmac
import http.client
import json
import os
import time
import urllib.error
import urllib.request
from typing import Any, Iterator

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
from .phone import canonical_phone

logger = get_logger(__name__)

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 5

# Retry config
MAX_RETRIES = 1
RETRY_DELAY = 0.2

DEFAULT_GRAPH_API_VERSION = "v18.0"
GRAPH_API_BASE = "https://graph.facebook.com"

WHATSAPP_BUSINESS_OBJECT = "whatsapp_business_account"


class SignatureVerificationError(Exception):
    """Raised when HMAC signature verification fails."""


def verify_signature(payload_bytes: bytes, signature_header: str, app_secret: str) -> None:
    """Verify Meta webhook signature (HMAC-SHA256).

    Meta signs webhooks with sha256=<hex_signature> format.

    Args:
        payload_bytes: Raw request body bytes.
        signature_header: X-Hub-Signature-256 header value (sha256=...).
        app_secret: Meta App Secret for HMAC verification.

    Raises:
        SignatureVerificationError: If signature is invalid or missing.
    """
    if not signature_header:
        raise SignatureVerificationError("missing signature header")

    if not signature_header.startswith("sha256="):
        raise SignatureVerificationError("invalid signature format")

    expected_sig = signature_header[7:]

    computed_sig = hmac.new(
        key=app_secret.encode("utf-8"),
        msg=payload_bytes,
        digestmod=hashlib.sha256,
    ).hexdigest()

    if not hmac.compare_digest(computed_sig, expected_sig):
        raise SignatureVerificationError("signature mismatch")


def normalize(payload: dict[str, Any]) -> StandardizedMessage:
    """Normalize a Meta webhook payload into a StandardizedMessage.

    Meta payload structure:
    {
      "object": "whatsapp_business_account",
      "entry": [{
        "changes": [{
          "value": {
            "metadata": {"phone_number_id": "..."},
            "messages": [{"from": "PHONE", "id": "wamid...", "timestamp": "1704067200",
                          "type": "text", "text": {"body": "..."}}]
          },
          "field": "messages"
        }]
      }]
    }

    Only the first message is returned; use `normalize_all` for a whole
    delivery.

    Raises:
        InvalidPayloadError: Not a message event, or a message we cannot represent.
    """
    if not isinstance(payload, dict):
        raise InvalidPayloadError("payload is not an object")

    for message, recipient in _iter_messages(payload):
        return _normalize_message(message, recipient)
    raise InvalidPayloadError("no message found in payload")


def normalize_all(payload: dict[str, Any]) -> list[StandardizedMessage]:
    """Normalize every message in a Meta delivery.

    Meta batches messages across entry[].changes[].value.messages[]. Messages
    we cannot represent are skipped; the rest are returned in payload order.
    An empty list means the delivery carried no usable message (status
    updates, for example).
    """
    if not isinstance(payload, dict):
        return []

    normalized = []
    for message, recipient in _iter_messages(payload):
        try:
            normalized.append(_normalize_message(message, recipient))
        except (InvalidPayloadError, ValueError) as e:
            logger.debug(
                "skipping whatsapp message",
                extra={"extra_fields": safe_log_context(reason=str(e))},
            )
    return normalized


def _normalize_message(message: dict[str, Any], recipient: str | None) -> StandardizedMessage:
    message_id = message.get("id")
    if not message_id or not isinstance(message_id, str):
        raise InvalidPayloadError("missing or invalid message_id")

    sender = message.get("from", "")
    if not sender:
        raise InvalidPayloadError("missing sender phone number")

    common: dict[str, Any] = {
        "id": message_id,
        "sender": canonical_phone(str(sender)),
        "timestamp": normalize_timestamp(message.get("timestamp")),
        "channel": "whatsapp",
        "provider": "meta",
        "recipient": recipient,
    }

    message_type = message.get("type", "unknown")

    if message_type == "text":
        body = (message.get("text") or {}).get("body")
        if body is None:
            raise InvalidPayloadError("text message without body")
        return StandardizedMessage(type="text", text=TextContent(body=body), **common)

    if message_type == "image":
        image = message.get("image") or {}
        return StandardizedMessage(
            type="image",
            image=ImageContent(url=_media_reference(image), caption=image.get("caption")),
            **common,
        )

    if message_type == "document":
        document = message.get("document") or {}
        return StandardizedMessage(
            type="document",
            document=DocumentContent(
                url=_media_reference(document),
                filename=document.get("filename"),
                caption=document.get("caption"),
            ),
            **common,
        )

    if message_type == "location":
        location = message.get("location") or {}
        if "latitude" not in location or "longitude" not in location:
            raise InvalidPayloadError("location without coordinates")
        return StandardizedMessage(
            type="location",
            location=LocationContent(
                latitude=float(location["latitude"]),
                longitude=float(location["longitude"]),
                name=location.get("name"),
                address=location.get("address"),
            ),
            **common,
        )

    if message_type == "button":
        button = message.get("button") or {}
        return StandardizedMessage(
            type="button",
            button=ButtonContent(
                payload=str(button.get("payload", "")),
                text=str(button.get("text", "")),
            ),
            **common,
        )

    if message_type == "interactive":
        interactive = message.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply")
        if not reply:
            raise InvalidPayloadError("unsupported interactive reply")
        return StandardizedMessage(
            type="button",
            button=ButtonContent(
                payload=str(reply.get("id", "")),
                text=str(reply.get("title", "")),
            ),
            **common,
        )

    raise InvalidPayloadError(f"unsupported message type: {message_type}")


def _media_reference(media: dict[str, Any]) -> str | None:
    """Meta webhooks carry a media id, not a URL; keep a resolvable reference."""
    if media.get("link"):
        return str(media["link"])
    if media.get("id"):
        return f"meta-media:{media['id']}"
    return None


def _iter_messages(payload: dict[str, Any]) -> Iterator[tuple[dict[str, Any], str | None]]:
    """Yield (message, phone_number_id) for every message in the delivery."""
    entries = payload.get("entry")
    if not isinstance(entries, list):
        return
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("changes"), list):
            continue
        for change in entry["changes"]:
            value = change.get("value") if isinstance(change, dict) else None
            if not isinstance(value, dict) or not isinstance(value.get("messages"), list):
                continue
            metadata = value.get("metadata") or {}
            recipient = metadata.get("phone_number_id") if isinstance(metadata, dict) else None
            for message in value["messages"]:
                if isinstance(message, dict):
                    yield message, recipient


def _do_request(url: str, data: bytes, headers: dict[str, str]) -> dict[str, Any]:
    """Execute HTTP POST request. Raises on error."""
    req = urllib.request.Request(url, data=data, headers=headers, method="POST")
    with urllib.request.urlopen(req, timeout=HTTP_TIMEOUT) as resp:
        return json.loads(resp.read().decode() or "{}")


class MetaWhatsAppChannel(MessageChannel):
    """WhatsApp via Meta Cloud API.

    Config comes from constructor args or env:
    - META_PHONE_NUMBER_ID
    - META_ACCESS_TOKEN
    - META_GRAPH_API_VERSION (default: v18.0)
    """

    provider = "meta"

    def __init__(
        self,
        phone_number_id: str | None = None,
        access_token: str | None = None,
        api_version: str | None = None,
        template_language: str = "en_US",
    ) -> None:
        super().__init__()
        self._phone_number_id = phone_number_id
        self._access_token = access_token
        self._api_version = api_version
        self._template_language = template_language

    @property
    def channel_type(self) -> ChannelType:
        return "whatsapp"

    def _load_credentials(self) -> bool:
        self._phone_number_id = self._phone_number_id or os.environ.get("META_PHONE_NUMBER_ID", "")
        self._access_token = self._access_token or os.environ.get("META_ACCESS_TOKEN", "")
        self._api_version = self._api_version or os.environ.get(
            "META_GRAPH_API_VERSION", DEFAULT_GRAPH_API_VERSION
        )
        if not self._phone_number_id or not self._access_token:
            logger.error(
                "missing meta config: META_PHONE_NUMBER_ID and META_ACCESS_TOKEN required"
            )
            return False
        return True

    def normalize(self, payload: Any) -> StandardizedMessage:
        return normalize(payload)

    def send_text_message(self, to: str, text: str) -> SendResult:
        return self._send(
            to,
            {"type": "text", "text": {"body": text}},
            log_ctx=safe_log_context(text_len=len(text), kind="text"),
        )

    def send_template_message(
        self,
        to: str,
        template_name: str,
        parameters: dict[str, Any],
    ) -> SendResult:
        components = []
        if parameters:
            components.append(
                {
                    "type": "body",
                    "parameters": [
                        {"type": "text", "text": str(value)} for value in parameters.values()
                    ],
                }
            )
        return self._send(
            to,
            {
                "type": "template",
                "template": {
                    "name": template_name,
                    "language": {"code": self._template_language},
                    "components": components,
                },
            },
            log_ctx=safe_log_context(template=template_name, kind="template"),
        )

    def send_media(
        self,
        to: str,
        media_type: MediaType,
        media_url: str,
        caption: str | None = None,
    ) -> SendResult:
        media: dict[str, Any] = {"link": media_url}
        if caption and media_type != "audio":
            media["caption"] = caption
        return self._send(
            to,
            {"type": media_type, media_type: media},
            log_ctx=safe_log_context(kind=media_type),
        )

    def acknowledge_receipt(self, message_id: str) -> None:
        not_ready = self.ensure_initialized()
        if not_ready is not None:
            return
        payload = {"messaging_product": "whatsapp", "status": "read", "message_id": message_id}
        try:
            _do_request(self._messages_url(), json.dumps(payload).encode("utf-8"), self._headers())
        except (urllib.error.URLError, http.client.HTTPException, TimeoutError, ValueError) as e:
            logger.warning(
                "meta read receipt failed",
                extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
            )

    def _messages_url(self) -> str:
        return f"{GRAPH_API_BASE}/{self._api_version}/{self._phone_number_id}/messages"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._access_token}",
        }

    def _send(self, to: str, body: dict[str, Any], *, log_ctx: dict[str, str]) -> SendResult:
        not_ready = self.ensure_initialized()
        if not_ready is not None:
            return not_ready

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": canonical_phone(to),
            **body,
        }
        data = json.dumps(payload).encode("utf-8")
        ctx = {**log_ctx, "to_hash": hash_identifier(canonical_phone(to)), "provider": "meta"}

        logger.info("sending outbound message via meta", extra={"extra_fields": ctx})

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = _do_request(self._messages_url(), data, self._headers())
            except (urllib.error.URLError, http.client.HTTPException, TimeoutError) as e:
                is_5xx = isinstance(e, urllib.error.HTTPError) and 500 <= e.code < 600
                is_network = not isinstance(e, urllib.error.HTTPError)

                if attempt < MAX_RETRIES and (is_5xx or is_network):
                    logger.warning(
                        "outbound send via meta failed, retrying",
                        extra={
                            "extra_fields": {
                                **ctx,
                                "attempt": str(attempt),
                                "error_type": type(e).__name__,
                            }
                        },
                    )
                    time.sleep(RETRY_DELAY)
                    continue

                logger.error(
                    "outbound send via meta failed",
                    extra={
                        "extra_fields": {
                            **ctx,
                            "attempt": str(attempt),
                            "error_type": type(e).__name__,
                        }
                    },
                )
                return SendResult.failed(f"meta send failed: {type(e).__name__}")
            except ValueError as e:
                # Non-JSON response body
                return SendResult.failed(f"meta send failed: {e}")

            messages = response.get("messages") or [{}]
            message_id = messages[0].get("id")
            logger.info(
                "outbound message sent via meta",
                extra={"extra_fields": {**ctx, "attempt": str(attempt)}},
            )
            return SendResult(success=True, message_id=message_id)

        return SendResult.failed("meta send failed")
