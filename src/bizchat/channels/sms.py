"""SMS via MSG91.

Inbound SMS arrives either from MSG91 directly or relayed through AWS SNS;
both are normalized here. Outbound goes through the MSG91 flow API, which
takes the canonical number (no "+") and a single template variable.

Security: NEVER log phone numbers or message text. Only hashes and lengths.
"""

from __future__ import annotations

import os
import uuid
from typing import Any

import requests

from bizchat.infra.time import normalize_timestamp
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import hash_identifier, safe_log_context

from .base import InvalidPayloadError, MessageChannel
from .models import ChannelType, SendResult, StandardizedMessage, TextContent
from .phone import canonical_phone
from .templates import TemplateUnavailableError, render_stored_template
from .webhook_payloads import Msg91Payload, SnsPayload, detect_payload

logger = get_logger(__name__)

MSG91_FLOW_URL = "https://api.msg91.com/api/v5/flow/"
MSG91_BALANCE_URL = "https://api.msg91.com/api/v5/balance"
HTTP_TIMEOUT = int(os.environ.get("MSG91_HTTP_TIMEOUT", "10"))

SMS_MAX_LENGTH = 160
_ELLIPSIS = "..."


def truncate_sms(text: str) -> str:
    """Clip to one SMS segment."""
    if len(text) <= SMS_MAX_LENGTH:
        return text
    return text[: SMS_MAX_LENGTH - len(_ELLIPSIS)] + _ELLIPSIS


def normalize(payload: Msg91Payload | SnsPayload) -> StandardizedMessage:
    """Normalize an MSG91 or SNS inbound SMS.

    Providers that omit a message id get a generated one; such messages
    cannot be deduplicated on redelivery.
    """
    if isinstance(payload, Msg91Payload):
        return StandardizedMessage(
            id=payload.request_id or str(uuid.uuid4()),
            sender=canonical_phone(payload.sender),
            timestamp=normalize_timestamp(payload.datetime),
            type="text",
            channel="sms",
            provider="msg91",
            text=TextContent(body=payload.message),
        )
    if isinstance(payload, SnsPayload):
        return StandardizedMessage(
            id=payload.message_id or str(uuid.uuid4()),
            sender=canonical_phone(payload.origination_number),
            timestamp=normalize_timestamp(None),
            type="text",
            channel="sms",
            provider="sns",
            recipient=(
                canonical_phone(payload.destination_number)
                if payload.destination_number
                else None
            ),
            text=TextContent(body=payload.message_body),
        )
    raise InvalidPayloadError(f"not an sms payload: {type(payload).__name__}")


class Msg91SmsChannel(MessageChannel):
    """SMS via MSG91.

    Config comes from constructor args or env:
    - MSG91_API_KEY
    - MSG91_SENDER_ID (default: BIZCHAT)
    - MSG91_FLOW_ID
    - MSG91_VERIFY_BALANCE: "true" to check the key against the balance
      endpoint during initialize()
    """

    provider = "msg91"

    def __init__(
        self,
        api_key: str | None = None,
        sender_id: str | None = None,
        flow_id: str | None = None,
        template_store: Any = None,
        session: requests.Session | None = None,
        verify_balance: bool | None = None,
    ) -> None:
        super().__init__()
        self._api_key = api_key
        self._sender_id = sender_id
        self._flow_id = flow_id
        self._template_store = template_store
        self._session = session or requests.Session()
        self._verify_balance = verify_balance

    @property
    def channel_type(self) -> ChannelType:
        return "sms"

    def _load_credentials(self) -> bool:
        self._api_key = self._api_key or os.environ.get("MSG91_API_KEY", "")
        self._sender_id = self._sender_id or os.environ.get("MSG91_SENDER_ID", "BIZCHAT")
        self._flow_id = self._flow_id or os.environ.get("MSG91_FLOW_ID", "")
        if self._verify_balance is None:
            self._verify_balance = os.environ.get("MSG91_VERIFY_BALANCE", "false").lower() == "true"

        if not self._api_key or not self._sender_id:
            logger.error("missing msg91 config: MSG91_API_KEY and MSG91_SENDER_ID required")
            return False

        if self._verify_balance:
            return self._check_balance()
        return True

    def _check_balance(self) -> bool:
        try:
            response = self._session.get(
                MSG91_BALANCE_URL,
                params={"authkey": self._api_key},
                timeout=HTTP_TIMEOUT,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(
                "msg91 balance check failed",
                extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
            )
            return False
        return data.get("status") == "success"

    def normalize(self, payload: Any) -> StandardizedMessage:
        if isinstance(payload, dict):
            payload = detect_payload(payload)
        return normalize(payload)

    def send_text_message(self, to: str, text: str) -> SendResult:
        not_ready = self.ensure_initialized()
        if not_ready is not None:
            return not_ready

        sms_text = truncate_sms(text)
        mobile = canonical_phone(to)
        ctx = safe_log_context(
            to_hash=hash_identifier(mobile),
            text_len=len(sms_text),
            truncated=len(text) > SMS_MAX_LENGTH,
            provider="msg91",
        )

        try:
            response = self._session.post(
                MSG91_FLOW_URL,
                json={
                    "flow_id": self._flow_id,
                    "sender": self._sender_id,
                    "mobiles": mobile,
                    "VAR1": sms_text,
                },
                headers={"authkey": self._api_key, "Content-Type": "application/json"},
                timeout=HTTP_TIMEOUT,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(
                "outbound sms via msg91 failed",
                extra={"extra_fields": {**ctx, "error_type": type(e).__name__}},
            )
            return SendResult.failed(f"msg91 send failed: {type(e).__name__}")

        if data.get("type") == "success":
            logger.info("outbound sms sent via msg91", extra={"extra_fields": ctx})
            return SendResult(success=True, message_id=str(data.get("message") or "msg91"))

        logger.warning("outbound sms rejected by msg91", extra={"extra_fields": ctx})
        return SendResult.failed(str(data.get("message") or "SMS send failed"))

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
