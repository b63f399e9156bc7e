"""Stripe webhook signature validation and payload parsing.

Purpose:
- Validate webhook signature using Stripe-Signature header.
- Extract minimal data needed for routing (no full event).
- Never log payload or signature.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import stripe

from bizchat.observability.logging import get_logger

logger = get_logger(__name__)

# Stripe event type -> transaction status
EVENT_STATUS: dict[str, str] = {
    "payment_intent.succeeded": "completed",
    "payment_intent.payment_failed": "failed",
    "charge.refunded": "refunded",
}


class InvalidSignatureError(Exception):
    """Webhook signature validation failed."""


class InvalidStripePayloadError(Exception):
    """Payload structure is invalid or missing required fields."""


@dataclass
class StripeWebhookEvent:
    """Minimal extracted data from a Stripe webhook event."""

    event_id: str
    event_type: str
    object_id: str | None
    payment_intent_id: str | None

    @property
    def target_status(self) -> str | None:
        return EVENT_STATUS.get(self.event_type)


def verify_and_extract(
    payload_bytes: bytes,
    signature_header: str,
    webhook_secret: str,
) -> StripeWebhookEvent:
    """Validate Stripe webhook signature and extract minimal event data.

    Raises:
        InvalidSignatureError: If signature validation fails.
        InvalidStripePayloadError: If event structure is invalid.
    """
    try:
        event = stripe.Webhook.construct_event(
            payload_bytes,
            signature_header,
            webhook_secret,
        )
    except stripe.SignatureVerificationError as e:
        # Do NOT log signature or payload
        logger.warning("stripe webhook signature verification failed")
        raise InvalidSignatureError("Invalid signature") from e
    except ValueError as e:
        logger.warning("stripe webhook payload parsing failed")
        raise InvalidStripePayloadError("Invalid payload") from e

    event_id = event.get("id")
    event_type = event.get("type")

    if not event_id or not event_type:
        raise InvalidStripePayloadError("Missing event id or type")

    obj = (event.get("data") or {}).get("object") or {}
    return StripeWebhookEvent(
        event_id=event_id,
        event_type=event_type,
        object_id=obj.get("id"),
        payment_intent_id=_payment_intent_id(event_type, obj),
    )


def _payment_intent_id(event_type: str, obj: dict[str, Any]) -> str | None:
    """Charges point at their intent; intents are their own id."""
    if event_type.startswith("payment_intent."):
        return obj.get("id")
    intent = obj.get("payment_intent")
    if isinstance(intent, dict):
        return intent.get("id")
    return intent
