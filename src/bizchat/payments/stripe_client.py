"""Thin wrapper around Stripe SDK.

Purpose:
- Encapsulate Stripe API calls so payment adapters don't import stripe.* directly.
- Accept idempotency_key for safe retries.
- Never log full Stripe payloads (only IDs + correlation metadata).
"""

from __future__ import annotations

import os
from typing import Any

import stripe

from bizchat.observability.logging import get_logger

logger = get_logger(__name__)


class StripeClient:
    """Wrapper for Stripe PaymentIntent operations.

    Usage:
        client = StripeClient()  # reads STRIPE_SECRET_KEY from env
        intent = client.create_payment_intent(
            amount_cents=49900,
            currency="inr",
            idempotency_key="txn:abc123:payment_intent",
        )
        print(intent["id"], intent["status"])
    """

    def __init__(self, api_key: str | None = None) -> None:
        """Initialize the Stripe client.

        Args:
            api_key: Stripe secret key. Defaults to STRIPE_SECRET_KEY env var.

        Raises:
            RuntimeError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or os.environ.get("STRIPE_SECRET_KEY")
        if not self._api_key:
            raise RuntimeError(
                "Stripe API key not provided. "
                "Set STRIPE_SECRET_KEY or pass api_key parameter."
            )

    def create_payment_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        description: str | None = None,
        metadata: dict[str, str] | None = None,
        payment_method: str | None = None,
    ) -> dict[str, Any]:
        """Create a PaymentIntent; confirmed immediately when a payment method is given.

        Returns:
            Dict with id, status, and client_secret.
        """
        client = stripe.StripeClient(self._api_key)

        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency.lower(),
        }
        if description:
            params["description"] = description
        if metadata:
            params["metadata"] = metadata
        if payment_method:
            params["payment_method"] = payment_method
            params["confirm"] = True

        intent = client.v1.payment_intents.create(
            params=params,
            options={"idempotency_key": idempotency_key},
        )

        logger.info(
            "stripe payment intent created",
            extra={"extra_fields": {"payment_intent_id": intent.id, "status": intent.status}},
        )

        return {
            "id": intent.id,
            "status": intent.status,
            "client_secret": intent.client_secret,
        }

    def refund_payment_intent(self, payment_intent_id: str, *, idempotency_key: str) -> str:
        """Refund a PaymentIntent in full. Returns the refund id."""
        client = stripe.StripeClient(self._api_key)

        refund = client.v1.refunds.create(
            params={"payment_intent": payment_intent_id},
            options={"idempotency_key": idempotency_key},
        )

        logger.info(
            "stripe refund created",
            extra={
                "extra_fields": {"payment_intent_id": payment_intent_id, "refund_id": refund.id}
            },
        )
        return refund.id
