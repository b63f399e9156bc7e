"""Card payments through Stripe PaymentIntents."""

from typing import Callable

import stripe

from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import safe_log_context

from .models import PaymentRequest, PaymentResult, to_minor_units
from .stripe_client import StripeClient

logger = get_logger(__name__)


class StripeAdapter:
    name = "stripe"

    def __init__(self, client_factory: Callable[[], StripeClient] = StripeClient) -> None:
        self._client_factory = client_factory
        self._client: StripeClient | None = None

    def _get_client(self) -> StripeClient | None:
        if self._client is None:
            try:
                self._client = self._client_factory()
            except RuntimeError:
                logger.error("stripe not initialized: missing STRIPE_SECRET_KEY")
                return None
        return self._client

    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        client = self._get_client()
        if client is None:
            return PaymentResult(
                success=False,
                transaction_id="",
                provider=self.name,
                status="failed",
                error="Stripe not initialized",
            )

        try:
            intent = client.create_payment_intent(
                amount_cents=to_minor_units(request.amount),
                currency=request.currency or "usd",
                idempotency_key=f"txn:{request.id}:payment_intent",
                description=request.description,
                metadata={k: str(v) for k, v in request.metadata.items()} or None,
                payment_method=request.payment_method_id,
            )
        except stripe.StripeError as e:
            logger.error(
                "stripe payment intent failed",
                extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
            )
            return PaymentResult(
                success=False,
                transaction_id="",
                provider=self.name,
                status="failed",
                error=str(e) or "Stripe error",
            )

        return PaymentResult(
            success=True,
            transaction_id=intent["id"],
            provider=self.name,
            status="completed" if intent["status"] == "succeeded" else "pending",
            raw_response=intent,
        )

    def reverse_transaction(self, transaction_id: str) -> bool:
        client = self._get_client()
        if client is None:
            return False
        try:
            client.refund_payment_intent(
                transaction_id, idempotency_key=f"refund:{transaction_id}"
            )
        except stripe.StripeError as e:
            logger.error(
                "stripe refund failed",
                extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
            )
            return False
        return True
