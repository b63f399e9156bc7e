"""Payment gateway bridge - routes a payment to the adapter for its region and method.

Adapter lookup falls back to the global region for the same method. Every
routed payment is audited with region, method, amount and currency whether
or not it succeeded.
"""

from __future__ import annotations

import os
from dataclasses import replace
from urllib.parse import urlencode

from bizchat.domain.ports import MessagingStore
from bizchat.infra.audit import AuditSink
from bizchat.observability.logging import get_logger

from .models import (
    PaymentAdapter,
    PaymentAdapterUnavailableError,
    PaymentConfigurationError,
    PaymentError,
    PaymentLink,
    PaymentRequest,
    PaymentResult,
    to_minor_units,
)
from .paypal import PayPalAdapter
from .regions import REGION_CONFIGS, RegionalPaymentConfig, resolve_region_config
from .stripe_adapter import StripeAdapter
from .upi import UpiAdapter, UpiPaymentDetails

logger = get_logger(__name__)

DEFAULT_PAYMENT_LINK_BASE_URL = "https://pay.bizchat.app"

AdapterTable = dict[str, dict[str, PaymentAdapter]]


def payment_link_base_url() -> str:
    return os.environ.get("PAYMENT_LINK_BASE_URL", DEFAULT_PAYMENT_LINK_BASE_URL).rstrip("/")


def default_adapters(
    upi: UpiAdapter,
    stripe_adapter: StripeAdapter | None = None,
    paypal: PayPalAdapter | None = None,
) -> AdapterTable:
    """Card via Stripe everywhere, PayPal everywhere, UPI in India."""
    stripe_adapter = stripe_adapter or StripeAdapter()
    paypal = paypal or PayPalAdapter()
    return {
        "north-america": {"credit-card": stripe_adapter, "paypal": paypal},
        "europe": {"credit-card": stripe_adapter, "paypal": paypal},
        "india": {"upi": upi, "credit-card": stripe_adapter, "paypal": paypal},
        "global": {"paypal": paypal, "credit-card": stripe_adapter},
    }


class PaymentBridge:
    def __init__(
        self,
        adapters: AdapterTable,
        audit: AuditSink,
        regions: dict[str, RegionalPaymentConfig] = REGION_CONFIGS,
        link_base_url: str | None = None,
        store: MessagingStore | None = None,
    ) -> None:
        self._adapters = adapters
        self._store = store
        self._audit = audit
        self._regions = regions
        self._link_base_url = link_base_url or payment_link_base_url()

    @property
    def link_base_url(self) -> str:
        return self._link_base_url

    def get_adapter(self, region: str, method: str) -> PaymentAdapter | None:
        regional = self._adapters.get(region, {})
        if method in regional:
            return regional[method]
        return self._adapters.get("global", {}).get(method)

    def _route(
        self,
        request: PaymentRequest,
        region: str | None,
        method: str | None,
    ) -> tuple[RegionalPaymentConfig, str, str, PaymentAdapter]:
        config = resolve_region_config(region, request.country, self._regions)
        effective_region = region or config.region
        effective_method = method or config.default_method
        adapter = self.get_adapter(effective_region, effective_method)
        if adapter is None:
            raise PaymentAdapterUnavailableError(
                f"No payment adapter available for {effective_region} and {effective_method}"
            )
        return config, effective_region, effective_method, adapter

    def process_payment(
        self,
        request: PaymentRequest,
        region: str | None = None,
        method: str | None = None,
    ) -> PaymentResult:
        """Charge through the resolved adapter.

        Raises:
            PaymentAdapterUnavailableError: Nothing registered for region/method.
            PaymentError: Adapter-reported configuration problems.
        """
        currency = request.currency
        try:
            config, effective_region, effective_method, adapter = self._route(
                request, region, method
            )
            currency = request.currency or config.currency
            enriched = _with_currency(request, currency)
            result = adapter.process_payment(enriched)
        except PaymentError as e:
            self._audit_failure(request, region, method, currency, e)
            raise

        if result.success and not isinstance(adapter, UpiAdapter):
            self._record_transaction(enriched, result, effective_method, currency)

        self._audit.log_action(
            "payment_processed",
            resource_type="transaction",
            resource_id=request.id,
            metadata={
                "region": effective_region,
                "method": effective_method,
                "amount": request.amount,
                "currency": currency,
                "success": result.success,
                "provider": result.provider,
            },
        )
        return result

    def generate_payment_link(
        self,
        request: PaymentRequest,
        region: str | None = None,
        method: str | None = None,
    ) -> PaymentLink:
        """UPI registers a pending transaction and returns its upi:// URI;
        other methods get a hosted payment page keyed by request id.

        Raises:
            PaymentAdapterUnavailableError: Nothing registered for region/method.
            PaymentConfigurationError: UPI without a payee id.
        """
        currency = request.currency
        try:
            config, effective_region, effective_method, adapter = self._route(
                request, region, method
            )
            currency = request.currency or config.currency

            if effective_method == "upi" and isinstance(adapter, UpiAdapter):
                if not request.payee_id:
                    raise PaymentConfigurationError("Business UPI ID not configured")
                qr = adapter.generate_qr(
                    UpiPaymentDetails(
                        business_id=request.business_id,
                        customer_phone=request.customer_phone,
                        amount=request.amount,
                        upi_id=request.payee_id,
                        currency=currency,
                        conversation_id=request.conversation_id,
                        description=request.description,
                    )
                )
                link = PaymentLink(
                    transaction_id=qr.transaction.id,
                    payment_url=f"{self._link_base_url}/{qr.transaction.id}",
                    method=effective_method,
                    region=effective_region,
                    upi_url=qr.upi_url,
                )
            else:
                query = urlencode({"region": effective_region, "method": effective_method})
                link = PaymentLink(
                    transaction_id=request.id,
                    payment_url=f"{self._link_base_url}/{request.id}?{query}",
                    method=effective_method,
                    region=effective_region,
                )
        except PaymentError as e:
            self._audit_failure(request, region, method, currency, e)
            raise

        self._audit.log_action(
            "payment_processed",
            resource_type="transaction",
            resource_id=link.transaction_id,
            metadata={
                "region": effective_region,
                "method": effective_method,
                "amount": request.amount,
                "currency": currency,
                "success": True,
                "provider": getattr(adapter, "name", "unknown"),
            },
        )
        return link

    def _record_transaction(
        self,
        request: PaymentRequest,
        result: PaymentResult,
        method: str,
        currency: str,
    ) -> None:
        """Store a pending transaction keyed by the provider's id.

        Provider webhooks (e.g. Stripe payment_intent.succeeded) move it on
        from there. UPI records its own transaction when the QR is made.
        """
        if self._store is None or not result.transaction_id:
            return
        self._store.create_transaction(
            business_id=request.business_id,
            conversation_id=request.conversation_id,
            customer_phone=request.customer_phone,
            amount_cents=to_minor_units(request.amount),
            currency=currency,
            payment_method=method,
            reference_id=result.transaction_id,
            notes=request.description,
            metadata={"provider": result.provider, "request_id": request.id},
        )

    def _audit_failure(
        self,
        request: PaymentRequest,
        region: str | None,
        method: str | None,
        currency: str | None,
        error: Exception,
    ) -> None:
        logger.warning(
            "payment bridge error",
            extra={
                "extra_fields": {
                    "region": region or "",
                    "method": method or "",
                    "error_type": type(error).__name__,
                }
            },
        )
        self._audit.log_action(
            "payment_bridge_error",
            resource_type="transaction",
            resource_id=request.id,
            metadata={
                "region": region,
                "method": method,
                "amount": request.amount,
                "currency": currency,
                "error": str(error),
            },
        )


def _with_currency(request: PaymentRequest, currency: str) -> PaymentRequest:
    if request.currency == currency:
        return request
    return replace(request, currency=currency)
