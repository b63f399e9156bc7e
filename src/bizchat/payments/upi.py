"""UPI payments: QR/link registration, gateway callbacks, reversals.

Every UPI payment starts as a pending transaction whose reference_id is the
id the customer pays against; the gateway callback names that reference.
"""

import uuid
from dataclasses import dataclass
from typing import Any

from bizchat.domain.models import PaymentTransaction
from bizchat.domain.ports import MessagingStore
from bizchat.domain.transactions import (
    InvalidTransitionError,
    TransactionService,
    TransitionOutcome,
)
from bizchat.infra.audit import AuditSink
from bizchat.observability.logging import get_logger

from .models import (
    PaymentConfigurationError,
    PaymentRequest,
    PaymentResult,
    to_minor_units,
)
from .qr import build_upi_url

logger = get_logger(__name__)

UPI_SUCCESS = "SUCCESS"


@dataclass(frozen=True)
class UpiPaymentDetails:
    business_id: str
    customer_phone: str
    amount: float
    upi_id: str
    currency: str = "INR"
    conversation_id: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class UpiQr:
    """A registered pending UPI payment and the URI to encode."""

    transaction: PaymentTransaction
    upi_url: str


class UpiAdapter:
    name = "upi"

    def __init__(
        self,
        store: MessagingStore,
        audit: AuditSink,
        transactions: TransactionService | None = None,
    ) -> None:
        self._store = store
        self._audit = audit
        self._transactions = transactions or TransactionService(store, audit)

    def generate_qr(self, details: UpiPaymentDetails) -> UpiQr:
        """Register a pending transaction and build its upi:// URI.

        Raises:
            PaymentConfigurationError: No payee UPI id.
            PaymentAmountError: Amount not payable.
        """
        if not details.upi_id:
            raise PaymentConfigurationError("Business UPI ID not configured")

        amount_cents = to_minor_units(details.amount)
        note = details.description or f"Payment to {details.business_id}"
        upi_url = build_upi_url(details.upi_id, details.amount, note, currency=details.currency)

        transaction = self._store.create_transaction(
            business_id=details.business_id,
            conversation_id=details.conversation_id,
            customer_phone=details.customer_phone,
            amount_cents=amount_cents,
            currency=details.currency,
            payment_method="upi",
            reference_id=str(uuid.uuid4()),
            notes=note,
            metadata={"upi_url": upi_url},
        )

        self._audit.log_action(
            "qr_generated",
            resource_type="transaction",
            resource_id=transaction.id,
            metadata={"amount_cents": amount_cents, "currency": details.currency},
        )
        return UpiQr(transaction=transaction, upi_url=upi_url)

    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        """Register a UPI collect for the request (generic bridge path)."""
        if not request.payee_id:
            raise PaymentConfigurationError("Business UPI ID not configured")
        qr = self.generate_qr(
            UpiPaymentDetails(
                business_id=request.business_id,
                customer_phone=request.customer_phone,
                amount=request.amount,
                upi_id=request.payee_id,
                currency=request.currency or "INR",
                conversation_id=request.conversation_id,
                description=request.description,
            )
        )
        return PaymentResult(
            success=True,
            transaction_id=qr.transaction.id,
            provider=self.name,
            status="pending",
            raw_response={"upi_url": qr.upi_url, "reference_id": qr.transaction.reference_id},
        )

    def handle_callback(self, payload: dict[str, Any]) -> TransitionOutcome:
        """Apply a gateway callback {reference_id, status, upi_txn_id}.

        SUCCESS completes the transaction; any other status fails it.

        Raises:
            ValueError: reference_id missing.
            TransactionNotFoundError: Unknown reference.
            InvalidTransitionError: Callback would move the transaction backwards.
        """
        reference_id = payload.get("reference_id")
        if not reference_id:
            raise ValueError("Missing reference_id in callback payload")

        status = str(payload.get("status") or "").upper()
        new_status = "completed" if status == UPI_SUCCESS else "failed"

        transaction = self._transactions.get_by_reference(str(reference_id))
        return self._transactions.transition(
            transaction,
            new_status,
            provider_txn_id=payload.get("upi_txn_id"),
        )

    def reverse_transaction(self, transaction_id: str) -> bool:
        """Refund a completed UPI payment, by reference id."""
        transaction = self._store.get_transaction_by_reference(transaction_id)
        if transaction is None:
            logger.warning(
                "upi reversal for unknown transaction",
                extra={"extra_fields": {"reference_id": transaction_id}},
            )
            return False
        try:
            self._transactions.transition(transaction, "refunded")
        except InvalidTransitionError:
            logger.warning(
                "upi reversal not allowed",
                extra={
                    "extra_fields": {
                        "transaction_id": transaction.id,
                        "status": transaction.status,
                    }
                },
            )
            return False

        self._audit.log_action(
            "payment_reversed",
            resource_type="transaction",
            resource_id=transaction.id,
            metadata={"amount_cents": transaction.amount_cents},
        )
        return True
