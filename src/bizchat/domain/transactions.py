"""Payment transaction lifecycle.

Status only moves forward: pending -> {completed, failed} -> refunded.
The first move into completed issues the GST invoice; later deliveries of
the same provider callback are no-ops.
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from bizchat.infra.audit import AuditSink
from bizchat.infra.time import utc_now
from bizchat.observability.logging import get_logger

from .models import Invoice, PaymentTransaction
from .ports import MessagingStore

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"completed", "failed"}),
    "completed": frozenset({"refunded"}),
    "failed": frozenset({"refunded"}),
    "refunded": frozenset(),
}

GST_RATE = Decimal("0.18")
DEFAULT_CUSTOMER_NAME = "Customer"


class InvalidTransitionError(Exception):
    """Raised when a status change would move a transaction backwards."""


class TransactionNotFoundError(Exception):
    """Raised when a callback names a transaction we never created."""


@dataclass(frozen=True)
class TransitionOutcome:
    transaction: PaymentTransaction
    changed: bool
    invoice: Invoice | None = None


def gst_for(amount_cents: int, rate: Decimal = GST_RATE) -> int:
    """Tax in minor units, rounded half-up."""
    return int((Decimal(amount_cents) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


class TransactionService:
    def __init__(self, store: MessagingStore, audit: AuditSink) -> None:
        self._store = store
        self._audit = audit

    def get_by_reference(self, reference_id: str) -> PaymentTransaction:
        transaction = self._store.get_transaction_by_reference(reference_id)
        if transaction is None:
            raise TransactionNotFoundError(f"no transaction with reference {reference_id}")
        return transaction

    def transition(
        self,
        transaction: PaymentTransaction,
        new_status: str,
        *,
        provider_txn_id: str | None = None,
    ) -> TransitionOutcome:
        """Move a transaction to new_status.

        Re-applying the current status is accepted and changes nothing.

        Raises:
            InvalidTransitionError: The move is not forward.
        """
        if transaction.status == new_status:
            return TransitionOutcome(transaction=transaction, changed=False)

        if not can_transition(transaction.status, new_status):
            raise InvalidTransitionError(
                f"transaction {transaction.id}: {transaction.status} -> {new_status} not allowed"
            )

        updated = self._store.compare_and_set_transaction_status(
            transaction.id, transaction.status, new_status, provider_txn_id
        )
        if updated is None:
            # Someone else moved it first; judge against what they wrote
            current = self._store.get_transaction(transaction.id)
            if current is None:
                raise TransactionNotFoundError(f"transaction {transaction.id} disappeared")
            return self.transition(current, new_status, provider_txn_id=provider_txn_id)

        logger.info(
            "transaction status changed",
            extra={
                "extra_fields": {
                    "transaction_id": updated.id,
                    "from_status": transaction.status,
                    "to_status": new_status,
                }
            },
        )
        self._audit.log_action(
            f"payment_{new_status}",
            resource_type="transaction",
            resource_id=updated.id,
            metadata={"provider_txn_id": provider_txn_id, "method": updated.payment_method},
        )

        invoice = None
        if new_status == "completed":
            invoice = self._issue_invoice(updated)
        return TransitionOutcome(transaction=updated, changed=True, invoice=invoice)

    def _issue_invoice(self, transaction: PaymentTransaction) -> Invoice | None:
        customer_name = DEFAULT_CUSTOMER_NAME
        if transaction.conversation_id:
            conversation = self._store.get_conversation(transaction.conversation_id)
            if conversation is not None and conversation.customer_name:
                customer_name = conversation.customer_name

        invoice_date: date = utc_now().date()
        invoice = self._store.issue_invoice(
            transaction=transaction,
            customer_name=customer_name,
            tax_cents=gst_for(transaction.amount_cents),
            invoice_date=invoice_date,
        )
        if invoice is not None:
            self._audit.log_action(
                "invoice_generated",
                resource_type="invoice",
                resource_id=invoice.id,
                metadata={
                    "invoice_number": invoice.invoice_number,
                    "transaction_id": transaction.id,
                    "total_cents": invoice.total_cents,
                },
            )
        return invoice
