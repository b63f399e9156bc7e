"""Storage contract the messaging core depends on.

`bizchat.infra.pg_store.PgMessagingStore` is the production implementation;
tests use an in-memory fake with the same methods.
"""

from datetime import date
from typing import Any, Protocol

from .models import Business, Conversation, Invoice, Message, PaymentTransaction


class MessagingStore(Protocol):
    # Conversations

    def find_active_conversation(
        self, business_id: str, customer_phone: str, channel_type: str
    ) -> Conversation | None: ...

    def insert_active_conversation(
        self, business_id: str, customer_phone: str, channel_type: str
    ) -> Conversation | None:
        """None when another writer already created the active row."""
        ...

    def touch_conversation(self, conversation_id: str) -> None: ...

    def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    def find_latest_active_conversation(
        self, customer_phone: str, channel_type: str, business_id: str | None = None
    ) -> Conversation | None: ...

    # Messages

    def append_message(
        self,
        *,
        conversation_id: str,
        sender_type: str,
        message_type: str,
        content: str,
        channel_type: str,
        media_url: str | None = None,
        provider_message_id: str | None = None,
        delivery_status: str = "sent",
    ) -> Message | None:
        """Insert and update the conversation preview together.

        None when the provider message id was already stored.
        """
        ...

    # Businesses

    def get_business(self, business_id: str) -> Business | None: ...

    def find_business_by_recipient(self, recipient: str) -> Business | None: ...

    # Transactions

    def create_transaction(
        self,
        *,
        business_id: str,
        customer_phone: str,
        amount_cents: int,
        currency: str,
        payment_method: str,
        reference_id: str,
        conversation_id: str | None = None,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentTransaction: ...

    def get_transaction(self, transaction_id: str) -> PaymentTransaction | None: ...

    def get_transaction_by_reference(self, reference_id: str) -> PaymentTransaction | None: ...

    def compare_and_set_transaction_status(
        self,
        transaction_id: str,
        expected_status: str,
        new_status: str,
        provider_txn_id: str | None = None,
    ) -> PaymentTransaction | None: ...

    # Invoices

    def issue_invoice(
        self,
        *,
        transaction: PaymentTransaction,
        customer_name: str,
        tax_cents: int,
        invoice_date: date,
    ) -> Invoice | None:
        """Allocate the next INV-YYYYMMDD-NNNN number and insert.

        None when the transaction already has an invoice.
        """
        ...
