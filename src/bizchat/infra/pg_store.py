"""Postgres implementation of MessagingStore.

Each method is one short transaction built from the repository functions.
"""

from datetime import date
from typing import Any

from bizchat.domain.models import Business, Conversation, Invoice, Message, PaymentTransaction
from bizchat.infra.db import txn
from bizchat.infra.repositories import (
    businesses_repository,
    conversations_repository,
    invoices_repository,
    messages_repository,
    transactions_repository,
)

PREVIEW_LENGTH = 100


def format_invoice_number(invoice_date: date, sequence: int) -> str:
    return f"INV-{invoice_date.strftime('%Y%m%d')}-{sequence:04d}"


class PgMessagingStore:
    def find_active_conversation(
        self, business_id: str, customer_phone: str, channel_type: str
    ) -> Conversation | None:
        with txn() as cur:
            return conversations_repository.find_active_conversation(
                cur,
                business_id=business_id,
                customer_phone=customer_phone,
                channel_type=channel_type,
            )

    def insert_active_conversation(
        self, business_id: str, customer_phone: str, channel_type: str
    ) -> Conversation | None:
        with txn() as cur:
            return conversations_repository.insert_active_conversation(
                cur,
                business_id=business_id,
                customer_phone=customer_phone,
                channel_type=channel_type,
            )

    def touch_conversation(self, conversation_id: str) -> None:
        with txn() as cur:
            conversations_repository.touch_conversation(cur, conversation_id=conversation_id)

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with txn() as cur:
            return conversations_repository.get_conversation(cur, conversation_id=conversation_id)

    def find_latest_active_conversation(
        self, customer_phone: str, channel_type: str, business_id: str | None = None
    ) -> Conversation | None:
        with txn() as cur:
            return conversations_repository.find_latest_active_for_contact(
                cur,
                customer_phone=customer_phone,
                channel_type=channel_type,
                business_id=business_id,
            )

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
        with txn() as cur:
            message = messages_repository.insert_message(
                cur,
                conversation_id=conversation_id,
                sender_type=sender_type,
                message_type=message_type,
                content=content,
                channel_type=channel_type,
                media_url=media_url,
                provider_message_id=provider_message_id,
                delivery_status=delivery_status,
            )
            if message is not None:
                conversations_repository.update_last_message(
                    cur,
                    conversation_id=conversation_id,
                    preview=content[:PREVIEW_LENGTH],
                )
            return message

    def get_business(self, business_id: str) -> Business | None:
        with txn() as cur:
            return businesses_repository.get_business(cur, business_id=business_id)

    def find_business_by_recipient(self, recipient: str) -> Business | None:
        with txn() as cur:
            return businesses_repository.find_business_by_recipient(cur, recipient=recipient)

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
    ) -> PaymentTransaction:
        with txn() as cur:
            return transactions_repository.insert_transaction(
                cur,
                business_id=business_id,
                customer_phone=customer_phone,
                amount_cents=amount_cents,
                currency=currency,
                payment_method=payment_method,
                reference_id=reference_id,
                conversation_id=conversation_id,
                notes=notes,
                metadata=metadata,
            )

    def get_transaction(self, transaction_id: str) -> PaymentTransaction | None:
        with txn() as cur:
            return transactions_repository.get_transaction(cur, transaction_id=transaction_id)

    def get_transaction_by_reference(self, reference_id: str) -> PaymentTransaction | None:
        with txn() as cur:
            return transactions_repository.get_transaction_by_reference(
                cur, reference_id=reference_id
            )

    def compare_and_set_transaction_status(
        self,
        transaction_id: str,
        expected_status: str,
        new_status: str,
        provider_txn_id: str | None = None,
    ) -> PaymentTransaction | None:
        with txn() as cur:
            return transactions_repository.compare_and_set_status(
                cur,
                transaction_id=transaction_id,
                expected_status=expected_status,
                new_status=new_status,
                provider_txn_id=provider_txn_id,
            )

    def issue_invoice(
        self,
        *,
        transaction: PaymentTransaction,
        customer_name: str,
        tax_cents: int,
        invoice_date: date,
    ) -> Invoice | None:
        with txn() as cur:
            sequence = invoices_repository.next_invoice_sequence(
                cur,
                business_id=transaction.business_id,
                invoice_date=invoice_date.isoformat(),
            )
            return invoices_repository.insert_invoice(
                cur,
                invoice_number=format_invoice_number(invoice_date, sequence),
                business_id=transaction.business_id,
                transaction_id=transaction.id,
                customer_name=customer_name,
                customer_phone=transaction.customer_phone,
                amount_cents=transaction.amount_cents,
                tax_cents=tax_cents,
                total_cents=transaction.amount_cents + tax_cents,
                invoice_date=invoice_date.isoformat(),
            )
