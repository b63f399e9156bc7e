"""Persisted entities: businesses, conversations, messages, transactions, invoices.

Amounts are stored in minor units (paise/cents) as `amount_cents`.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

ConversationStatus = Literal["active", "closed"]
SenderType = Literal["customer", "business", "system"]
DeliveryStatus = Literal["sent", "delivered", "read", "failed"]
TransactionStatus = Literal["pending", "completed", "failed", "refunded"]

SENDER_TYPES: tuple[str, ...] = ("customer", "business", "system")
TRANSACTION_STATUSES: tuple[str, ...] = ("pending", "completed", "failed", "refunded")


@dataclass(frozen=True)
class Business:
    id: str
    name: str
    upi_id: str | None = None
    phone: str | None = None
    whatsapp_phone_number_id: str | None = None
    gstin: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class Conversation:
    id: str
    business_id: str
    customer_phone: str
    channel_type: str
    status: ConversationStatus = "active"
    customer_name: str | None = None
    last_message_at: datetime | None = None
    last_message_preview: str | None = None


@dataclass(frozen=True)
class Message:
    id: str
    conversation_id: str
    sender_type: SenderType
    message_type: str
    content: str
    channel_type: str
    media_url: str | None = None
    provider_message_id: str | None = None
    delivery_status: DeliveryStatus = "sent"
    created_at: datetime | None = None


@dataclass(frozen=True)
class PaymentTransaction:
    id: str
    business_id: str
    customer_phone: str
    amount_cents: int
    currency: str
    payment_method: str
    reference_id: str
    status: TransactionStatus = "pending"
    conversation_id: str | None = None
    notes: str | None = None
    provider_txn_id: str | None = None
    metadata: dict[str, Any] | None = None

    @property
    def amount(self) -> float:
        """Amount in major units."""
        return self.amount_cents / 100


@dataclass(frozen=True)
class Invoice:
    id: str
    invoice_number: str
    business_id: str
    transaction_id: str
    customer_name: str
    customer_phone: str
    amount_cents: int
    tax_cents: int
    total_cents: int
    invoice_date: str
    status: str = "issued"
    place_of_supply: str = "India"
