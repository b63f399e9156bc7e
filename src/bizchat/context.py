"""Messaging context - the configured collaborators of one running service.

Built once from the environment by `build_context_from_env()`; tests build
it directly with fakes. Nothing in the messaging core reaches for a module
level singleton.
"""

import os
from dataclasses import dataclass, field
from typing import Protocol

from bizchat.ai.responder import AiResponder, build_ai_responder_from_env
from bizchat.channels.base import MessageChannel
from bizchat.channels.meta import MetaWhatsAppChannel
from bizchat.channels.sender import OutboundSender
from bizchat.channels.sms import Msg91SmsChannel
from bizchat.channels.twilio import TwilioChannel
from bizchat.domain.intents import DEFAULT_NUMERIC_MENU_CHANNELS
from bizchat.domain.models import Business, Conversation
from bizchat.domain.ports import MessagingStore
from bizchat.domain.transactions import TransactionService
from bizchat.infra.audit import AuditSink, LoggingAuditSink, PgAuditSink
from bizchat.infra.pg_store import PgMessagingStore
from bizchat.infra.repositories.templates_repository import PgTemplateStore
from bizchat.observability.logging import get_logger
from bizchat.payments.bridge import PaymentBridge, default_adapters
from bizchat.payments.upi import UpiAdapter

logger = get_logger(__name__)

DEFAULT_PAYMENT_AMOUNT = 499.0
DEFAULT_PUBLIC_BASE_URL = "http://localhost:8000"


class AmountResolver(Protocol):
    def resolve(
        self,
        business: Business,
        conversation: Conversation,
        override: float | None = None,
    ) -> float | None:
        """Amount (major units) to charge, or None when it cannot be resolved."""
        ...


class DefaultAmountResolver:
    """Button amount when the customer pressed one, else a fixed default."""

    def __init__(self, default_amount: float = DEFAULT_PAYMENT_AMOUNT) -> None:
        self._default_amount = default_amount

    def resolve(
        self,
        business: Business,
        conversation: Conversation,
        override: float | None = None,
    ) -> float | None:
        if override is not None:
            return override
        return self._default_amount


@dataclass
class MessagingContext:
    store: MessagingStore
    channels: dict[str, MessageChannel]
    sender: OutboundSender
    bridge: PaymentBridge
    upi: UpiAdapter
    transactions: TransactionService
    audit: AuditSink
    amount_resolver: AmountResolver = field(default_factory=DefaultAmountResolver)
    numeric_menu_channels: frozenset[str] = DEFAULT_NUMERIC_MENU_CHANNELS
    default_business_id: str | None = None
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    ai: AiResponder | None = None

    def qr_image_url(self, transaction_id: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/payments/{transaction_id}/qr.png"


def parse_channel_set(value: str | None) -> frozenset[str]:
    """'sms, whatsapp' -> frozenset({'sms', 'whatsapp'})."""
    if value is None:
        return DEFAULT_NUMERIC_MENU_CHANNELS
    return frozenset(part.strip().lower() for part in value.split(",") if part.strip())


def build_channels_from_env(template_store: PgTemplateStore | None = None) -> dict[str, MessageChannel]:
    """One adapter per channel, chosen by WHATSAPP_PROVIDER / SMS_PROVIDER.

    Credentials load lazily on first send, so a missing provider config only
    fails sends on that channel.

    Raises:
        ValueError: Unknown provider name.
    """
    whatsapp_provider = os.environ.get("WHATSAPP_PROVIDER", "meta").lower()
    sms_provider = os.environ.get("SMS_PROVIDER", "msg91").lower()

    channels: dict[str, MessageChannel] = {}

    if whatsapp_provider == "meta":
        channels["whatsapp"] = MetaWhatsAppChannel()
    elif whatsapp_provider == "twilio":
        channels["whatsapp"] = TwilioChannel("whatsapp", template_store=template_store)
    else:
        raise ValueError(f"Unknown WHATSAPP_PROVIDER: {whatsapp_provider}")

    if sms_provider == "msg91":
        channels["sms"] = Msg91SmsChannel(template_store=template_store)
    elif sms_provider == "twilio":
        channels["sms"] = TwilioChannel("sms", template_store=template_store)
    else:
        raise ValueError(f"Unknown SMS_PROVIDER: {sms_provider}")

    return channels


def _default_payment_amount() -> float:
    raw = os.environ.get("DEFAULT_PAYMENT_AMOUNT")
    if not raw:
        return DEFAULT_PAYMENT_AMOUNT
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"DEFAULT_PAYMENT_AMOUNT must be a number, got {raw!r}") from e


def build_context_from_env() -> MessagingContext:
    """Wire the production collaborators from environment variables.

    Raises:
        ValueError: Invalid provider name or default amount.
    """
    audit: AuditSink
    if os.environ.get("DATABASE_URL"):
        audit = PgAuditSink()
    else:
        logger.warning("DATABASE_URL not set, audit events go to the log only")
        audit = LoggingAuditSink()

    store = PgMessagingStore()
    channels = build_channels_from_env(PgTemplateStore())
    transactions = TransactionService(store, audit)
    upi = UpiAdapter(store, audit, transactions)

    return MessagingContext(
        store=store,
        channels=channels,
        sender=OutboundSender(channels, store, audit),
        bridge=PaymentBridge(default_adapters(upi), audit, store=store),
        upi=upi,
        transactions=transactions,
        audit=audit,
        amount_resolver=DefaultAmountResolver(_default_payment_amount()),
        numeric_menu_channels=parse_channel_set(os.environ.get("NUMERIC_MENU_CHANNELS")),
        default_business_id=os.environ.get("DEFAULT_BUSINESS_ID") or None,
        public_base_url=os.environ.get("PUBLIC_BASE_URL", DEFAULT_PUBLIC_BASE_URL),
        ai=build_ai_responder_from_env(),
    )
