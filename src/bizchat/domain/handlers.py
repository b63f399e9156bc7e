"""Response handlers - one per intent.

Each handler composes the reply for one classified message and sends it on
the channel the message arrived on. Only the payment handler has side
effects beyond the send (a pending transaction).

Security: NEVER log message text, phone numbers or UPI ids.
"""

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from bizchat.channels.models import SendResult, StandardizedMessage
from bizchat.observability.logging import get_logger
from bizchat.payments.models import (
    PaymentAmountError,
    PaymentConfigurationError,
    PaymentError,
    PaymentRequest,
)

from . import replies
from .intents import Classification
from .models import Business, Conversation

if TYPE_CHECKING:
    from bizchat.context import MessagingContext

logger = get_logger(__name__)

DEFAULT_PAYMENT_COUNTRY = "IN"


@dataclass(frozen=True)
class Turn:
    """One inbound message with everything a handler needs to answer it."""

    message: StandardizedMessage
    conversation: Conversation
    business: Business
    classification: Classification


@dataclass(frozen=True)
class HandlerResult:
    success: bool
    error: str | None = None
    transaction_id: str | None = None


Handler = Callable[["MessagingContext", Turn], HandlerResult]


def _reply(ctx: "MessagingContext", turn: Turn, text: str) -> SendResult:
    return ctx.sender.send(
        turn.message.sender,
        turn.message.channel,
        text,
        conversation=turn.conversation,
    )


def _result(send: SendResult) -> HandlerResult:
    return HandlerResult(success=send.success, error=send.error)


def handle_payment(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    """Register a pending UPI transaction and send the customer how to pay.

    WhatsApp gets a QR image plus instructions; other channels get a link to
    the hosted payment page of the same transaction. Payment failures are
    answered with the payment apology, never a QR or link.
    """
    business = turn.business
    channel = turn.message.channel

    try:
        if not business.upi_id:
            raise PaymentConfigurationError(f"Business {business.id} has no UPI ID configured")

        amount = ctx.amount_resolver.resolve(
            business, turn.conversation, override=turn.classification.amount
        )
        if amount is None:
            raise PaymentAmountError("Payment amount could not be resolved")

        link = ctx.bridge.generate_payment_link(
            PaymentRequest(
                id=str(uuid.uuid4()),
                amount=amount,
                business_id=business.id,
                customer_phone=turn.message.sender,
                country=business.country or DEFAULT_PAYMENT_COUNTRY,
                description=f"Payment to {business.name}",
                conversation_id=turn.conversation.id,
                payee_id=business.upi_id,
            ),
            method="upi",
        )
    except PaymentError as e:
        logger.warning(
            "payment handler failed",
            extra={
                "extra_fields": {
                    "business_id": business.id,
                    "conversation_id": turn.conversation.id,
                    "error_type": type(e).__name__,
                }
            },
        )
        _reply(ctx, turn, replies.PAYMENT_APOLOGY)
        return HandlerResult(success=False, error=str(e))

    if channel == "whatsapp":
        sent = ctx.sender.send_media(
            turn.message.sender,
            channel,
            "image",
            ctx.qr_image_url(link.transaction_id),
            caption=replies.qr_caption(amount, business.name),
            conversation=turn.conversation,
        )
        if not sent.success and link.upi_url:
            # Provider rejected the image; the upi:// link still works
            _reply(ctx, turn, replies.upi_link_fallback(amount, link.upi_url))
        sent = _reply(ctx, turn, replies.qr_instructions(amount))
    else:
        sent = _reply(ctx, turn, replies.payment_link_reply(amount, business.name, link.payment_url))

    logger.info(
        "payment requested",
        extra={
            "extra_fields": {
                "business_id": business.id,
                "conversation_id": turn.conversation.id,
                "transaction_id": link.transaction_id,
                "channel": channel,
            }
        },
    )
    return HandlerResult(success=sent.success, error=sent.error, transaction_id=link.transaction_id)


def handle_order(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    return _result(_reply(ctx, turn, replies.order_reply(turn.message.channel)))


def handle_price(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    return _result(_reply(ctx, turn, replies.price_reply(turn.message.channel)))


def handle_invalid_menu(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    return _result(_reply(ctx, turn, replies.invalid_menu_reply()))


def handle_default(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    """AI reply on chat channels when configured, else the static prompt."""
    channel = turn.message.channel
    text = None
    if ctx.ai is not None and not replies.is_terse(channel) and turn.message.type == "text":
        text = ctx.ai.reply(turn.business, turn.conversation.id, turn.message.text.body)
    return _result(_reply(ctx, turn, text or replies.default_reply(channel)))


def handle_image(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    return _result(_reply(ctx, turn, replies.ack_reply("image", turn.message.channel)))


def handle_document(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    return _result(_reply(ctx, turn, replies.ack_reply("document", turn.message.channel)))


def handle_location(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    return _result(_reply(ctx, turn, replies.ack_reply("location", turn.message.channel)))


def handle_button(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    # pay_<amount> buttons are classified as payment before reaching here
    return _result(_reply(ctx, turn, replies.button_reply(turn.message.button.text)))


def handle_template(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    return _result(_reply(ctx, turn, replies.ack_reply("template", turn.message.channel)))


def handle_unsupported(ctx: "MessagingContext", turn: Turn) -> HandlerResult:
    return _result(_reply(ctx, turn, replies.UNSUPPORTED_TYPE))


HANDLERS: dict[str, Handler] = {
    "payment": handle_payment,
    "order": handle_order,
    "price": handle_price,
    "invalid_menu": handle_invalid_menu,
    "default": handle_default,
    "image": handle_image,
    "document": handle_document,
    "location": handle_location,
    "button": handle_button,
    "template": handle_template,
}


def handler_for(intent: str) -> Handler:
    return HANDLERS.get(intent, handle_unsupported)
