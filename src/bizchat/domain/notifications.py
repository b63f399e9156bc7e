"""Payment status notifications sent to the customer after a callback."""

from typing import TYPE_CHECKING

from bizchat.channels.models import SendResult
from bizchat.observability.logging import get_logger

from . import replies
from .models import PaymentTransaction

if TYPE_CHECKING:
    from bizchat.context import MessagingContext

logger = get_logger(__name__)


def send_payment_status_update(
    ctx: "MessagingContext",
    transaction: PaymentTransaction,
) -> SendResult:
    """Tell the customer where their payment stands, on the conversation's channel.

    Transactions without a conversation have no channel to answer on and
    are skipped.
    """
    conversation = (
        ctx.store.get_conversation(transaction.conversation_id)
        if transaction.conversation_id
        else None
    )
    if conversation is None:
        logger.warning(
            "payment notification skipped: no conversation",
            extra={"extra_fields": {"transaction_id": transaction.id}},
        )
        return SendResult.failed("transaction has no conversation")

    business = ctx.store.get_business(transaction.business_id)
    business_name = business.name if business else "the business"

    text = replies.payment_status_reply(
        transaction.status,
        transaction.amount,
        business_name,
        transaction.id,
    )
    return ctx.sender.send(
        transaction.customer_phone,
        conversation.channel_type,
        text,
        conversation=conversation,
    )
