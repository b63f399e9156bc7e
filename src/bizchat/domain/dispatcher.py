"""Inbound dispatch - from a standardized message to a sent reply.

Resolve business -> resolve conversation -> store inbound -> classify ->
handle. Runs after the webhook has already answered the provider, so it
never raises: any failure is logged, audited and answered with an apology.

Security: NEVER log message text or phone numbers. Only hashes.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from bizchat.channels.models import StandardizedMessage
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import hash_identifier

from . import replies
from .conversations import find_or_create_conversation
from .handlers import HandlerResult, Turn, handler_for
from .intents import classify
from .messages import append_inbound
from .models import Business, Conversation
from .ports import MessagingStore

if TYPE_CHECKING:
    from bizchat.context import MessagingContext

logger = get_logger(__name__)

DispatchStatus = Literal["handled", "duplicate", "failed"]


class BusinessNotFoundError(Exception):
    """Raised when an inbound message maps to no business and no default is set."""


@dataclass(frozen=True)
class DispatchOutcome:
    status: DispatchStatus
    intent: str | None = None
    conversation_id: str | None = None
    result: HandlerResult | None = None
    error: str | None = None


def resolve_business(
    store: MessagingStore,
    recipient: str | None,
    default_business_id: str | None,
) -> Business:
    """Business the customer wrote to, else the configured default.

    Raises:
        BusinessNotFoundError: Neither lookup found a business.
    """
    if recipient:
        business = store.find_business_by_recipient(recipient)
        if business is not None:
            return business

    if default_business_id:
        business = store.get_business(default_business_id)
        if business is not None:
            return business

    raise BusinessNotFoundError("no business for inbound recipient and no default configured")


def process_inbound(ctx: "MessagingContext", message: StandardizedMessage) -> DispatchOutcome:
    """Process one inbound message end to end. Never raises."""
    sender_hash = hash_identifier(message.sender)
    ctx.audit.log_action(
        f"{message.channel}_message_received",
        resource_type="message",
        resource_id=message.id,
        metadata={"type": message.type, "provider": message.provider, "from_hash": sender_hash},
    )

    conversation: Conversation | None = None
    try:
        business = resolve_business(ctx.store, message.recipient, ctx.default_business_id)
        conversation = find_or_create_conversation(
            ctx.store, business.id, message.sender, message.channel
        )

        if append_inbound(ctx.store, conversation.id, message) is None:
            logger.info(
                "duplicate inbound message ignored",
                extra={
                    "extra_fields": {
                        "message_id": message.id,
                        "conversation_id": conversation.id,
                        "channel": message.channel,
                    }
                },
            )
            return DispatchOutcome(status="duplicate", conversation_id=conversation.id)

        _acknowledge(ctx, message)

        classification = classify(message, ctx.numeric_menu_channels)
        logger.info(
            "message classified",
            extra={
                "extra_fields": {
                    "message_id": message.id,
                    "conversation_id": conversation.id,
                    "channel": message.channel,
                    "intent": classification.intent,
                }
            },
        )

        handler = handler_for(classification.intent)
        result = handler(
            ctx,
            Turn(
                message=message,
                conversation=conversation,
                business=business,
                classification=classification,
            ),
        )
        return DispatchOutcome(
            status="handled",
            intent=classification.intent,
            conversation_id=conversation.id,
            result=result,
        )
    except Exception as e:
        logger.exception(
            "message processing failed",
            extra={
                "extra_fields": {
                    "message_id": message.id,
                    "channel": message.channel,
                    "from_hash": sender_hash,
                    "error_type": type(e).__name__,
                }
            },
        )
        ctx.audit.log_action(
            "message_processing_error",
            resource_type="message",
            resource_id=message.id,
            metadata={"channel": message.channel, "error": str(e)},
        )
        _apologize(ctx, message, conversation)
        return DispatchOutcome(
            status="failed",
            conversation_id=conversation.id if conversation else None,
            error=type(e).__name__,
        )


def _acknowledge(ctx: "MessagingContext", message: StandardizedMessage) -> None:
    """Read receipt, best effort."""
    adapter = ctx.sender.channel_for(message.channel)
    if adapter is None:
        return
    try:
        adapter.acknowledge_receipt(message.id)
    except Exception as e:
        logger.warning(
            "read receipt failed",
            extra={
                "extra_fields": {
                    "message_id": message.id,
                    "error_type": type(e).__name__,
                }
            },
        )


def _apologize(
    ctx: "MessagingContext",
    message: StandardizedMessage,
    conversation: Conversation | None,
) -> None:
    try:
        ctx.sender.send(
            message.sender,
            message.channel,
            replies.GENERIC_APOLOGY,
            conversation=conversation,
        )
    except Exception as e:
        logger.error(
            "apology send failed",
            extra={
                "extra_fields": {
                    "message_id": message.id,
                    "error_type": type(e).__name__,
                }
            },
        )
