"""Message log - append inbound and outbound turns to a conversation."""

from bizchat.channels.models import StandardizedMessage

from .models import Message
from .ports import MessagingStore


def inbound_content(message: StandardizedMessage) -> tuple[str, str | None]:
    """Text stored for an inbound message, plus its media URL.

    Non-text messages get a synthesized description so the conversation log
    always has something readable.
    """
    if message.type == "text":
        return message.text.body, None

    if message.type == "image":
        return message.image.caption or "Image received", message.image.url

    if message.type == "document":
        doc = message.document
        return doc.caption or doc.filename or "Document received", doc.url

    if message.type == "location":
        loc = message.location
        return loc.name or f"Location: {loc.latitude}, {loc.longitude}", None

    if message.type == "button":
        return f"Button clicked: {message.button.text}", None

    return f"Template: {message.template.name}", None


def append_inbound(
    store: MessagingStore,
    conversation_id: str,
    message: StandardizedMessage,
) -> Message | None:
    """Store a customer message.

    Returns:
        The stored row, or None if this provider message id was already
        stored (redelivery).
    """
    content, media_url = inbound_content(message)
    return store.append_message(
        conversation_id=conversation_id,
        sender_type="customer",
        message_type=message.type,
        content=content,
        channel_type=message.channel,
        media_url=media_url,
        provider_message_id=message.id,
        delivery_status="read",
    )


def append_outbound(
    store: MessagingStore,
    conversation_id: str,
    *,
    channel: str,
    content: str,
    provider_message_id: str | None = None,
    message_type: str = "text",
    media_url: str | None = None,
) -> Message | None:
    """Store a reply the business sent."""
    return store.append_message(
        conversation_id=conversation_id,
        sender_type="business",
        message_type=message_type,
        content=content,
        channel_type=channel,
        media_url=media_url,
        provider_message_id=provider_message_id,
        delivery_status="sent",
    )
