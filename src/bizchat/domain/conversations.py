"""Conversation resolution - one active thread per (business, customer, channel).

Concurrent first-contact messages race on insert; the unique active index
picks the winner and every loser re-fetches the winner's row.
"""

from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import hash_identifier

from .models import Conversation
from .ports import MessagingStore

logger = get_logger(__name__)

# Re-fetch attempts after losing an insert race. The winner's row is
# committed before our insert returns, so one retry is normally enough.
MAX_RESOLVE_ATTEMPTS = 3


class ConversationConflictError(Exception):
    """Raised when neither insert nor re-fetch yields an active conversation."""


def find_or_create_conversation(
    store: MessagingStore,
    business_id: str,
    customer_phone: str,
    channel: str,
) -> Conversation:
    """Return the active conversation for the tuple, creating it if needed.

    An existing conversation has its last-activity timestamp bumped.

    Raises:
        ConversationConflictError: The active row kept disappearing between
            insert conflict and re-fetch (e.g. closed concurrently).
    """
    for _ in range(MAX_RESOLVE_ATTEMPTS):
        existing = store.find_active_conversation(business_id, customer_phone, channel)
        if existing is not None:
            store.touch_conversation(existing.id)
            return existing

        created = store.insert_active_conversation(business_id, customer_phone, channel)
        if created is not None:
            logger.info(
                "conversation created",
                extra={
                    "extra_fields": {
                        "conversation_id": created.id,
                        "business_id": business_id,
                        "channel": channel,
                        "contact_hash": hash_identifier(customer_phone),
                    }
                },
            )
            return created
        # Lost the race: loop and read the winner's row

    raise ConversationConflictError(
        f"could not resolve active conversation for business {business_id} on {channel}"
    )
