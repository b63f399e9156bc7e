"""Messages repository - append-only conversation log.

Uses raw SQL with psycopg2 (no ORM). Inbound idempotency relies on the
unique index on (channel_type, provider_message_id) over customer
messages; outbound provider ids are stored but not deduplicated.
"""

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from bizchat.domain.models import Message

_COLUMNS = """
    id, conversation_id, sender_type, message_type, content, channel_type,
    media_url, provider_message_id, delivery_status, created_at
"""


def _row_to_message(row: tuple[Any, ...]) -> Message:
    return Message(
        id=str(row[0]),
        conversation_id=str(row[1]),
        sender_type=row[2],
        message_type=row[3],
        content=row[4],
        channel_type=row[5],
        media_url=row[6],
        provider_message_id=row[7],
        delivery_status=row[8],
        created_at=row[9],
    )


def insert_message(
    cur: PgCursor,
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
    """Insert a message.

    Returns:
        The stored message, or None if a message with the same
        (channel_type, provider_message_id) already exists.
    """
    cur.execute(
        f"""
        INSERT INTO messages (
            conversation_id, sender_type, message_type, content, channel_type,
            media_url, provider_message_id, delivery_status
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (channel_type, provider_message_id) WHERE sender_type = 'customer'
        DO NOTHING
        RETURNING {_COLUMNS}
        """,
        (
            conversation_id,
            sender_type,
            message_type,
            content,
            channel_type,
            media_url,
            provider_message_id,
            delivery_status,
        ),
    )
    row = cur.fetchone()
    return _row_to_message(row) if row else None
