"""Conversations repository - one active thread per (business, customer, channel).

Uses raw SQL with psycopg2 (no ORM). Uniqueness of the active conversation
is enforced by the partial unique index uq_conversations_active.
"""

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from bizchat.domain.models import Conversation

_COLUMNS = """
    id, business_id, customer_phone, channel_type, status,
    customer_name, last_message_at, last_message_preview
"""


def _row_to_conversation(row: tuple[Any, ...]) -> Conversation:
    return Conversation(
        id=str(row[0]),
        business_id=str(row[1]),
        customer_phone=row[2],
        channel_type=row[3],
        status=row[4],
        customer_name=row[5],
        last_message_at=row[6],
        last_message_preview=row[7],
    )


def find_active_conversation(
    cur: PgCursor,
    *,
    business_id: str,
    customer_phone: str,
    channel_type: str,
) -> Conversation | None:
    """Most recent active conversation for the tuple, or None."""
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM conversations
        WHERE business_id = %s AND customer_phone = %s
          AND channel_type = %s AND status = 'active'
        ORDER BY last_message_at DESC NULLS LAST
        LIMIT 1
        """,
        (business_id, customer_phone, channel_type),
    )
    row = cur.fetchone()
    return _row_to_conversation(row) if row else None


def insert_active_conversation(
    cur: PgCursor,
    *,
    business_id: str,
    customer_phone: str,
    channel_type: str,
) -> Conversation | None:
    """Insert an active conversation.

    Returns:
        The new conversation, or None if another writer already holds the
        active slot for this tuple (caller re-fetches).
    """
    cur.execute(
        f"""
        INSERT INTO conversations (business_id, customer_phone, channel_type, status, last_message_at)
        VALUES (%s, %s, %s, 'active', now())
        ON CONFLICT (business_id, customer_phone, channel_type) WHERE status = 'active'
        DO NOTHING
        RETURNING {_COLUMNS}
        """,
        (business_id, customer_phone, channel_type),
    )
    row = cur.fetchone()
    return _row_to_conversation(row) if row else None


def touch_conversation(cur: PgCursor, *, conversation_id: str) -> None:
    """Bump last-activity to now."""
    cur.execute(
        """
        UPDATE conversations
        SET last_message_at = now(), updated_at = now()
        WHERE id = %s
        """,
        (conversation_id,),
    )


def update_last_message(
    cur: PgCursor,
    *,
    conversation_id: str,
    preview: str,
) -> None:
    """Denormalized preview for the dashboard inbox."""
    cur.execute(
        """
        UPDATE conversations
        SET last_message_at = now(), last_message_preview = %s, updated_at = now()
        WHERE id = %s
        """,
        (preview, conversation_id),
    )


def get_conversation(cur: PgCursor, *, conversation_id: str) -> Conversation | None:
    cur.execute(
        f"SELECT {_COLUMNS} FROM conversations WHERE id = %s",
        (conversation_id,),
    )
    row = cur.fetchone()
    return _row_to_conversation(row) if row else None


def find_latest_active_for_contact(
    cur: PgCursor,
    *,
    customer_phone: str,
    channel_type: str,
    business_id: str | None = None,
) -> Conversation | None:
    """Latest active conversation for a contact on a channel (any business
    unless business_id is given)."""
    if business_id:
        return find_active_conversation(
            cur,
            business_id=business_id,
            customer_phone=customer_phone,
            channel_type=channel_type,
        )
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM conversations
        WHERE customer_phone = %s AND channel_type = %s AND status = 'active'
        ORDER BY last_message_at DESC NULLS LAST
        LIMIT 1
        """,
        (customer_phone, channel_type),
    )
    row = cur.fetchone()
    return _row_to_conversation(row) if row else None
