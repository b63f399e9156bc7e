"""Businesses repository - read-only lookups used by message processing.

Uses raw SQL with psycopg2 (no ORM).
"""

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from bizchat.domain.models import Business

_COLUMNS = "id, name, upi_id, phone, whatsapp_phone_number_id, gstin, country"


def _row_to_business(row: tuple[Any, ...]) -> Business:
    return Business(
        id=str(row[0]),
        name=row[1],
        upi_id=row[2],
        phone=row[3],
        whatsapp_phone_number_id=row[4],
        gstin=row[5],
        country=row[6],
    )


def get_business(cur: PgCursor, *, business_id: str) -> Business | None:
    cur.execute(f"SELECT {_COLUMNS} FROM businesses WHERE id = %s", (business_id,))
    row = cur.fetchone()
    return _row_to_business(row) if row else None


def find_business_by_recipient(cur: PgCursor, *, recipient: str) -> Business | None:
    """Resolve the business a customer wrote to.

    `recipient` is a Meta phone_number_id or the business's own number
    (canonical, no "+").
    """
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM businesses
        WHERE whatsapp_phone_number_id = %s OR phone = %s
        ORDER BY (whatsapp_phone_number_id = %s) DESC
        LIMIT 1
        """,
        (recipient, recipient, recipient),
    )
    row = cur.fetchone()
    return _row_to_business(row) if row else None
