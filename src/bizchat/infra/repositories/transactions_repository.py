"""Transactions repository - payment attempts and their status.

Uses raw SQL with psycopg2 (no ORM). Status updates are compare-and-swap
on the current status so concurrent callbacks cannot both win.
"""

import json
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from bizchat.domain.models import PaymentTransaction

_COLUMNS = """
    id, business_id, customer_phone, amount_cents, currency, payment_method,
    reference_id, status, conversation_id, notes, provider_txn_id, metadata
"""


def _row_to_transaction(row: tuple[Any, ...]) -> PaymentTransaction:
    return PaymentTransaction(
        id=str(row[0]),
        business_id=str(row[1]),
        customer_phone=row[2],
        amount_cents=row[3],
        currency=row[4],
        payment_method=row[5],
        reference_id=row[6],
        status=row[7],
        conversation_id=str(row[8]) if row[8] else None,
        notes=row[9],
        provider_txn_id=row[10],
        metadata=row[11],
    )


def insert_transaction(
    cur: PgCursor,
    *,
    business_id: str,
    customer_phone: str,
    amount_cents: int,
    currency: str,
    payment_method: str,
    reference_id: str,
    conversation_id: str | None = None,
    notes: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> PaymentTransaction:
    """Insert a pending transaction."""
    cur.execute(
        f"""
        INSERT INTO transactions (
            business_id, conversation_id, customer_phone, amount_cents, currency,
            payment_method, reference_id, status, notes, metadata
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, 'pending', %s, %s::jsonb)
        RETURNING {_COLUMNS}
        """,
        (
            business_id,
            conversation_id,
            customer_phone,
            amount_cents,
            currency,
            payment_method,
            reference_id,
            notes,
            json.dumps(metadata or {}),
        ),
    )
    return _row_to_transaction(cur.fetchone())


def get_transaction(cur: PgCursor, *, transaction_id: str) -> PaymentTransaction | None:
    cur.execute(f"SELECT {_COLUMNS} FROM transactions WHERE id = %s", (transaction_id,))
    row = cur.fetchone()
    return _row_to_transaction(row) if row else None


def get_transaction_by_reference(
    cur: PgCursor,
    *,
    reference_id: str,
) -> PaymentTransaction | None:
    cur.execute(
        f"SELECT {_COLUMNS} FROM transactions WHERE reference_id = %s",
        (reference_id,),
    )
    row = cur.fetchone()
    return _row_to_transaction(row) if row else None


def compare_and_set_status(
    cur: PgCursor,
    *,
    transaction_id: str,
    expected_status: str,
    new_status: str,
    provider_txn_id: str | None = None,
) -> PaymentTransaction | None:
    """Move status only if it still equals expected_status.

    Returns:
        Updated transaction, or None if the status changed underneath us.
    """
    cur.execute(
        f"""
        UPDATE transactions
        SET status = %s,
            provider_txn_id = COALESCE(%s, provider_txn_id),
            updated_at = now()
        WHERE id = %s AND status = %s
        RETURNING {_COLUMNS}
        """,
        (new_status, provider_txn_id, transaction_id, expected_status),
    )
    row = cur.fetchone()
    return _row_to_transaction(row) if row else None
