"""Invoices repository - one GST invoice per completed transaction.

Uses raw SQL with psycopg2 (no ORM). invoices.transaction_id is unique, so
a second insert for the same transaction is a no-op.
"""

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from bizchat.domain.models import Invoice

_COLUMNS = """
    id, invoice_number, business_id, transaction_id, customer_name, customer_phone,
    amount_cents, tax_cents, total_cents, invoice_date, status, place_of_supply
"""


def _row_to_invoice(row: tuple[Any, ...]) -> Invoice:
    return Invoice(
        id=str(row[0]),
        invoice_number=row[1],
        business_id=str(row[2]),
        transaction_id=str(row[3]),
        customer_name=row[4],
        customer_phone=row[5],
        amount_cents=row[6],
        tax_cents=row[7],
        total_cents=row[8],
        invoice_date=str(row[9]),
        status=row[10],
        place_of_supply=row[11],
    )


def next_invoice_sequence(cur: PgCursor, *, business_id: str, invoice_date: str) -> int:
    """Next per-business, per-day sequence number.

    Takes a transaction-scoped advisory lock so two invoices issued the same
    day cannot draw the same number.
    """
    cur.execute(
        "SELECT pg_advisory_xact_lock(hashtext(%s))",
        (f"invoice:{business_id}:{invoice_date}",),
    )
    cur.execute(
        """
        SELECT COUNT(*) FROM invoices
        WHERE business_id = %s AND invoice_date = %s
        """,
        (business_id, invoice_date),
    )
    return int(cur.fetchone()[0]) + 1


def insert_invoice(
    cur: PgCursor,
    *,
    invoice_number: str,
    business_id: str,
    transaction_id: str,
    customer_name: str,
    customer_phone: str,
    amount_cents: int,
    tax_cents: int,
    total_cents: int,
    invoice_date: str,
    place_of_supply: str = "India",
) -> Invoice | None:
    """Insert an issued invoice. Returns None if the transaction already has one."""
    cur.execute(
        f"""
        INSERT INTO invoices (
            invoice_number, business_id, transaction_id, customer_name, customer_phone,
            amount_cents, tax_cents, total_cents, invoice_date, status, place_of_supply
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, 'issued', %s)
        ON CONFLICT (transaction_id) DO NOTHING
        RETURNING {_COLUMNS}
        """,
        (
            invoice_number,
            business_id,
            transaction_id,
            customer_name,
            customer_phone,
            amount_cents,
            tax_cents,
            total_cents,
            invoice_date,
            place_of_supply,
        ),
    )
    row = cur.fetchone()
    return _row_to_invoice(row) if row else None
