"""Initial messaging schema (SQL-only).

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "001_initial.sql"


def upgrade() -> None:
    # exec_driver_sql runs the multi-statement file in one round trip
    op.get_bind().exec_driver_sql(SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    op.execute(
        """
        DROP TABLE IF EXISTS audit_logs;
        DROP TABLE IF EXISTS message_templates;
        DROP TABLE IF EXISTS invoices;
        DROP TABLE IF EXISTS transactions;
        DROP TABLE IF EXISTS messages;
        DROP TABLE IF EXISTS conversations;
        DROP TABLE IF EXISTS businesses;
        """
    )
