"""Tests for database layer."""

import os
import uuid
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from bizchat.infra.db import get_conn, txn
from bizchat.infra.pg_store import PgMessagingStore


class TestGetConn:
    """Tests for get_conn() - no real DB needed."""

    def test_connects_with_database_url(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "dbname=db user=u host=h")
        with patch("bizchat.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
        mock_connect.assert_called_once_with("dbname=db user=u host=h")

    def test_raises_without_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            get_conn()


class TestTxnWithMockConnection:
    def test_commits_on_success(self):
        conn = MagicMock()

        with txn(conn) as cur:
            cur.execute("SELECT 1")

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        conn.close.assert_not_called()

    def test_rollback_on_exception(self):
        conn = MagicMock()

        with pytest.raises(ValueError):
            with txn(conn):
                raise ValueError("rollback test")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_owned_connection_closed(self, monkeypatch):
        conn = MagicMock()
        monkeypatch.setattr("bizchat.infra.db.get_conn", lambda: conn)

        with txn():
            pass

        conn.close.assert_called_once()


# Skip integration tests if DATABASE_URL is not set
_skip_no_db = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB integration tests",
)


@_skip_no_db
class TestTxn:
    """Tests for txn() against a real database."""

    def test_commits_on_success(self):
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("CREATE TEMP TABLE test_txn (id serial, val text)")
            conn.commit()

            with txn(conn) as cur:
                cur.execute("INSERT INTO test_txn (val) VALUES (%s)", ("test",))

            with conn.cursor() as cur:
                cur.execute("SELECT val FROM test_txn")
                assert cur.fetchone()[0] == "test"
        finally:
            conn.close()

    def test_rollback_on_exception(self):
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("CREATE TEMP TABLE test_rollback (id serial, val text)")
            conn.commit()

            with pytest.raises(ValueError):
                with txn(conn) as cur:
                    cur.execute("INSERT INTO test_rollback (val) VALUES (%s)", ("bad",))
                    raise ValueError("rollback test")

            with conn.cursor() as cur:
                cur.execute("SELECT count(*) FROM test_rollback")
                assert cur.fetchone()[0] == 0
        finally:
            conn.close()


@_skip_no_db
class TestPgMessagingStore:
    """Requires the schema from `alembic upgrade head`."""

    @pytest.fixture
    def pg_store(self):
        return PgMessagingStore()

    @pytest.fixture
    def business_id(self):
        with txn() as cur:
            cur.execute(
                "INSERT INTO businesses (name, upi_id, phone, country) VALUES (%s, %s, %s, %s) RETURNING id",
                ("Test Store", "test@okaxis", f"91{uuid.uuid4().int % 10**10:010d}", "IN"),
            )
            business_id = str(cur.fetchone()[0])
        yield business_id
        with txn() as cur:
            cur.execute("DELETE FROM businesses WHERE id = %s", (business_id,))

    def test_single_active_conversation(self, pg_store, business_id):
        first = pg_store.insert_active_conversation(business_id, "919876543210", "sms")
        second = pg_store.insert_active_conversation(business_id, "919876543210", "sms")

        assert first is not None
        assert second is None
        found = pg_store.find_active_conversation(business_id, "919876543210", "sms")
        assert found.id == first.id

    def test_inbound_message_stored_once(self, pg_store, business_id):
        conversation = pg_store.insert_active_conversation(business_id, "919876543210", "whatsapp")
        provider_id = f"wamid.{uuid.uuid4().hex}"
        kwargs = dict(
            conversation_id=conversation.id,
            sender_type="customer",
            message_type="text",
            content="x" * 150,
            channel_type="whatsapp",
            provider_message_id=provider_id,
        )

        assert pg_store.append_message(**kwargs) is not None
        assert pg_store.append_message(**kwargs) is None
        assert pg_store.get_conversation(conversation.id).last_message_preview == "x" * 100

    def test_invoice_issued_once(self, pg_store, business_id):
        transaction = pg_store.create_transaction(
            business_id=business_id,
            customer_phone="919876543210",
            amount_cents=49900,
            currency="INR",
            payment_method="upi",
            reference_id=f"ref-{uuid.uuid4().hex}",
        )
        completed = pg_store.compare_and_set_transaction_status(transaction.id, "pending", "completed")
        assert completed.status == "completed"
        assert pg_store.compare_and_set_transaction_status(transaction.id, "pending", "completed") is None

        today = date.today()
        invoice = pg_store.issue_invoice(
            transaction=completed, customer_name="Customer", tax_cents=8982, invoice_date=today
        )
        again = pg_store.issue_invoice(
            transaction=completed, customer_name="Customer", tax_cents=8982, invoice_date=today
        )

        assert invoice.total_cents == 58882
        assert invoice.invoice_number.startswith(f"INV-{today.strftime('%Y%m%d')}-")
        assert again is None
