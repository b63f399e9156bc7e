"""Tests for the payment transaction lifecycle and invoicing."""

from __future__ import annotations

from datetime import date

import pytest

from bizchat.domain.transactions import (
    InvalidTransitionError,
    TransactionNotFoundError,
    TransactionService,
    can_transition,
    gst_for,
)
from bizchat.infra.pg_store import format_invoice_number
from fakes import BUSINESS_ID, CUSTOMER_PHONE, FakeAudit, FakeStore


def _pending(store: FakeStore, amount_cents: int = 49900, reference_id: str = "ref-1"):
    return store.create_transaction(
        business_id=BUSINESS_ID,
        customer_phone=CUSTOMER_PHONE,
        amount_cents=amount_cents,
        currency="INR",
        payment_method="upi",
        reference_id=reference_id,
    )


@pytest.fixture
def audit():
    return FakeAudit()


@pytest.fixture
def service(store, audit):
    return TransactionService(store, audit)


class TestGst:
    def test_eighteen_percent(self):
        assert gst_for(49900) == 8982

    def test_rounds_half_up(self):
        # 25 * 0.18 = 4.5
        assert gst_for(25) == 5

    def test_invoice_number_format(self):
        assert format_invoice_number(date(2026, 3, 7), 12) == "INV-20260307-0012"


class TestTransitions:
    @pytest.mark.parametrize(
        "current,new,allowed",
        [
            ("pending", "completed", True),
            ("pending", "failed", True),
            ("completed", "refunded", True),
            ("failed", "refunded", True),
            ("completed", "pending", False),
            ("completed", "failed", False),
            ("refunded", "completed", False),
            ("pending", "refunded", False),
        ],
    )
    def test_allowed_moves(self, current, new, allowed):
        assert can_transition(current, new) is allowed

    def test_complete_issues_invoice_once(self, service, store, audit):
        transaction = _pending(store)

        first = service.transition(transaction, "completed", provider_txn_id="UPI123")
        again = service.transition(first.transaction, "completed", provider_txn_id="UPI123")

        assert first.changed is True
        assert first.invoice is not None
        assert first.invoice.tax_cents == 8982
        assert first.invoice.total_cents == 49900 + 8982
        assert first.invoice.invoice_number.startswith("INV-")
        assert first.invoice.invoice_number.endswith("-0001")
        assert again.changed is False
        assert len(store.invoices) == 1
        assert audit.actions().count("invoice_generated") == 1

    def test_stale_copy_does_not_double_invoice(self, service, store):
        """A second delivery holding the old pending row is a no-op."""
        transaction = _pending(store)

        service.transition(transaction, "completed")
        outcome = service.transition(transaction, "completed")

        assert outcome.changed is False
        assert len(store.invoices) == 1

    def test_backwards_move_rejected(self, service, store):
        transaction = _pending(store)
        completed = service.transition(transaction, "completed").transaction

        with pytest.raises(InvalidTransitionError):
            service.transition(completed, "failed")

    def test_failed_has_no_invoice(self, service, store, audit):
        outcome = service.transition(_pending(store), "failed")

        assert outcome.transaction.status == "failed"
        assert outcome.invoice is None
        assert "payment_failed" in audit.actions()

    def test_refund_after_completion(self, service, store):
        completed = service.transition(_pending(store), "completed").transaction
        refunded = service.transition(completed, "refunded")

        assert refunded.transaction.status == "refunded"
        assert len(store.invoices) == 1

    def test_invoice_sequence_per_business_per_day(self, service, store):
        first = service.transition(_pending(store, reference_id="a"), "completed").invoice
        second = service.transition(_pending(store, reference_id="b"), "completed").invoice

        assert first.invoice_number[:-4] == second.invoice_number[:-4]
        assert first.invoice_number.endswith("0001")
        assert second.invoice_number.endswith("0002")

    def test_get_by_reference_unknown(self, service):
        with pytest.raises(TransactionNotFoundError):
            service.get_by_reference("missing")
