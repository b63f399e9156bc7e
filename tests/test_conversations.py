"""Tests for conversation resolution and the message log."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from bizchat.channels.models import DocumentContent, LocationContent, StandardizedMessage
from bizchat.domain.conversations import (
    MAX_RESOLVE_ATTEMPTS,
    ConversationConflictError,
    find_or_create_conversation,
)
from bizchat.domain.messages import append_inbound, append_outbound, inbound_content
from fakes import BUSINESS_ID, CUSTOMER_PHONE, FakeStore, text_message


class TestFindOrCreate:
    def test_creates_then_reuses(self, store):
        first = find_or_create_conversation(store, BUSINESS_ID, CUSTOMER_PHONE, "whatsapp")
        second = find_or_create_conversation(store, BUSINESS_ID, CUSTOMER_PHONE, "whatsapp")

        assert first.id == second.id
        assert len(store.active_conversations()) == 1

    def test_channel_is_part_of_identity(self, store):
        whatsapp = find_or_create_conversation(store, BUSINESS_ID, CUSTOMER_PHONE, "whatsapp")
        sms = find_or_create_conversation(store, BUSINESS_ID, CUSTOMER_PHONE, "sms")

        assert whatsapp.id != sms.id

    def test_reuse_bumps_last_activity(self, store):
        created = find_or_create_conversation(store, BUSINESS_ID, CUSTOMER_PHONE, "sms")
        find_or_create_conversation(store, BUSINESS_ID, CUSTOMER_PHONE, "sms")

        assert store.get_conversation(created.id).last_message_at >= created.last_message_at

    def test_concurrent_first_contact_yields_one_conversation(self):
        """N threads racing on first contact all get the same conversation."""
        store = FakeStore()
        barrier = threading.Barrier(8)
        results: list[str] = []
        errors: list[Exception] = []

        def worker():
            barrier.wait()
            try:
                conversation = find_or_create_conversation(
                    store, BUSINESS_ID, CUSTOMER_PHONE, "whatsapp"
                )
                results.append(conversation.id)
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(results) == 8
        assert len(set(results)) == 1
        assert len(store.active_conversations()) == 1

    def test_lost_race_refetches_winner(self):
        winner = MagicMock(id="conv-winner")
        store = MagicMock()
        store.find_active_conversation.side_effect = [None, winner]
        store.insert_active_conversation.return_value = None

        result = find_or_create_conversation(store, BUSINESS_ID, CUSTOMER_PHONE, "sms")

        assert result is winner
        store.touch_conversation.assert_called_once_with("conv-winner")

    def test_gives_up_after_max_attempts(self):
        store = MagicMock()
        store.find_active_conversation.return_value = None
        store.insert_active_conversation.return_value = None

        with pytest.raises(ConversationConflictError):
            find_or_create_conversation(store, BUSINESS_ID, CUSTOMER_PHONE, "sms")

        assert store.insert_active_conversation.call_count == MAX_RESOLVE_ATTEMPTS


class TestMessageLog:
    def _conversation(self, store):
        return find_or_create_conversation(store, BUSINESS_ID, CUSTOMER_PHONE, "whatsapp")

    def test_inbound_is_idempotent_per_provider_id(self, store):
        conversation = self._conversation(store)

        first = append_inbound(store, conversation.id, text_message("hi"))
        second = append_inbound(store, conversation.id, text_message("hi"))

        assert first is not None
        assert second is None
        assert len(store.messages) == 1

    def test_outbound_without_provider_id_never_deduped(self, store):
        conversation = self._conversation(store)

        append_outbound(store, conversation.id, channel="whatsapp", content="a")
        append_outbound(store, conversation.id, channel="whatsapp", content="b")

        assert [m.content for m in store.messages] == ["a", "b"]

    def test_preview_updated(self, store):
        conversation = self._conversation(store)
        append_inbound(store, conversation.id, text_message("x" * 150))

        preview = store.get_conversation(conversation.id).last_message_preview
        assert preview == "x" * 100

    def test_document_content_uses_filename(self):
        message = StandardizedMessage(
            id="d-1",
            sender=CUSTOMER_PHONE,
            timestamp="2026-01-01T00:00:00+00:00",
            type="document",
            channel="whatsapp",
            provider="meta",
            document=DocumentContent(url="https://x/doc.pdf", filename="invoice.pdf"),
        )
        assert inbound_content(message) == ("invoice.pdf", "https://x/doc.pdf")

    def test_location_content_without_name(self):
        message = StandardizedMessage(
            id="l-1",
            sender=CUSTOMER_PHONE,
            timestamp="2026-01-01T00:00:00+00:00",
            type="location",
            channel="whatsapp",
            provider="meta",
            location=LocationContent(latitude=12.9, longitude=77.6),
        )
        assert inbound_content(message) == ("Location: 12.9, 77.6", None)
