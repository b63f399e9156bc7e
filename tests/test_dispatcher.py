"""End-to-end inbound dispatch against in-memory fakes.

Covers: business resolution, conversation + message persistence, intent
routing per channel, payment flows and the apology path.
"""

from __future__ import annotations

import pytest

from bizchat.channels.models import ButtonContent, ImageContent, StandardizedMessage
from bizchat.domain import handlers, replies
from bizchat.domain.dispatcher import BusinessNotFoundError, process_inbound, resolve_business
from fakes import (
    BUSINESS_ID,
    CUSTOMER_PHONE,
    FakeChannel,
    FakeStore,
    make_business,
    make_context,
    text_message,
)


def _sent(ctx, channel: str) -> FakeChannel:
    return ctx.channels[channel]


class TestResolveBusiness:
    def test_by_recipient(self, store):
        store.add_business(make_business())
        assert resolve_business(store, "123456789", None).id == BUSINESS_ID

    def test_by_business_phone(self, store):
        store.add_business(make_business())
        assert resolve_business(store, "918000000000", None).id == BUSINESS_ID

    def test_falls_back_to_default(self, store):
        store.add_business(make_business())
        assert resolve_business(store, "unknown", BUSINESS_ID).id == BUSINESS_ID

    def test_raises_without_match_or_default(self, store):
        store.add_business(make_business())
        with pytest.raises(BusinessNotFoundError):
            resolve_business(store, "unknown", None)


class TestPriceOnWhatsApp:
    """A WhatsApp price question gets the GST price list and is logged."""

    def test_reply_and_persistence(self, ctx, store):
        outcome = process_inbound(ctx, text_message("What's the price?"))

        assert outcome.status == "handled"
        assert outcome.intent == "price"

        texts = _sent(ctx, "whatsapp").texts()
        assert len(texts) == 1
        assert "GST" in texts[0]

        [conversation] = store.active_conversations()
        assert conversation.channel_type == "whatsapp"
        assert conversation.customer_phone == CUSTOMER_PHONE

        messages = store.messages_for(conversation.id)
        assert [m.sender_type for m in messages] == ["customer", "business"]
        assert messages[0].content == "What's the price?"
        assert messages[0].provider_message_id == "wamid.TEST1"
        assert "GST" in messages[1].content

    def test_audits_receipt_with_hashed_sender(self, ctx):
        process_inbound(ctx, text_message("price"))

        [received] = [e for e in ctx.audit.events if e["action"] == "whatsapp_message_received"]
        assert CUSTOMER_PHONE not in str(received)
        assert received["metadata"]["from_hash"]

    def test_read_receipt_sent(self, ctx):
        process_inbound(ctx, text_message("price"))
        assert _sent(ctx, "whatsapp").acknowledged == ["wamid.TEST1"]


class TestPaymentOnSms:
    def test_pending_transaction_and_link(self, ctx, store):
        outcome = process_inbound(ctx, text_message("I want to pay", channel="sms", message_id="sms-1"))

        assert outcome.status == "handled"
        assert outcome.intent == "payment"

        [transaction] = store.transactions.values()
        assert transaction.status == "pending"
        assert transaction.amount_cents == 49900
        assert transaction.payment_method == "upi"
        assert transaction.conversation_id == outcome.conversation_id
        assert outcome.result.transaction_id == transaction.id

        [text] = _sent(ctx, "sms").texts()
        assert f"https://pay.example.test/{transaction.id}" in text
        assert "₹499" in text

    def test_menu_three_is_payment(self, ctx, store):
        process_inbound(ctx, text_message("3", channel="sms", message_id="sms-3"))
        assert len(store.transactions) == 1


class TestPaymentOnWhatsApp:
    def test_qr_image_then_instructions(self, ctx, store):
        process_inbound(ctx, text_message("pay"))

        [transaction] = store.transactions.values()
        sent = _sent(ctx, "whatsapp").sent
        assert sent[0]["kind"] == "media"
        assert sent[0]["media_type"] == "image"
        assert sent[0]["url"] == f"https://api.example.test/payments/{transaction.id}/qr.png"
        assert sent[1]["kind"] == "text"
        assert "scan this QR code" in sent[1]["text"]

    def test_pay_button_amount(self, ctx, store):
        message = StandardizedMessage(
            id="wamid.BTN",
            sender=CUSTOMER_PHONE,
            timestamp="2026-01-01T00:00:00+00:00",
            type="button",
            channel="whatsapp",
            provider="meta",
            recipient="123456789",
            button=ButtonContent(payload="pay_500", text="Pay ₹500"),
        )
        process_inbound(ctx, message)

        [transaction] = store.transactions.values()
        assert transaction.amount_cents == 50000
        assert "upi://pay" in transaction.metadata["upi_url"]

    def test_media_failure_falls_back_to_upi_link(self, store):
        channels = {"whatsapp": FakeChannel("whatsapp", fail_media=True)}
        ctx = make_context(store, channels=channels)

        process_inbound(ctx, text_message("pay"))

        texts = channels["whatsapp"].texts()
        assert len(texts) == 2
        assert "upi://pay" in texts[0]
        assert "scan this QR code" in texts[1]


class TestPaymentMisconfigured:
    """No UPI id configured: apology, no link, no transaction."""

    def test_missing_upi_id(self, store):
        ctx = make_context(store, business=make_business(upi_id=None))

        outcome = process_inbound(ctx, text_message("pay", channel="sms", message_id="sms-9"))

        assert outcome.status == "handled"
        assert outcome.result.success is False
        assert store.transactions == {}
        texts = ctx.channels["sms"].texts()
        assert texts == [replies.PAYMENT_APOLOGY]
        assert "https://" not in texts[0]


class TestNumericMenuPerChannel:
    def test_two_on_sms_is_price(self, ctx):
        outcome = process_inbound(ctx, text_message("2", channel="sms", message_id="sms-2"))
        assert outcome.intent == "price"
        assert "GST" in _sent(ctx, "sms").texts()[0]

    def test_two_on_whatsapp_is_default(self, ctx):
        outcome = process_inbound(ctx, text_message("2"))
        assert outcome.intent == "default"
        assert _sent(ctx, "whatsapp").texts() == [replies.default_reply("whatsapp")]

    def test_out_of_range_on_sms(self, ctx):
        outcome = process_inbound(ctx, text_message("9", channel="sms", message_id="sms-4"))
        assert outcome.intent == "invalid_menu"
        assert _sent(ctx, "sms").texts() == [replies.invalid_menu_reply()]


class TestPriority:
    def test_pay_and_order_is_payment(self, ctx, store):
        outcome = process_inbound(ctx, text_message("I want to pay for my order"))
        assert outcome.intent == "payment"
        assert len(store.transactions) == 1


class TestDuplicates:
    def test_redelivery_is_processed_once(self, ctx, store):
        first = process_inbound(ctx, text_message("price"))
        second = process_inbound(ctx, text_message("price"))

        assert first.status == "handled"
        assert second.status == "duplicate"
        assert second.conversation_id == first.conversation_id
        assert len(_sent(ctx, "whatsapp").texts()) == 1
        customer = [m for m in store.messages if m.sender_type == "customer"]
        assert len(customer) == 1

    def test_same_id_on_other_channel_is_not_duplicate(self, ctx):
        process_inbound(ctx, text_message("price", message_id="same"))
        outcome = process_inbound(ctx, text_message("price", channel="sms", message_id="same"))
        assert outcome.status == "handled"


class TestFailures:
    def test_handler_exception_sends_apology(self, ctx, monkeypatch):
        def boom(ctx, turn):
            raise RuntimeError("catalog unavailable")

        monkeypatch.setitem(handlers.HANDLERS, "price", boom)

        outcome = process_inbound(ctx, text_message("price"))

        assert outcome.status == "failed"
        assert outcome.error == "RuntimeError"
        assert _sent(ctx, "whatsapp").texts() == [replies.GENERIC_APOLOGY]
        assert "message_processing_error" in ctx.audit.actions()

    def test_unknown_business_apologizes(self, store):
        ctx = make_context(store)
        message = text_message("price", recipient="nobody")

        outcome = process_inbound(ctx, message)

        assert outcome.status == "failed"
        assert outcome.error == "BusinessNotFoundError"
        assert ctx.channels["whatsapp"].texts() == [replies.GENERIC_APOLOGY]
        assert store.active_conversations() == []

    def test_default_business_used(self):
        store = FakeStore()
        ctx = make_context(store, default_business_id=BUSINESS_ID)
        outcome = process_inbound(ctx, text_message("price", recipient="nobody"))
        assert outcome.status == "handled"

    def test_send_failure_is_not_persisted(self, store):
        channels = {"whatsapp": FakeChannel("whatsapp", fail_text=True)}
        ctx = make_context(store, channels=channels)

        outcome = process_inbound(ctx, text_message("price"))

        assert outcome.status == "handled"
        assert outcome.result.success is False
        assert [m.sender_type for m in store.messages] == ["customer"]
        assert "whatsapp_send_failed" in ctx.audit.actions()


class TestOtherTypes:
    def test_image_acknowledged(self, ctx, store):
        message = StandardizedMessage(
            id="wamid.IMG",
            sender=CUSTOMER_PHONE,
            timestamp="2026-01-01T00:00:00+00:00",
            type="image",
            channel="whatsapp",
            provider="meta",
            recipient="123456789",
            image=ImageContent(url="https://media.example.test/1.jpg"),
        )
        outcome = process_inbound(ctx, message)

        assert outcome.intent == "image"
        assert _sent(ctx, "whatsapp").texts() == [replies.ack_reply("image", "whatsapp")]
        inbound = store.messages[0]
        assert inbound.content == "Image received"
        assert inbound.media_url == "https://media.example.test/1.jpg"


class TestAiDefault:
    def test_ai_reply_used_on_whatsapp(self, store):
        class StubAi:
            def reply(self, business, conversation_id, text):
                return "Hi! We have great deals today."

        ctx = make_context(store, ai=StubAi())
        process_inbound(ctx, text_message("hello"))
        assert ctx.channels["whatsapp"].texts() == ["Hi! We have great deals today."]

    def test_ai_not_used_on_sms(self, store):
        class StubAi:
            def reply(self, business, conversation_id, text):
                raise AssertionError("not expected on sms")

        ctx = make_context(store, ai=StubAi())
        process_inbound(ctx, text_message("hello", channel="sms", message_id="sms-ai"))
        assert ctx.channels["sms"].texts() == [replies.default_reply("sms")]

    def test_ai_none_falls_back(self, store):
        class StubAi:
            def reply(self, business, conversation_id, text):
                return None

        ctx = make_context(store, ai=StubAi())
        process_inbound(ctx, text_message("hello"))
        assert ctx.channels["whatsapp"].texts() == [replies.default_reply("whatsapp")]
