"""Tests for SMS payload detection, MSG91/SNS normalization and sending."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from bizchat.channels.base import InvalidPayloadError
from bizchat.channels.phone import canonical_phone, to_e164, to_twilio_whatsapp
from bizchat.channels.sms import SMS_MAX_LENGTH, Msg91SmsChannel, normalize, truncate_sms
from bizchat.channels.templates import render_template
from bizchat.channels.webhook_payloads import (
    Msg91Payload,
    SnsPayload,
    TwilioPayload,
    WhatsAppPayload,
    detect_payload,
)
from fakes import LogRecorder

SNS_BODY = {
    "Type": "Notification",
    "MessageId": "sns-envelope-1",
    "Message": json.dumps(
        {
            "originationNumber": "+919876543210",
            "destinationNumber": "+918000000000",
            "messageBody": "2",
            "inboundMessageId": "sns-msg-1",
        }
    ),
}


class TestPhone:
    @pytest.mark.parametrize(
        "raw",
        ["919876543210", "+919876543210", "whatsapp:+919876543210", "+91 98765-43210", "(91) 98765 43210"],
    )
    def test_canonical(self, raw):
        assert canonical_phone(raw) == "919876543210"

    def test_decorations(self):
        assert to_e164("919876543210") == "+919876543210"
        assert to_twilio_whatsapp("+919876543210") == "whatsapp:+919876543210"


class TestDetectPayload:
    def test_meta(self):
        assert isinstance(detect_payload({"object": "whatsapp_business_account", "entry": []}), WhatsAppPayload)

    def test_twilio(self):
        assert isinstance(detect_payload({"From": "+1", "MessageSid": "SM1"}), TwilioPayload)

    def test_msg91(self):
        payload = detect_payload({"sender": "919876543210", "message": "hi", "requestId": "r1"})
        assert payload == Msg91Payload(sender="919876543210", message="hi", request_id="r1")

    def test_sns(self):
        payload = detect_payload(SNS_BODY)
        assert isinstance(payload, SnsPayload)
        assert payload.message_id == "sns-msg-1"
        assert payload.origination_number == "+919876543210"

    def test_sns_by_header(self):
        body = {"Message": SNS_BODY["Message"]}
        payload = detect_payload(body, {"x-amz-sns-message-type": "Notification"})
        assert isinstance(payload, SnsPayload)

    def test_sns_bad_json(self):
        with pytest.raises(InvalidPayloadError):
            detect_payload({"Type": "Notification", "Message": "{not json"})

    @pytest.mark.parametrize("body", [{"hello": "world"}, [], "text", None])
    def test_unrecognized(self, body):
        with pytest.raises(InvalidPayloadError):
            detect_payload(body)


class TestNormalize:
    def test_msg91(self):
        msg = normalize(
            Msg91Payload(sender="+91 9876543210", message="pay", datetime="2026-01-02 10:00:00", request_id="r1")
        )
        assert msg.id == "r1"
        assert msg.sender == "919876543210"
        assert msg.channel == "sms"
        assert msg.provider == "msg91"
        assert msg.timestamp == "2026-01-02T10:00:00+00:00"

    def test_msg91_without_id_gets_one(self):
        msg = normalize(Msg91Payload(sender="919876543210", message="pay"))
        assert msg.id

    def test_sns(self):
        msg = normalize(detect_payload(SNS_BODY))
        assert msg.provider == "sns"
        assert msg.recipient == "918000000000"
        assert msg.text.body == "2"

    def test_other_payload_rejected(self):
        with pytest.raises(InvalidPayloadError):
            normalize(WhatsAppPayload(body={}))


class TestTruncate:
    def test_short_unchanged(self):
        assert truncate_sms("hi") == "hi"

    def test_long_clipped(self):
        clipped = truncate_sms("x" * 200)
        assert len(clipped) == SMS_MAX_LENGTH
        assert clipped.endswith("...")


class TestTemplates:
    def test_render(self):
        assert render_template("Hi {{ name }}", {"name": "Asha"}) == "Hi Asha"

    def test_unknown_placeholder_kept(self):
        assert render_template("Hi {{name}}", {}) == "Hi {{name}}"


class TestMsg91Send:
    PHONE = "919876543210"
    TEXT = "dummy_text"

    def _channel(self, response_json=None, error=None):
        session = MagicMock()
        if error is not None:
            session.post.side_effect = error
        else:
            session.post.return_value.json.return_value = response_json
        channel = Msg91SmsChannel(api_key="key", sender_id="BIZCHT", flow_id="flow-1", session=session)
        return channel, session

    def test_success(self):
        channel, session = self._channel({"type": "success", "message": "req-123"})

        result = channel.send_text_message(f"+{self.PHONE}", self.TEXT)

        assert result.success is True
        assert result.message_id == "req-123"
        body = session.post.call_args.kwargs["json"]
        assert body == {"flow_id": "flow-1", "sender": "BIZCHT", "mobiles": self.PHONE, "VAR1": self.TEXT}
        assert session.post.call_args.kwargs["headers"]["authkey"] == "key"

    def test_long_text_truncated(self):
        channel, session = self._channel({"type": "success", "message": "req-1"})

        channel.send_text_message(self.PHONE, "y" * 400)

        assert len(session.post.call_args.kwargs["json"]["VAR1"]) == SMS_MAX_LENGTH

    def test_rejected(self):
        channel, _ = self._channel({"type": "error", "message": "Invalid mobile"})
        result = channel.send_text_message(self.PHONE, self.TEXT)
        assert result.success is False
        assert result.error == "Invalid mobile"

    def test_network_error(self):
        channel, _ = self._channel(error=requests.ConnectionError("down"))
        result = channel.send_text_message(self.PHONE, self.TEXT)
        assert result.success is False

    def test_template_lookup_failure_not_raised(self):
        store = MagicMock()
        store.get_content.side_effect = RuntimeError("DATABASE_URL environment variable not set")
        session = MagicMock()
        channel = Msg91SmsChannel(api_key="key", template_store=store, session=session)

        result = channel.send_template_message(self.PHONE, "shipped", {"order": "42"})

        assert result.success is False
        assert result.error == "template lookup failed: RuntimeError"
        session.post.assert_not_called()

    def test_template_rendered(self):
        store = MagicMock()
        store.get_content.return_value = "Order {{order}} shipped"
        channel, session = self._channel({"type": "success", "message": "req-1"})
        channel._template_store = store

        assert channel.send_template_message(self.PHONE, "shipped", {"order": "42"}).success is True
        assert session.post.call_args.kwargs["json"]["VAR1"] == "Order 42 shipped"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("MSG91_API_KEY", raising=False)
        channel = Msg91SmsChannel(session=MagicMock())
        assert channel.send_text_message(self.PHONE, self.TEXT).success is False

    def test_balance_check_failure_blocks_sends(self):
        session = MagicMock()
        session.get.return_value.json.return_value = {"status": "error"}
        channel = Msg91SmsChannel(api_key="key", session=session, verify_balance=True)

        assert channel.send_text_message(self.PHONE, self.TEXT).success is False
        session.post.assert_not_called()

    def test_no_media_support(self):
        channel, _ = self._channel({"type": "success"})
        assert channel.supports_media is False
        assert channel.send_media(self.PHONE, "image", "https://x").success is False

    def test_logs_no_pii(self, monkeypatch):
        import bizchat.channels.sms as sms_module

        recorder = LogRecorder()
        monkeypatch.setattr(sms_module, "logger", recorder)
        channel, _ = self._channel({"type": "success", "message": "req-1"})

        channel.send_text_message(self.PHONE, self.TEXT)

        logged = recorder.get_all_logged_content()
        assert self.PHONE not in logged
        assert self.TEXT not in logged
        assert recorder.has_extra_field("to_hash")
