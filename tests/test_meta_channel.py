"""Tests for the Meta WhatsApp Cloud API channel."""

import copy
import hashlib
import hmac
import http.client
import json
import urllib.error
from unittest.mock import patch

import pytest

from bizchat.channels.base import InvalidPayloadError
from bizchat.channels.meta import (
    MetaWhatsAppChannel,
    SignatureVerificationError,
    normalize,
    normalize_all,
    verify_signature,
)
from fakes import LogRecorder

VALID_PAYLOAD = {
    "object": "whatsapp_business_account",
    "entry": [
        {
            "id": "WHATSAPP_BUSINESS_ACCOUNT_ID",
            "changes": [
                {
                    "value": {
                        "messaging_product": "whatsapp",
                        "metadata": {
                            "display_phone_number": "918000000000",
                            "phone_number_id": "123456789",
                        },
                        "contacts": [{"profile": {"name": "Test User"}, "wa_id": "919876543210"}],
                        "messages": [
                            {
                                "from": "919876543210",
                                "id": "wamid.META123456789",
                                "timestamp": "1704067200",
                                "type": "text",
                                "text": {"body": "What is the price?"},
                            }
                        ],
                    },
                    "field": "messages",
                }
            ],
        }
    ],
}


def _with_message(message: dict) -> dict:
    payload = copy.deepcopy(VALID_PAYLOAD)
    payload["entry"][0]["changes"][0]["value"]["messages"] = [message]
    return payload


class TestNormalize:
    """Tests for normalize()."""

    def test_text_message(self):
        msg = normalize(VALID_PAYLOAD)

        assert msg.id == "wamid.META123456789"
        assert msg.type == "text"
        assert msg.channel == "whatsapp"
        assert msg.provider == "meta"
        assert msg.sender == "919876543210"
        assert msg.recipient == "123456789"
        assert msg.text.body == "What is the price?"
        assert msg.timestamp == "2024-01-01T00:00:00+00:00"

    def test_image_keeps_media_reference(self):
        msg = normalize(
            _with_message(
                {"from": "919876543210", "id": "wamid.IMG", "type": "image",
                 "image": {"id": "MEDIA1", "caption": "my receipt"}}
            )
        )
        assert msg.type == "image"
        assert msg.image.url == "meta-media:MEDIA1"
        assert msg.image.caption == "my receipt"

    def test_location(self):
        msg = normalize(
            _with_message(
                {"from": "919876543210", "id": "wamid.LOC", "type": "location",
                 "location": {"latitude": "12.97", "longitude": 77.59, "name": "Office"}}
            )
        )
        assert msg.location.latitude == 12.97
        assert msg.location.name == "Office"

    def test_button(self):
        msg = normalize(
            _with_message(
                {"from": "919876543210", "id": "wamid.BTN", "type": "button",
                 "button": {"payload": "pay_500", "text": "Pay now"}}
            )
        )
        assert msg.type == "button"
        assert msg.button.payload == "pay_500"

    def test_interactive_reply_is_button(self):
        msg = normalize(
            _with_message(
                {"from": "919876543210", "id": "wamid.INT", "type": "interactive",
                 "interactive": {"type": "button_reply",
                                 "button_reply": {"id": "pay_250", "title": "Pay 250"}}}
            )
        )
        assert msg.type == "button"
        assert msg.button.payload == "pay_250"
        assert msg.button.text == "Pay 250"

    def test_status_update_rejected(self):
        payload = copy.deepcopy(VALID_PAYLOAD)
        value = payload["entry"][0]["changes"][0]["value"]
        del value["messages"]
        value["statuses"] = [{"id": "wamid.X", "status": "delivered"}]

        with pytest.raises(InvalidPayloadError):
            normalize(payload)

    def test_unsupported_type_rejected(self):
        with pytest.raises(InvalidPayloadError):
            normalize(_with_message({"from": "919876543210", "id": "wamid.S", "type": "sticker"}))

    def test_missing_sender_rejected(self):
        with pytest.raises(InvalidPayloadError):
            normalize(_with_message({"id": "wamid.X", "type": "text", "text": {"body": "x"}}))

    def test_process_incoming_message_fails_closed(self):
        assert MetaWhatsAppChannel().process_incoming_message({"object": "page"}) is None


class TestNormalizeAll:
    def test_walks_entries_changes_and_messages(self):
        payload = copy.deepcopy(VALID_PAYLOAD)
        value = payload["entry"][0]["changes"][0]["value"]
        value["messages"].append(
            {"from": "919876543211", "id": "wamid.B", "type": "text", "text": {"body": "hi"}}
        )
        second_entry = copy.deepcopy(VALID_PAYLOAD["entry"][0])
        second_value = second_entry["changes"][0]["value"]
        second_value["metadata"]["phone_number_id"] = "987654321"
        second_value["messages"][0]["id"] = "wamid.C"
        payload["entry"].append(second_entry)

        messages = normalize_all(payload)

        assert [m.id for m in messages] == ["wamid.META123456789", "wamid.B", "wamid.C"]
        assert [m.recipient for m in messages] == ["123456789", "123456789", "987654321"]

    def test_unusable_messages_skipped(self):
        payload = copy.deepcopy(VALID_PAYLOAD)
        value = payload["entry"][0]["changes"][0]["value"]
        value["messages"].insert(0, {"from": "919876543210", "id": "wamid.S", "type": "sticker"})

        assert [m.id for m in normalize_all(payload)] == ["wamid.META123456789"]

    def test_status_update_is_empty(self):
        payload = copy.deepcopy(VALID_PAYLOAD)
        value = payload["entry"][0]["changes"][0]["value"]
        del value["messages"]
        value["statuses"] = [{"id": "wamid.X", "status": "delivered"}]

        assert normalize_all(payload) == []
        assert normalize_all({"entry": "nope"}) == []


class TestVerifySignature:
    SECRET = "app-secret"

    def _sign(self, body: bytes) -> str:
        return "sha256=" + hmac.new(self.SECRET.encode(), body, hashlib.sha256).hexdigest()

    def test_valid(self):
        body = json.dumps(VALID_PAYLOAD).encode()
        verify_signature(body, self._sign(body), self.SECRET)

    def test_tampered_body(self):
        body = json.dumps(VALID_PAYLOAD).encode()
        with pytest.raises(SignatureVerificationError):
            verify_signature(body + b" ", self._sign(body), self.SECRET)

    @pytest.mark.parametrize("header", ["", "md5=abc", "sha256=deadbeef"])
    def test_bad_headers(self, header):
        with pytest.raises(SignatureVerificationError):
            verify_signature(b"{}", header, self.SECRET)


@pytest.fixture
def meta_env(monkeypatch):
    monkeypatch.setenv("META_PHONE_NUMBER_ID", "123456789")
    monkeypatch.setenv("META_ACCESS_TOKEN", "test-token")


class TestSend:
    PHONE = "919876543210"
    TEXT = "dummy_text"

    def test_send_text(self, meta_env):
        with patch(
            "bizchat.channels.meta._do_request",
            return_value={"messages": [{"id": "wamid.OUT1"}]},
        ) as do_request:
            result = MetaWhatsAppChannel().send_text_message(f"+{self.PHONE}", self.TEXT)

        assert result.success is True
        assert result.message_id == "wamid.OUT1"
        url, data, headers = do_request.call_args.args
        assert url == "https://graph.facebook.com/v18.0/123456789/messages"
        body = json.loads(data)
        assert body["to"] == self.PHONE
        assert body["text"] == {"body": self.TEXT}
        assert headers["Authorization"] == "Bearer test-token"

    def test_send_media_with_caption(self, meta_env):
        with patch(
            "bizchat.channels.meta._do_request",
            return_value={"messages": [{"id": "wamid.OUT2"}]},
        ) as do_request:
            result = MetaWhatsAppChannel().send_media(
                self.PHONE, "image", "https://x/qr.png", caption="Pay"
            )

        assert result.success is True
        body = json.loads(do_request.call_args.args[1])
        assert body["type"] == "image"
        assert body["image"] == {"link": "https://x/qr.png", "caption": "Pay"}

    def test_missing_credentials_fails_softly(self, monkeypatch):
        monkeypatch.delenv("META_PHONE_NUMBER_ID", raising=False)
        monkeypatch.delenv("META_ACCESS_TOKEN", raising=False)

        result = MetaWhatsAppChannel().send_text_message(self.PHONE, self.TEXT)

        assert result.success is False
        assert "not initialized" in result.error

    def test_retries_once_on_network_error(self, meta_env):
        with patch("bizchat.channels.meta.time.sleep"):
            with patch(
                "bizchat.channels.meta._do_request",
                side_effect=[urllib.error.URLError("down"), {"messages": [{"id": "wamid.R"}]}],
            ) as do_request:
                result = MetaWhatsAppChannel().send_text_message(self.PHONE, self.TEXT)

        assert result.success is True
        assert do_request.call_count == 2

    def test_gives_up_after_retry(self, meta_env):
        with patch("bizchat.channels.meta.time.sleep"):
            with patch(
                "bizchat.channels.meta._do_request",
                side_effect=urllib.error.URLError("down"),
            ):
                result = MetaWhatsAppChannel().send_text_message(self.PHONE, self.TEXT)

        assert result.success is False
        assert result.error == "meta send failed: URLError"

    def test_dropped_connection_fails_softly(self, meta_env):
        with patch("bizchat.channels.meta.time.sleep"):
            with patch(
                "bizchat.channels.meta._do_request",
                side_effect=http.client.RemoteDisconnected("closed"),
            ) as do_request:
                result = MetaWhatsAppChannel().send_text_message(self.PHONE, self.TEXT)

        assert result.success is False
        assert result.error == "meta send failed: RemoteDisconnected"
        assert do_request.call_count == 2

    def test_send_logs_no_pii(self, meta_env):
        recorder = LogRecorder()
        with patch("bizchat.channels.meta.logger", recorder):
            with patch(
                "bizchat.channels.meta._do_request",
                return_value={"messages": [{"id": "wamid.OUT1"}]},
            ):
                MetaWhatsAppChannel().send_text_message(self.PHONE, self.TEXT)

        logged = recorder.get_all_logged_content()
        assert self.PHONE not in logged
        assert self.TEXT not in logged
        assert recorder.has_extra_field("to_hash")
        assert recorder.has_extra_field("text_len")

    def test_read_receipt(self, meta_env):
        with patch("bizchat.channels.meta._do_request", return_value={}) as do_request:
            MetaWhatsAppChannel().acknowledge_receipt("wamid.IN1")

        body = json.loads(do_request.call_args.args[1])
        assert body == {"messaging_product": "whatsapp", "status": "read", "message_id": "wamid.IN1"}


class TestInitialize:
    def test_idempotent(self, meta_env, monkeypatch):
        channel = MetaWhatsAppChannel()

        assert channel.initialize() is True
        monkeypatch.delenv("META_ACCESS_TOKEN")
        assert channel.initialize() is True

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("META_ACCESS_TOKEN", raising=False)
        assert MetaWhatsAppChannel().initialize() is False

    def test_channel_type(self):
        assert MetaWhatsAppChannel().get_channel_type() == "whatsapp"
