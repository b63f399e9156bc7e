"""Capability contract shared by every channel adapter.

The dispatcher and the outbound sender depend only on MessageChannel,
never on a concrete provider class.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal

from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import safe_log_context

from .models import ChannelType, SendResult, StandardizedMessage

MediaType = Literal["image", "document", "audio", "video"]

logger = get_logger(__name__)


class InvalidPayloadError(Exception):
    """Raised when a provider payload has an unrecognized or invalid shape."""


class MessageChannel(ABC):
    """One messaging transport (a provider bound to a channel type)."""

    provider: str = "unknown"

    def __init__(self) -> None:
        self._initialized = False

    @property
    @abstractmethod
    def channel_type(self) -> ChannelType:
        """Channel this adapter serves."""

    def get_channel_type(self) -> ChannelType:
        return self.channel_type

    @abstractmethod
    def _load_credentials(self) -> bool:
        """Validate/load provider credentials. Return False when unusable."""

    def initialize(self) -> bool:
        """Load credentials. Idempotent; safe to call before every send."""
        if self._initialized:
            return True
        try:
            self._initialized = self._load_credentials()
        except Exception as e:
            logger.error(
                "channel initialization failed",
                extra={
                    "extra_fields": safe_log_context(
                        provider=self.provider,
                        channel=self.channel_type,
                        error_type=type(e).__name__,
                    )
                },
            )
            self._initialized = False
        return self._initialized

    def ensure_initialized(self) -> SendResult | None:
        """Lazy init before a send. Returns a failed result when unusable."""
        if self.initialize():
            return None
        return SendResult.failed(f"{self.provider} {self.channel_type} client not initialized")

    @abstractmethod
    def send_text_message(self, to: str, text: str) -> SendResult:
        """Send plain text. Never raises."""

    @abstractmethod
    def send_template_message(
        self,
        to: str,
        template_name: str,
        parameters: dict[str, Any],
    ) -> SendResult:
        """Render and send a named template. Never raises."""

    def send_media(
        self,
        to: str,
        media_type: MediaType,
        media_url: str,
        caption: str | None = None,
    ) -> SendResult:
        """Send media by URL. Channels without media support fail softly."""
        return SendResult.failed(f"{self.provider} {self.channel_type} does not support media")

    def acknowledge_receipt(self, message_id: str) -> None:
        """Tell the provider an inbound message was processed (read receipts).

        No-op for providers without receipts.
        """

    @property
    def supports_media(self) -> bool:
        return type(self).send_media is not MessageChannel.send_media

    @abstractmethod
    def normalize(self, payload: Any) -> StandardizedMessage:
        """Parse a provider payload. Raises InvalidPayloadError."""

    def process_incoming_message(self, payload: Any) -> StandardizedMessage | None:
        """Parse a provider payload, failing closed.

        Returns None (never raises) for unrecognized or malformed payloads.
        """
        try:
            return self.normalize(payload)
        except (InvalidPayloadError, ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(
                "invalid inbound payload",
                extra={
                    "extra_fields": safe_log_context(
                        provider=self.provider,
                        channel=self.channel_type,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                },
            )
            return None
