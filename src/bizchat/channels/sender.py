"""Outbound sender - reply on the channel a message arrived on, then log it.

Delivery never waits on bookkeeping: a failed persist after a successful
send is logged and the send still counts as delivered. A failed send is
never persisted.

Security: NEVER log phone numbers or message text. Only hashes and lengths.
"""

from typing import Mapping

from bizchat.domain.messages import append_outbound
from bizchat.domain.models import Conversation
from bizchat.domain.ports import MessagingStore
from bizchat.infra.audit import AuditSink
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import hash_identifier

from .base import MediaType, MessageChannel
from .models import SendResult
from .phone import canonical_phone

logger = get_logger(__name__)


class OutboundSender:
    def __init__(
        self,
        channels: Mapping[str, MessageChannel],
        store: MessagingStore,
        audit: AuditSink,
    ) -> None:
        self._channels = channels
        self._store = store
        self._audit = audit

    def channel_for(self, channel: str) -> MessageChannel | None:
        return self._channels.get(channel)

    def send(
        self,
        to: str,
        channel: str,
        text: str,
        *,
        conversation: Conversation | None = None,
    ) -> SendResult:
        """Send text and record it as a business message."""
        adapter = self._channels.get(channel)
        if adapter is None:
            return self._no_adapter(to, channel)

        result = adapter.send_text_message(to, text)
        return self._record(
            result,
            to=to,
            channel=channel,
            content=text,
            conversation=conversation,
        )

    def send_media(
        self,
        to: str,
        channel: str,
        media_type: MediaType,
        media_url: str,
        *,
        caption: str | None = None,
        conversation: Conversation | None = None,
    ) -> SendResult:
        """Send media by URL and record it with its URL."""
        adapter = self._channels.get(channel)
        if adapter is None:
            return self._no_adapter(to, channel)

        result = adapter.send_media(to, media_type, media_url, caption)
        return self._record(
            result,
            to=to,
            channel=channel,
            content=caption or f"[{media_type}]",
            conversation=conversation,
            message_type=media_type,
            media_url=media_url,
        )

    def _no_adapter(self, to: str, channel: str) -> SendResult:
        logger.error(
            "no adapter for channel",
            extra={
                "extra_fields": {
                    "channel": channel,
                    "to_hash": hash_identifier(canonical_phone(to)),
                }
            },
        )
        return SendResult.failed(f"no adapter registered for channel {channel}")

    def _record(
        self,
        result: SendResult,
        *,
        to: str,
        channel: str,
        content: str,
        conversation: Conversation | None,
        message_type: str = "text",
        media_url: str | None = None,
    ) -> SendResult:
        to_hash = hash_identifier(canonical_phone(to))

        if not result.success:
            logger.error(
                "outbound send failed",
                extra={
                    "extra_fields": {
                        "channel": channel,
                        "to_hash": to_hash,
                        "error": result.error or "",
                    }
                },
            )
            self._audit.log_action(
                f"{channel}_send_failed",
                resource_type="conversation",
                resource_id=conversation.id if conversation else None,
                metadata={"error": result.error, "to_hash": to_hash},
            )
            return result

        try:
            if conversation is None:
                conversation = self._store.find_latest_active_conversation(
                    canonical_phone(to), channel
                )
            if conversation is None:
                logger.warning(
                    "sent message has no active conversation, not persisted",
                    extra={"extra_fields": {"channel": channel, "to_hash": to_hash}},
                )
                return result

            append_outbound(
                self._store,
                conversation.id,
                channel=channel,
                content=content,
                provider_message_id=result.message_id,
                message_type=message_type,
                media_url=media_url,
            )
        except Exception as e:
            logger.error(
                "failed to persist outbound message",
                extra={
                    "extra_fields": {
                        "channel": channel,
                        "to_hash": to_hash,
                        "error_type": type(e).__name__,
                    }
                },
            )
        return result
