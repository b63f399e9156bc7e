"""Channel-agnostic message models.

Every channel adapter turns its provider webhook into a StandardizedMessage.
Phone numbers in `sender` are canonical (E.164 digits, no "+", no
"whatsapp:" prefix) and `timestamp` is always ISO-8601 UTC.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

ChannelType = Literal["whatsapp", "sms", "web"]
MessageType = Literal["text", "image", "document", "location", "button", "template"]

CHANNEL_TYPES: tuple[str, ...] = ("whatsapp", "sms", "web")
MESSAGE_TYPES: tuple[str, ...] = ("text", "image", "document", "location", "button", "template")


@dataclass(frozen=True)
class TextContent:
    body: str


@dataclass(frozen=True)
class ImageContent:
    url: str | None = None
    caption: str | None = None


@dataclass(frozen=True)
class DocumentContent:
    url: str | None = None
    filename: str | None = None
    caption: str | None = None


@dataclass(frozen=True)
class LocationContent:
    latitude: float
    longitude: float
    name: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class ButtonContent:
    payload: str
    text: str


@dataclass(frozen=True)
class TemplateContent:
    name: str
    parameters: dict[str, str] = field(default_factory=dict)


_CONTENT_FIELDS: tuple[str, ...] = MESSAGE_TYPES


@dataclass(frozen=True)
class StandardizedMessage:
    """One inbound event, independent of the channel it arrived on.

    Exactly one of the type-specific fields is populated and it matches
    `type`; construction fails otherwise.

    Attributes:
        id: Provider message id (idempotency key).
        sender: Canonical customer phone/contact.
        timestamp: ISO-8601 UTC event time.
        type: Message type.
        channel: Channel the message arrived on.
        provider: Provider that delivered it ("meta", "twilio", "msg91", "sns").
        recipient: Business-side identifier (Meta phone_number_id or the
            number the customer wrote to), used to resolve the business.
    """

    id: str
    sender: str
    timestamp: str
    type: MessageType
    channel: ChannelType
    provider: str
    recipient: str | None = None
    text: TextContent | None = None
    image: ImageContent | None = None
    document: DocumentContent | None = None
    location: LocationContent | None = None
    button: ButtonContent | None = None
    template: TemplateContent | None = None

    def __post_init__(self) -> None:
        if self.type not in MESSAGE_TYPES:
            raise ValueError(f"unsupported message type: {self.type}")
        if self.channel not in CHANNEL_TYPES:
            raise ValueError(f"unsupported channel: {self.channel}")
        populated = [name for name in _CONTENT_FIELDS if getattr(self, name) is not None]
        if populated != [self.type]:
            raise ValueError(
                f"message of type {self.type!r} must carry exactly that payload, got {populated}"
            )

    @property
    def content(self) -> Any:
        """The populated type-specific payload."""
        return getattr(self, self.type)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for task payloads."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StandardizedMessage":
        """Rebuild from `to_dict()` output."""
        builders = {
            "text": TextContent,
            "image": ImageContent,
            "document": DocumentContent,
            "location": LocationContent,
            "button": ButtonContent,
            "template": TemplateContent,
        }
        kwargs: dict[str, Any] = {
            "id": data["id"],
            "sender": data["sender"],
            "timestamp": data["timestamp"],
            "type": data["type"],
            "channel": data["channel"],
            "provider": data.get("provider", "unknown"),
            "recipient": data.get("recipient"),
        }
        msg_type = data["type"]
        if msg_type in builders and data.get(msg_type) is not None:
            kwargs[msg_type] = builders[msg_type](**data[msg_type])
        return cls(**kwargs)


@dataclass(frozen=True)
class SendResult:
    """Outcome of an outbound send. Adapters never raise; errors land here."""

    success: bool
    message_id: str | None = None
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> "SendResult":
        return cls(success=False, error=error)
