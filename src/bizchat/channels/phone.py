"""Phone number normalization shared by all adapters.

Stored/looked-up form is E.164 digits without "+" (e.g. "919876543210").
Each provider gets its own decoration only at send time.
"""

import re

TWILIO_WHATSAPP_PREFIX = "whatsapp:"

_STRIP_CHARS = re.compile(r"[\s\-().]")


def canonical_phone(raw: str) -> str:
    """Strip provider decoration and formatting from a phone number.

    >>> canonical_phone("whatsapp:+91 98765-43210")
    '919876543210'
    """
    value = raw.strip()
    if value.lower().startswith(TWILIO_WHATSAPP_PREFIX):
        value = value[len(TWILIO_WHATSAPP_PREFIX):]
    value = _STRIP_CHARS.sub("", value)
    return value.lstrip("+")


def to_e164(phone: str) -> str:
    """Canonical -> "+<digits>" (Twilio SMS)."""
    return f"+{canonical_phone(phone)}"


def to_twilio_whatsapp(phone: str) -> str:
    """Canonical -> "whatsapp:+<digits>" (Twilio WhatsApp)."""
    return f"{TWILIO_WHATSAPP_PREFIX}{to_e164(phone)}"


def is_twilio_whatsapp(raw: str) -> bool:
    return raw.strip().lower().startswith(TWILIO_WHATSAPP_PREFIX)
