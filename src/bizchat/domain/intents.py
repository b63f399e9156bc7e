"""Deterministic intent classification for inbound messages.

NO LLM. Keyword containment and a numeric menu for terse channels.
Security: NEVER log raw text (PII).
"""

import re
from dataclasses import dataclass
from typing import Literal

from bizchat.channels.models import StandardizedMessage

Intent = Literal[
    "payment",
    "order",
    "price",
    "default",
    "invalid_menu",
    "image",
    "document",
    "location",
    "button",
    "template",
]

# Bare positive integer, first digit 1-9
_NUMERIC_MENU_PATTERN = re.compile(r"^[1-9]\d*$")

NUMERIC_MENU: dict[int, Intent] = {
    1: "order",
    2: "price",
    3: "payment",
}

# Checked in this order; the first group with a hit wins, so "pay for my
# order" is a payment.
KEYWORD_GROUPS: tuple[tuple[Intent, tuple[str, ...]], ...] = (
    ("payment", ("pay", "payment", "upi", "money")),
    ("order", ("order", "buy", "purchase")),
    ("price", ("price", "cost", "rate", "how much")),
)

_PAY_BUTTON_PATTERN = re.compile(r"^pay_(\d+(?:\.\d{1,2})?)$")

DEFAULT_NUMERIC_MENU_CHANNELS: frozenset[str] = frozenset({"sms"})


@dataclass(frozen=True)
class Classification:
    """Result of classifying one message.

    Attributes:
        intent: Handler to dispatch to.
        amount: Payment amount (major units) carried by a pay_<amount> button.
        menu_selection: The number the customer sent, when the numeric menu
            was used.
    """

    intent: Intent
    amount: float | None = None
    menu_selection: int | None = None


def parse_pay_button(payload: str) -> float | None:
    """Amount encoded in a "pay_<amount>" button payload, else None."""
    match = _PAY_BUTTON_PATTERN.match(payload.strip())
    if not match:
        return None
    return float(match.group(1))


def classify_text(
    body: str,
    channel: str,
    numeric_menu_channels: frozenset[str] = DEFAULT_NUMERIC_MENU_CHANNELS,
) -> Classification:
    """Classify a text body.

    On numeric-menu channels a bare positive integer is a menu selection and
    never falls through to keyword matching.
    """
    text = body.lower()
    trimmed = text.strip()

    if channel in numeric_menu_channels and _NUMERIC_MENU_PATTERN.match(trimmed):
        selection = int(trimmed)
        return Classification(
            intent=NUMERIC_MENU.get(selection, "invalid_menu"),
            menu_selection=selection,
        )

    for intent, keywords in KEYWORD_GROUPS:
        if any(keyword in text for keyword in keywords):
            return Classification(intent=intent)

    return Classification(intent="default")


def classify(
    message: StandardizedMessage,
    numeric_menu_channels: frozenset[str] = DEFAULT_NUMERIC_MENU_CHANNELS,
) -> Classification:
    """Classify a standardized message by type, then by content for text."""
    if message.type == "text":
        return classify_text(message.text.body, message.channel, numeric_menu_channels)

    if message.type == "button":
        amount = parse_pay_button(message.button.payload)
        if amount is not None:
            return Classification(intent="payment", amount=amount)
        return Classification(intent="button")

    return Classification(intent=message.type)
