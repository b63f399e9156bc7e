"""Customer-facing reply texts.

SMS gets terse numbered-menu phrasing; WhatsApp and web get conversational
phrasing. Every handler picks its text through `is_terse(channel)`.
"""

from .catalog import DEFAULT_PRODUCTS, Product, format_product_list

CURRENCY_SYMBOL = "₹"
FREE_SHIPPING_THRESHOLD = 999

SMS_MENU = "Reply with: 1-Products, 2-Prices, 3-Pay"

GENERIC_APOLOGY = "I'm sorry, something went wrong while processing your message. Please try again later."
PAYMENT_APOLOGY = (
    "I'm sorry, there was a problem processing your payment request. Please try again later."
)
UNSUPPORTED_TYPE = "I'm sorry, I can't process this type of message yet."

TERSE_CHANNELS: frozenset[str] = frozenset({"sms"})


def is_terse(channel: str) -> bool:
    return channel in TERSE_CHANNELS


# (chat, sms) phrasing of acknowledgements for non-text messages
ACKS: dict[str, tuple[str, str]] = {
    "image": (
        "Thank you for sending the image. Our team will review it shortly.",
        "Image received. We'll review it.",
    ),
    "document": (
        "Thank you for sending the document. Our team will review it shortly.",
        "Document received. We'll review it.",
    ),
    "location": (
        "Thank you for sharing your location. Our team will check if we deliver to your area.",
        "Location received. We'll check delivery.",
    ),
    "template": ("Thank you for your response.", "Thanks!"),
}


def format_amount(amount: float) -> str:
    """₹499 for whole amounts, ₹499.50 otherwise."""
    if float(amount).is_integer():
        return f"{CURRENCY_SYMBOL}{int(amount)}"
    return f"{CURRENCY_SYMBOL}{amount:.2f}"


def ack_reply(kind: str, channel: str) -> str:
    chat, sms = ACKS[kind]
    return sms if is_terse(channel) else chat


def default_reply(channel: str) -> str:
    if is_terse(channel):
        return f"Thank you for your message. {SMS_MENU}"
    return (
        "Thank you for your message. How can I help you today? "
        "You can ask about our products, prices, or place an order."
    )


def invalid_menu_reply() -> str:
    return f"Invalid selection. {SMS_MENU}"


def order_reply(channel: str, products: tuple[Product, ...] = DEFAULT_PRODUCTS) -> str:
    product_list = format_product_list(products)
    if is_terse(channel):
        return f"Products:\n{product_list}\nReply with product name & qty (e.g. 'A 2')"
    return (
        "Thank you for your interest in placing an order. Here are our popular products:\n\n"
        f"{product_list}\n\n"
        'To order, please reply with the product name and quantity (e.g., "2 Product A").'
    )


def price_reply(channel: str, products: tuple[Product, ...] = DEFAULT_PRODUCTS) -> str:
    product_list = format_product_list(products)
    threshold = format_amount(FREE_SHIPPING_THRESHOLD)
    if is_terse(channel):
        return f"Prices:\n{product_list}\nInc GST. Free ship >{threshold}."
    return (
        "Here are our current prices:\n\n"
        f"{product_list}\n\n"
        f"All prices include GST. Shipping is free for orders above {threshold}."
    )


def button_reply(text: str) -> str:
    return f"Thank you for your selection: {text}"


def qr_caption(amount: float, business_name: str) -> str:
    return f"Pay {format_amount(amount)} to {business_name}"


def qr_instructions(amount: float) -> str:
    return (
        f"Please scan this QR code using any UPI app to pay {format_amount(amount)}. "
        "Your payment will be confirmed automatically."
    )


def upi_link_fallback(amount: float, upi_url: str) -> str:
    return f"Pay {format_amount(amount)} using any UPI app: {upi_url}"


def payment_link_reply(amount: float, business_name: str, link: str) -> str:
    return f"To pay {format_amount(amount)} to {business_name}, click this secure link: {link}"


PAYMENT_STATUS_WORDS: dict[str, str] = {
    "completed": "successful",
    "failed": "failed",
    "pending": "pending",
    "refunded": "refunded",
}


def payment_status_reply(
    status: str,
    amount: float,
    business_name: str,
    transaction_id: str,
) -> str:
    word = PAYMENT_STATUS_WORDS.get(status, status)
    return (
        f"Payment {word} for {format_amount(amount)} to {business_name}. "
        f"Transaction ID: {transaction_id}"
    )
