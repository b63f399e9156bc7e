"""Payment requests, results and the adapter capability.

Amounts on requests are in major units (rupees, dollars); persisted
transactions carry minor units. `to_minor_units` is the only conversion.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal, Protocol

PaymentRegion = Literal["global", "north-america", "europe", "india", "apac", "latam", "africa"]
PaymentMethod = Literal[
    "credit-card", "bank-transfer", "upi", "wallet", "bnpl", "crypto", "paypal", "stripe"
]
PaymentStatus = Literal["pending", "completed", "failed", "refunded"]


class PaymentError(Exception):
    """Base for failures the customer should hear about as payment failures."""


class PaymentConfigurationError(PaymentError):
    """Business is missing payment configuration (e.g. no UPI id)."""


class PaymentAdapterUnavailableError(PaymentError):
    """No adapter registered for the region/method pair."""


class PaymentAmountError(PaymentError):
    """Amount could not be resolved or is not payable."""


def to_minor_units(amount: float | int | str | Decimal) -> int:
    """499 -> 49900, 499.5 -> 49950.

    Raises:
        PaymentAmountError: Not a positive number.
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise PaymentAmountError(f"invalid amount: {amount!r}") from e
    if not value.is_finite() or value <= 0:
        raise PaymentAmountError(f"amount must be positive: {amount!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PaymentRequest:
    """One payment the bridge is asked to route.

    Attributes:
        id: Caller-side request/transaction id used for hosted links.
        amount: Major units.
        currency: Defaults to the region's currency when None.
        payee_id: Business payment identifier (UPI VPA for upi).
    """

    id: str
    amount: float
    business_id: str
    customer_phone: str
    currency: str | None = None
    country: str | None = None
    description: str | None = None
    conversation_id: str | None = None
    payee_id: str | None = None
    payment_method_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    transaction_id: str
    provider: str
    status: PaymentStatus
    raw_response: Any = None
    error: str | None = None


@dataclass(frozen=True)
class PaymentLink:
    """Where the customer pays.

    Attributes:
        transaction_id: Stored transaction id (UPI) or request id (hosted).
        payment_url: Hosted page keyed by transaction_id.
        upi_url: upi:// URI to encode as a QR code, UPI only.
    """

    transaction_id: str
    payment_url: str
    method: str
    region: str
    upi_url: str | None = None


class PaymentAdapter(Protocol):
    name: str

    def process_payment(self, request: PaymentRequest) -> PaymentResult: ...

    def reverse_transaction(self, transaction_id: str) -> bool: ...
