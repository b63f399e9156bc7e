"""Regional payment settings: currency, tax and default method per region."""

from dataclasses import dataclass

from .models import PaymentMethod, PaymentRegion


@dataclass(frozen=True)
class RegionalPaymentConfig:
    id: str
    region: PaymentRegion
    country: str
    currency: str
    default_method: PaymentMethod
    supported_methods: tuple[PaymentMethod, ...]
    tax_rate: float
    tax_name: str
    language: str = "en"
    enabled: bool = True


REGION_CONFIGS: dict[str, RegionalPaymentConfig] = {
    "global": RegionalPaymentConfig(
        id="global",
        region="global",
        country="US",
        currency="USD",
        default_method="credit-card",
        supported_methods=("credit-card", "bank-transfer"),
        tax_rate=0.0,
        tax_name="Tax",
    ),
    "us": RegionalPaymentConfig(
        id="us",
        region="north-america",
        country="US",
        currency="USD",
        default_method="credit-card",
        supported_methods=("credit-card", "bank-transfer"),
        # Varies by state
        tax_rate=0.0,
        tax_name="Sales Tax",
    ),
    "eu": RegionalPaymentConfig(
        id="eu",
        region="europe",
        country="EU",
        currency="EUR",
        default_method="credit-card",
        supported_methods=("credit-card", "bank-transfer"),
        tax_rate=0.20,
        tax_name="VAT",
    ),
    "india": RegionalPaymentConfig(
        id="india",
        region="india",
        country="IN",
        currency="INR",
        default_method="upi",
        supported_methods=("upi", "credit-card", "bank-transfer"),
        tax_rate=0.18,
        tax_name="GST",
    ),
    "singapore": RegionalPaymentConfig(
        id="singapore",
        region="apac",
        country="SG",
        currency="SGD",
        default_method="credit-card",
        supported_methods=("credit-card", "bank-transfer", "wallet"),
        tax_rate=0.08,
        tax_name="GST",
    ),
    "brazil": RegionalPaymentConfig(
        id="brazil",
        region="latam",
        country="BR",
        currency="BRL",
        default_method="credit-card",
        supported_methods=("credit-card", "bank-transfer", "bnpl"),
        tax_rate=0.17,
        tax_name="ICMS",
        language="pt",
    ),
}


def resolve_region_config(
    region: str | None = None,
    country: str | None = None,
    configs: dict[str, RegionalPaymentConfig] = REGION_CONFIGS,
) -> RegionalPaymentConfig:
    """Pick the config by explicit region, else by country code, else global."""
    if region:
        for config in configs.values():
            if config.enabled and config.region == region:
                return config
    if country:
        for config in configs.values():
            if config.enabled and config.country.lower() == country.lower():
                return config
    return configs["global"]
