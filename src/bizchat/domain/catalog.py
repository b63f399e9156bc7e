"""Product catalog shown by the order and price replies."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Product:
    name: str
    price: int
    currency_symbol: str = "₹"


DEFAULT_PRODUCTS: tuple[Product, ...] = (
    Product(name="Product A", price=499),
    Product(name="Product B", price=999),
    Product(name="Product C", price=1499),
)


def format_product_list(products: tuple[Product, ...] | list[Product]) -> str:
    """One "- Name: ₹price" line per product."""
    return "\n".join(f"- {p.name}: {p.currency_symbol}{p.price}" for p in products)
