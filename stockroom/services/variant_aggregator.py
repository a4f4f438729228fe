"""
Variant Aggregator

Derives a product's display price and on-hand quantity from its active
variants. Pure functions; safe to call on every read.
"""

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable


@dataclass(frozen=True)
class ProductAggregate:
    """Live figures for a variant-bearing product. All zero means no pricing."""
    price: float = 0.0
    quantity: int = 0
    min_price: float = 0.0
    max_price: float = 0.0
    avg_price: float = 0.0
    total_value: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _field(variant, name, default=None):
    # Accepts ORM rows and plain mappings alike
    if isinstance(variant, Mapping):
        return variant.get(name, default)
    return getattr(variant, name, default)


def compute_product_aggregate(variants: Iterable) -> ProductAggregate:
    """Aggregate price and quantity over the active variants only."""
    active = [v for v in (variants or ()) if _field(v, 'is_active', True)]
    if not active:
        return ProductAggregate()

    prices = [float(_field(v, 'price', 0) or 0) for v in active]
    quantities = [int(_field(v, 'quantity', 0) or 0) for v in active]

    total_quantity = sum(quantities)
    total_value = sum(price * qty for price, qty in zip(prices, quantities))
    min_price = min(prices)

    return ProductAggregate(
        price=min_price,
        quantity=total_quantity,
        min_price=min_price,
        max_price=max(prices),
        avg_price=(total_value / total_quantity) if total_quantity else 0.0,
        total_value=total_value,
    )


def format_price_range(min_price: float, max_price: float) -> str:
    """'$10.00' for a single price, '$10.00 - $15.00' for a spread."""
    min_price = float(min_price or 0)
    max_price = float(max_price or 0)
    if min_price == max_price:
        return f"${min_price:.2f}"
    return f"${min_price:.2f} - ${max_price:.2f}"
