# Overview: Service-layer operations for credit-sale pricing.

from __future__ import annotations

from dataclasses import dataclass

from ..models import Product
from ..validation import ValidationError

BPS_DENOMINATOR = 10_000

PRICE_SOURCE_COST_MARGIN = "cost_margin"
PRICE_SOURCE_SALE_PRICE = "sale_price"
PRICE_SOURCE_LIST_PRICE = "list_price"


@dataclass(frozen=True)
class ResolvedPrice:
    unit_price_cents: int
    source: str

    def to_dict(self) -> dict:
        return {"unit_price_cents": self.unit_price_cents, "source": self.source}


def apply_margin(cost_cents: int, margin_bps: int) -> int:
    """cost * (1 + margin), rounded half-up to whole cents."""
    numerator = cost_cents * (BPS_DENOMINATOR + margin_bps)
    return (numerator + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def resolve_unit_price(product: Product) -> ResolvedPrice:
    """
    Price a product for a credit sale.

    Ladder (first match wins):
    1. cost price marked up by the category profit margin, when the product
       has a non-zero cost price and its category margin is positive
    2. sale (discounted) price, when non-zero
    3. list price
    """
    category = product.category
    if product.cost_price_cents and category is not None and category.profit_margin_bps > 0:
        return ResolvedPrice(
            unit_price_cents=apply_margin(product.cost_price_cents, category.profit_margin_bps),
            source=PRICE_SOURCE_COST_MARGIN,
        )

    if product.sale_price_cents:
        return ResolvedPrice(unit_price_cents=product.sale_price_cents, source=PRICE_SOURCE_SALE_PRICE)

    if product.price_cents is not None:
        return ResolvedPrice(unit_price_cents=product.price_cents, source=PRICE_SOURCE_LIST_PRICE)

    raise ValidationError(
        f"Product {product.id} has no price",
        code="unpriced-product",
        details={"product_id": product.id},
    )
