# Overview: Service-layer operations for product stock; encapsulates business logic and database work.

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Product
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .system_log_service import writer as system_log

STOCK_OPERATIONS = ("increase", "decrease")


class StockError(ConflictError):
    """Requested quantity exceeds what is on hand."""

    def __init__(self, product_id: int, requested: int, available: int, product_name: str | None = None):
        super().__init__(
            f"Insufficient stock for product {product_name or product_id}: requested {requested}, available {available}",
            code="insufficient-stock",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested_quantity": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


@dataclass(frozen=True)
class StockChange:
    product_id: int
    previous_stock: int
    new_stock: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
        }


def get_product_for_update(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def apply_stock_change(product: Product, quantity: int, operation: str) -> StockChange:
    """
    Mutate stock on an already-locked product. Does not commit.

    Stock never goes negative: a decrease larger than what is on hand
    raises StockError and leaves the product untouched.
    """
    if operation not in STOCK_OPERATIONS:
        raise ValidationError(
            f"operation must be one of: {', '.join(STOCK_OPERATIONS)}",
            details={"operation": operation},
        )
    if quantity <= 0:
        raise ValidationError("quantity must be > 0", code="invalid-quantity", details={"quantity": quantity})

    previous = product.stock_quantity
    if operation == "decrease":
        if quantity > previous:
            raise StockError(product.id, quantity, previous, product.name)
        new_stock = previous - quantity
    else:
        new_stock = previous + quantity

    product.stock_quantity = new_stock
    return StockChange(product_id=product.id, previous_stock=previous, new_stock=new_stock)


def adjust_stock(product_id: int, quantity: int, operation: str, *, created_by: str | None = None) -> StockChange:
    """Manual stock correction from the product screen."""
    def _op():
        begin_immediate()
        product = get_product_for_update(product_id)
        change = apply_stock_change(product, quantity, operation)
        db.session.commit()
        return product, change

    product, change = run_with_retry(_op)

    system_log.log(
        action=f"stock_{operation}",
        entity_type="product",
        entity_id=product.id,
        description=f"Stock {operation}d for {product.name}: {change.previous_stock} -> {change.new_stock}",
        user_id=created_by,
        old_values={"stock_quantity": change.previous_stock},
        new_values={"stock_quantity": change.new_stock},
    )
    return change
