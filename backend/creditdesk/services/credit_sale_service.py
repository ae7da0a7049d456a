"""
Credit sales ("veresiye"): sell a cart to a technical service on account.

A cart becomes one TechnicalServiceSale row per distinct product. The whole
cart is one DB transaction: every line is priced and stock-checked before
anything is written, the credit limit is checked once against the cart
total, and any failure rolls back every sale row, stock decrement and the
balance change.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Product, TechnicalService, TechnicalServiceHistory, TechnicalServiceSale
from ..validation import ValidationError, coerce_int
from .account_service import get_account_for_update, require_active
from .balance_engine import BalanceCheck, apply_delta, commit_balance, require_within_limit
from .concurrency import begin_immediate, run_with_retry
from .history_service import append_history
from .inventory_service import StockError, apply_stock_change, get_product_for_update
from .pricing_service import ResolvedPrice, resolve_unit_price
from .system_log_service import writer as system_log
from creditdesk.time_utils import utcnow


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    product: Product
    quantity: int
    price: ResolvedPrice

    @property
    def total_cents(self) -> int:
        return self.quantity * self.price.unit_price_cents


@dataclass(frozen=True)
class SaleResult:
    sales: list[TechnicalServiceSale]
    history: list[TechnicalServiceHistory]
    account: TechnicalService
    check: BalanceCheck

    @property
    def total_cents(self) -> int:
        return self.check.delta_cents

    def to_dict(self) -> dict:
        return {
            "sales": [s.to_dict() for s in self.sales],
            "history": [h.to_dict() for h in self.history],
            "technical_service": self.account.to_dict(),
            "total_amount_cents": self.total_cents,
            "balance": self.check.to_dict(),
        }


def parse_cart(raw_lines) -> list[CartLine]:
    """Build cart lines from request JSON (list of {product_id, quantity})."""
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("At least one product line is required", code="empty-cart")

    lines = []
    for i, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"Line {i + 1} must be an object", details={"line": i + 1})
        if raw.get("product_id") is None or raw.get("quantity") is None:
            raise ValidationError(
                f"Line {i + 1}: product_id and quantity required",
                code="missing-field",
                details={"line": i + 1},
            )
        lines.append(CartLine(
            product_id=coerce_int(raw["product_id"], "product_id"),
            quantity=coerce_int(raw["quantity"], "quantity"),
        ))
    return lines


def merge_cart(lines: list[CartLine]) -> list[CartLine]:
    """Collapse repeated products into one line, keeping first-seen order."""
    if not lines:
        raise ValidationError("At least one product line is required", code="empty-cart")

    totals: dict[int, int] = {}
    for line in lines:
        if line.quantity <= 0:
            raise ValidationError(
                "quantity must be > 0",
                code="invalid-quantity",
                details={"product_id": line.product_id, "quantity": line.quantity},
            )
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return [CartLine(product_id=pid, quantity=qty) for pid, qty in totals.items()]


def _price_and_check_stock(lines: list[CartLine]) -> list[PricedLine]:
    priced = []
    for line in lines:
        product = get_product_for_update(line.product_id)
        if not product.is_active:
            raise ValidationError(
                f"Product {product.name} is not available",
                code="inactive-product",
                details={"product_id": product.id},
            )
        if line.quantity > product.stock_quantity:
            raise StockError(product.id, line.quantity, product.stock_quantity, product.name)
        priced.append(PricedLine(product=product, quantity=line.quantity, price=resolve_unit_price(product)))
    return priced


def compose_sale(
    account_id: int,
    cart: list[CartLine],
    *,
    notes: str | None = None,
    sale_date: date | None = None,
    created_by: str | None = None,
    confirm_over_limit: bool = False,
) -> SaleResult:
    """
    Record a credit sale for a whole cart.

    Raises ValidationError, StockError (first short line; nothing written),
    LimitExceededWarning (cart total would pass the credit limit and the
    operator has not confirmed), NotFoundError or StorageError.
    """
    lines = merge_cart(cart)
    sale_date = sale_date or utcnow().date()

    def _op():
        begin_immediate()
        account = get_account_for_update(account_id)
        require_active(account)

        priced = _price_and_check_stock(lines)
        total = sum(p.total_cents for p in priced)

        check = apply_delta(account, total)
        require_within_limit(check, confirmed=confirm_over_limit)

        sales = []
        for p in priced:
            sale = TechnicalServiceSale(
                technical_service_id=account.id,
                product_id=p.product.id,
                product_name=p.product.name,
                quantity=p.quantity,
                unit_price_cents=p.price.unit_price_cents,
                total_amount_cents=p.total_cents,
                price_source=p.price.source,
                sale_date=sale_date,
                notes=notes or f"Credit sale: {p.product.name}",
                created_by=created_by,
            )
            db.session.add(sale)
            apply_stock_change(p.product, p.quantity, "decrease")
            sales.append(sale)

        commit_balance(account, check)
        db.session.flush()

        history = []
        running = check.previous_balance_cents
        for p, sale in zip(priced, sales):
            entry = append_history(
                technical_service_id=account.id,
                action_type="credit_sale",
                description=f"Credit sale: {p.quantity} x {p.product.name}",
                amount_cents=p.total_cents,
                previous_balance_cents=running,
                new_balance_cents=running + p.total_cents,
                sale_id=sale.id,
                created_by=created_by,
            )
            running += p.total_cents
            if entry is not None:
                history.append(entry)

        db.session.commit()
        return SaleResult(sales=sales, history=history, account=account, check=check)

    result = run_with_retry(_op)

    if result.check.limit_exceeded:
        current_app.logger.info(
            "Credit limit override confirmed on technical service %s by %s (new balance %s, limit %s)",
            account_id, created_by, result.check.new_balance_cents, result.check.credit_limit_cents,
        )

    system_log.log(
        action="credit_sale",
        entity_type="technical_service",
        entity_id=account_id,
        description=f"Credit sale of {len(result.sales)} product(s), total {result.total_cents} cents",
        user_id=created_by,
        old_values={"current_balance_cents": result.check.previous_balance_cents},
        new_values={
            "current_balance_cents": result.check.new_balance_cents,
            "sale_ids": [s.id for s in result.sales],
        },
    )
    return result
