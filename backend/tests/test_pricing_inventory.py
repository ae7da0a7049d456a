"""
Catalog boundary tests: credit price ladder and stock changes.
"""

import pytest

from creditdesk.extensions import db
from creditdesk.models import Category, Product, SystemLog
from creditdesk.services import inventory_service
from creditdesk.services.inventory_service import StockError, apply_stock_change
from creditdesk.services.pricing_service import apply_margin, resolve_unit_price
from creditdesk.validation import NotFoundError, ValidationError


class TestApplyMargin:

    @pytest.mark.parametrize(
        "cost,bps,expected",
        [
            (4000, 2500, 5000),
            (999, 1000, 1099),   # 1098.9 rounds up
            (1, 5000, 2),        # 1.5 rounds half-up
            (333, 0, 333),
        ],
    )
    def test_rounding(self, cost, bps, expected):
        assert apply_margin(cost, bps) == expected


class TestPriceLadder:

    def _product(self, margin_bps=None, **prices):
        category = Category(name="C", profit_margin_bps=margin_bps) if margin_bps is not None else None
        return Product(id=7, name="P", category=category, **prices)

    def test_cost_margin_wins(self):
        price = resolve_unit_price(self._product(2500, cost_price_cents=4000, sale_price_cents=100, price_cents=200))
        assert (price.unit_price_cents, price.source) == (5000, "cost_margin")

    def test_zero_margin_falls_back_to_sale_price(self):
        price = resolve_unit_price(self._product(0, cost_price_cents=4000, sale_price_cents=4500, price_cents=6000))
        assert (price.unit_price_cents, price.source) == (4500, "sale_price")

    def test_no_cost_uses_sale_price(self):
        price = resolve_unit_price(self._product(2500, sale_price_cents=4500, price_cents=6000))
        assert price.source == "sale_price"

    def test_zero_cost_falls_back_to_list_price(self):
        price = resolve_unit_price(self._product(2500, cost_price_cents=0, price_cents=700))
        assert (price.unit_price_cents, price.source) == (700, "list_price")

    def test_zero_sale_price_ignored(self):
        price = resolve_unit_price(self._product(sale_price_cents=0, price_cents=700))
        assert (price.unit_price_cents, price.source) == (700, "list_price")

    def test_list_price_last(self):
        price = resolve_unit_price(self._product(price_cents=6000))
        assert (price.unit_price_cents, price.source) == (6000, "list_price")

    def test_unpriced(self):
        with pytest.raises(ValidationError) as exc:
            resolve_unit_price(self._product())
        assert exc.value.code == "unpriced-product"


class TestStockChange:

    def test_increase(self, product):
        change = inventory_service.adjust_stock(product.id, 5, "increase", created_by="tester")
        assert (change.previous_stock, change.new_stock) == (50, 55)
        assert db.session.get(Product, product.id).stock_quantity == 55

        log = db.session.query(SystemLog).filter_by(action="stock_increase", entity_id=product.id).one()
        assert log.user_id == "tester"

    def test_decrease(self, product):
        change = inventory_service.adjust_stock(product.id, 50, "decrease")
        assert change.new_stock == 0

    def test_never_negative(self, product):
        with pytest.raises(StockError) as exc:
            inventory_service.adjust_stock(product.id, 51, "decrease")
        assert exc.value.requested == 51
        assert db.session.get(Product, product.id).stock_quantity == 50

    @pytest.mark.parametrize("qty,operation", [(0, "increase"), (-3, "decrease"), (1, "set")])
    def test_invalid_input(self, product, qty, operation):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(product.id, qty, operation)

    def test_missing_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(8080, 1, "increase")

    def test_apply_leaves_product_untouched_on_error(self):
        prod = Product(id=3, name="Loose", stock_quantity=2)
        with pytest.raises(StockError):
            apply_stock_change(prod, 3, "decrease")
        assert prod.stock_quantity == 2
