# Overview: Flask API routes for the product boundary used by credit sales; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..extensions import db
from ..models import Product
from ..services import inventory_service
from ..services.concurrency import StorageError
from ..services.inventory_service import StockError
from ..services.pricing_service import resolve_unit_price
from ..validation import NotFoundError, ValidationError, coerce_int
from ..decorators import require_operator

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _get_product_or_404(product_id: int):
    product = db.session.get(Product, product_id)
    if not product:
        return None, (jsonify({"error": "Product not found"}), 404)
    return product, None


@products_bp.get("/<int:product_id>")
@require_operator
def get_product_route(product_id: int):
    product, error = _get_product_or_404(product_id)
    if error:
        return error
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/<int:product_id>/price")
@require_operator
def get_credit_price_route(product_id: int):
    """Resolved unit price for a credit sale (cost + category margin, else sale/list price)."""
    product, error = _get_product_or_404(product_id)
    if error:
        return error
    try:
        price = resolve_unit_price(product)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    return jsonify({"product_id": product.id, **price.to_dict()}), 200


@products_bp.put("/<int:product_id>/stock")
@require_operator
def update_stock_route(product_id: int):
    """
    Increase or decrease stock.

    Body: {"quantity": int > 0, "operation": "increase" | "decrease"}
    Returns: {"previous_stock", "new_stock"}
    """
    data = request.get_json(silent=True) or {}
    if data.get("quantity") is None or not data.get("operation"):
        return jsonify({"error": "quantity and operation required"}), 400

    try:
        quantity = coerce_int(data["quantity"], "quantity")
        change = inventory_service.adjust_stock(
            product_id,
            quantity,
            data["operation"],
            created_by=g.operator,
        )
        return jsonify(change.to_dict()), 200

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except StockError as e:
        return jsonify(e.to_dict()), 409
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StorageError:
        current_app.logger.exception("Stock update failed for product %s", product_id)
        return jsonify({"error": "Storage error"}), 500
