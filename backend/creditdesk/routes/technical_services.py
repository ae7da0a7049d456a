# Overview: Flask API routes for technical service accounts and their credit ledger; parses input and returns JSON responses.

# backend/creditdesk/routes/technical_services.py
"""
Technical service (credit customer) routes.

All amounts are integer cents. Ledger writes (transactions, sales) answer
409 with requires_confirmation=true when the credit limit would be passed;
re-send the same body with "confirm_over_limit": true to go ahead.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..services import account_service, credit_sale_service, history_service, transaction_service
from ..services.balance_engine import LimitExceededWarning
from ..services.concurrency import StorageError
from ..services.inventory_service import StockError
from ..validation import NotFoundError, ValidationError, coerce_int
from ..decorators import require_operator
from creditdesk.time_utils import parse_iso_date

technical_services_bp = Blueprint("technical_services", __name__, url_prefix="/api/technical-services")


def _ledger_error_response(e: Exception, context: str):
    if isinstance(e, ValidationError):
        return jsonify(e.to_dict()), 400
    if isinstance(e, (StockError, LimitExceededWarning)):
        return jsonify(e.to_dict()), 409
    if isinstance(e, NotFoundError):
        return jsonify({"error": str(e)}), 404
    current_app.logger.exception("Failed to %s", context)
    if isinstance(e, StorageError):
        return jsonify({"error": "Storage error"}), 500
    return jsonify({"error": "Internal server error"}), 500


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@technical_services_bp.get("")
@require_operator
def list_technical_services_route():
    """
    List accounts.

    Query params:
    - include_inactive: bool (default false)
    - q: search on name, contact person, tax number
    """
    accounts = account_service.list_accounts(
        include_inactive=_as_bool(request.args.get("include_inactive", "false")),
        search=request.args.get("q"),
    )
    return jsonify({"items": [a.to_dict() for a in accounts]}), 200


@technical_services_bp.post("")
@require_operator
def create_technical_service_route():
    payload = request.get_json(silent=True) or {}
    try:
        account = account_service.create_account(payload, created_by=g.operator)
        return jsonify({"technical_service": account.to_dict()}), 201
    except Exception as e:
        return _ledger_error_response(e, "create technical service")


@technical_services_bp.get("/summary")
@require_operator
def technical_services_summary_route():
    return jsonify(account_service.account_summary()), 200


@technical_services_bp.get("/<int:service_id>")
@require_operator
def get_technical_service_route(service_id: int):
    try:
        account = account_service.get_account(service_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"technical_service": account.to_dict()}), 200


@technical_services_bp.put("/<int:service_id>")
@require_operator
def update_technical_service_route(service_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        account = account_service.update_account(service_id, payload, created_by=g.operator)
        return jsonify({"technical_service": account.to_dict()}), 200
    except Exception as e:
        return _ledger_error_response(e, "update technical service")


@technical_services_bp.delete("/<int:service_id>")
@require_operator
def deactivate_technical_service_route(service_id: int):
    """
    Deactivate (soft delete). Ledger rows and history are kept; the
    account stops accepting sales and transactions.
    """
    try:
        account = account_service.deactivate_account(service_id, created_by=g.operator)
        return jsonify({"technical_service": account.to_dict()}), 200
    except Exception as e:
        return _ledger_error_response(e, "deactivate technical service")


@technical_services_bp.post("/<int:service_id>/transactions")
@require_operator
def record_transaction_route(service_id: int):
    """
    Record a payment or a balance adjustment.

    Body:
    - type: "payment" | "adjustment"
    - amount_cents: payment amount, or the target balance for an adjustment
    - description, reference_number, payment_method: optional
    - confirm_over_limit: bool (needed when an adjustment passes the limit)
    """
    data = request.get_json(silent=True) or {}
    if data.get("amount_cents") is None:
        return jsonify({"error": "amount_cents required", "code": "missing-field", "details": {}}), 400

    try:
        entry = transaction_service.parse_entry(
            data.get("type"),
            coerce_int(data["amount_cents"], "amount_cents"),
        )
        result = transaction_service.record_transaction(
            service_id,
            entry,
            description=data.get("description"),
            reference_number=data.get("reference_number"),
            payment_method=data.get("payment_method"),
            created_by=g.operator,
            confirm_over_limit=_as_bool(data.get("confirm_over_limit", False)),
        )
        return jsonify(result.to_dict()), 201
    except Exception as e:
        return _ledger_error_response(e, "record transaction")


@technical_services_bp.get("/<int:service_id>/transactions")
@require_operator
def list_transactions_route(service_id: int):
    try:
        rows = account_service.list_transactions(service_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"items": [r.to_dict() for r in rows]}), 200


@technical_services_bp.post("/<int:service_id>/sales")
@require_operator
def create_credit_sale_route(service_id: int):
    """
    Sell products on account.

    Body:
    - lines: [{"product_id", "quantity"}, ...]
      (or a single product_id/quantity at the top level)
    - notes, sale_date (YYYY-MM-DD): optional
    - confirm_over_limit: bool

    Unit prices are resolved server-side; any client-sent price is ignored.
    """
    data = request.get_json(silent=True) or {}
    raw_lines = data.get("lines")
    if raw_lines is None and data.get("product_id") is not None:
        raw_lines = [{"product_id": data.get("product_id"), "quantity": data.get("quantity")}]

    try:
        try:
            sale_date = parse_iso_date(data.get("sale_date"))
        except ValueError:
            raise ValidationError("sale_date must be YYYY-MM-DD", details={"sale_date": data.get("sale_date")})

        cart = credit_sale_service.parse_cart(raw_lines)
        result = credit_sale_service.compose_sale(
            service_id,
            cart,
            notes=data.get("notes"),
            sale_date=sale_date,
            created_by=g.operator,
            confirm_over_limit=_as_bool(data.get("confirm_over_limit", False)),
        )
        return jsonify(result.to_dict()), 201
    except Exception as e:
        return _ledger_error_response(e, "record credit sale")


@technical_services_bp.get("/<int:service_id>/sales")
@require_operator
def list_sales_route(service_id: int):
    try:
        rows = account_service.list_sales(service_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"items": [r.to_dict() for r in rows]}), 200


@technical_services_bp.get("/<int:service_id>/history")
@require_operator
def history_route(service_id: int):
    """
    Merged history feed, newest first.

    Query params:
    - type: all | transactions | sales (default all)
    - start_date, end_date: inclusive YYYY-MM-DD bounds
    """
    try:
        account_service.get_account(service_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    try:
        start_date = parse_iso_date(request.args.get("start_date"))
        end_date = parse_iso_date(request.args.get("end_date"))
    except ValueError:
        return jsonify({"error": "start_date and end_date must be YYYY-MM-DD"}), 400

    try:
        items = history_service.get_history(
            service_id,
            feed_type=request.args.get("type", "all"),
            start_date=start_date,
            end_date=end_date,
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    return jsonify({"items": items, "summary": history_service.summarize_feed(items)}), 200


@technical_services_bp.get("/<int:service_id>/balance-check")
@require_operator
def balance_check_route(service_id: int):
    """Stored balance vs. the balance re-derived from ledger rows."""
    try:
        verification = account_service.verify_balance(service_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(verification.to_dict()), 200
