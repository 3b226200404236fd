# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/backoffice/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, current_app

from ..services import sales_service
from ..services.sales_service import compute_totals
from ..errors import BackofficeError, ValidationError
from ..responses import error_response, query_int
from ..validation import coerce_int, normalize_sale_items


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Record a sale: header, items, stock decrement and movements in one transaction.

    Body:
        customer_id: int | null (null = walk-in)
        items: [{"product_id", "quantity", "unit_price_cents"}, ...]
        discount_amount_cents: int >= 0 (default 0)
        payment_method: cash | qris | transfer
        notes: str | null
    """
    data = request.get_json(silent=True) or {}
    try:
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")

        customer_id = data.get("customer_id")
        if customer_id is not None:
            customer_id = coerce_int("customer_id", customer_id)

        discount = coerce_int("discount_amount_cents", data.get("discount_amount_cents", 0))

        # The processor itself passes a negative final amount through; the API does not accept one
        lines = normalize_sale_items(data.get("items"))
        total, _ = compute_totals(lines, discount)
        if discount > total:
            raise ValidationError(
                "discount_amount_cents cannot exceed the sale total",
                details={"total_amount_cents": total, "discount_amount_cents": discount},
            )

        sale = sales_service.create_sale(
            customer_id=customer_id,
            items=data.get("items"),
            discount_amount_cents=discount,
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except BackofficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    try:
        sales = sales_service.list_sales(
            customer_id=query_int("customer_id"),
            limit=query_int("limit"),
        )
    except BackofficeError as e:
        return error_response(e)
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    """Get sale with items."""
    try:
        sale, items = sales_service.get_sale_details(sale_id)
    except BackofficeError as e:
        return error_response(e)

    return jsonify({
        "sale": sale.to_dict(),
        "items": [item.to_dict() for item in items],
    }), 200
