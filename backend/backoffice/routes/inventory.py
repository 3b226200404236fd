# backend/backoffice/routes/inventory.py
"""
Stock routes: adjustments, purchase receives, the movement log and reconciliation.
"""
from flask import Blueprint, request, jsonify, current_app

from ..services import inventory_service
from ..errors import BackofficeError, ValidationError
from ..responses import error_response, query_int
from ..validation import coerce_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _required_int(payload: dict, key: str) -> int:
    if payload.get(key) is None:
        raise ValidationError(f"{key} is required")
    return coerce_int(key, payload[key])


def _optional_text(payload: dict, key: str):
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@inventory_bp.post("/adjust")
def adjust_stock_route():
    """
    Set a product's stock to an absolute quantity.

    Body: {"product_id": int, "new_quantity": int >= 0, "notes": str | null}
    """
    payload = request.get_json(silent=True) or {}
    try:
        product = inventory_service.adjust_stock(
            product_id=_required_int(payload, "product_id"),
            new_quantity=_required_int(payload, "new_quantity"),
            notes=_optional_text(payload, "notes"),
        )
        return jsonify({"product": product.to_dict()}), 200
    except BackofficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/receive")
def receive_stock_route():
    """
    Receive purchased stock.

    Body: {"product_id": int, "quantity": int > 0, "reference_id": int | null, "notes": str | null}
    """
    payload = request.get_json(silent=True) or {}
    try:
        reference_id = payload.get("reference_id")
        product = inventory_service.receive_stock(
            product_id=_required_int(payload, "product_id"),
            quantity=_required_int(payload, "quantity"),
            reference_id=coerce_int("reference_id", reference_id) if reference_id is not None else None,
            notes=_optional_text(payload, "notes"),
        )
        return jsonify({"product": product.to_dict()}), 201
    except BackofficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
def list_movements_route():
    try:
        movements = inventory_service.list_stock_movements(
            product_id=query_int("product_id"),
            reference_type=request.args.get("reference_type"),
            reference_id=query_int("reference_id"),
            limit=query_int("limit"),
        )
    except BackofficeError as e:
        return error_response(e)
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200


@inventory_bp.get("/low-stock")
def low_stock_route():
    products = inventory_service.list_low_stock_products()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@inventory_bp.get("/reconcile")
def reconcile_route():
    """Report products whose stock counter disagrees with their movement log."""
    try:
        discrepancies = inventory_service.reconcile_stock(query_int("product_id"))
    except BackofficeError as e:
        return error_response(e)
    return jsonify({"consistent": not discrepancies, "discrepancies": discrepancies}), 200
