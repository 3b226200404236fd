# Overview: Flask API routes for products; parses input and returns JSON responses.

# backend/backoffice/routes/products.py
"""
Product catalogue routes.

stock_quantity is accepted on create only (opening stock). Later changes go
through /api/inventory/adjust or /api/inventory/receive.
"""
from flask import Blueprint, request, jsonify, current_app

from ..models import Product
from ..services import products_service
from ..errors import BackofficeError
from ..responses import error_response, query_flag
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price_cents", "unit", "category", "barcode", "stock_quantity", "min_stock_threshold", "is_active"},
    required_on_create={"name", "price_cents", "unit"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price_cents", "unit", "category", "barcode", "min_stock_threshold", "is_active"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products ordered by name.

    Query params:
    - active_only: bool (optional)
    - category: str (optional)
    """
    products = products_service.list_products(
        active_only=query_flag("active_only"),
        category=request.args.get("category"),
    )
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.post("")
def create_product():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
        product = products_service.create_product(patch=patch)
        return jsonify({"product": product.to_dict()}), 201
    except BackofficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except BackofficeError as e:
        return error_response(e)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/barcode/<string:barcode>")
def get_product_by_barcode(barcode: str):
    product = products_service.get_product_by_barcode(barcode)
    if product is None:
        return jsonify({"error": "Product not found", "details": {"barcode": barcode}}), 404
    return jsonify({"product": product.to_dict()}), 200


@products_bp.patch("/<int:product_id>")
def update_product(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
        product = products_service.update_product(product_id, patch=patch)
        return jsonify({"product": product.to_dict()}), 200
    except BackofficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500
