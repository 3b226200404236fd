# Overview: Flask API routes for the debt/credit ledger; parses input and returns JSON responses.

# backend/backoffice/routes/debts.py
"""
Debt/credit routes.

- POST /api/debts                 open a record
- GET  /api/debts                 list (customer_id, status=unpaid|paid|overdue)
- GET  /api/debts/<id>            single record
- POST /api/debts/<id>/payments   apply a payment
"""
from flask import Blueprint, request, jsonify, current_app

from ..models import DebtCredit
from ..services import debt_credit_service
from ..errors import BackofficeError, ValidationError
from ..responses import error_response, query_int
from ..validation import ModelValidationPolicy, validate_payload, coerce_int
from backoffice.time_utils import utcnow

DEBT_CREDIT_POLICY = ModelValidationPolicy(
    writable_fields={"customer_id", "type", "amount_cents", "description", "due_date"},
    required_on_create={"customer_id", "type", "amount_cents"},
)

debts_bp = Blueprint("debts", __name__, url_prefix="/api/debts")


@debts_bp.post("")
def create_debt_credit_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=DebtCredit, payload=payload, policy=DEBT_CREDIT_POLICY, partial=False)
        record = debt_credit_service.create_debt_credit(
            customer_id=patch["customer_id"],
            type=patch["type"],
            amount_cents=patch["amount_cents"],
            description=patch.get("description"),
            due_date=patch.get("due_date"),
        )
        return jsonify({"debt_credit": record.to_dict()}), 201
    except BackofficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create debt/credit record")
        return jsonify({"error": "Internal server error"}), 500


@debts_bp.get("")
def list_debt_credits_route():
    now = utcnow()
    try:
        records = debt_credit_service.list_debt_credits(
            customer_id=query_int("customer_id"),
            status=request.args.get("status"),
            now=now,
        )
    except BackofficeError as e:
        return error_response(e)
    return jsonify({"items": [r.to_dict(now) for r in records], "count": len(records)}), 200


@debts_bp.get("/<int:debt_credit_id>")
def get_debt_credit_route(debt_credit_id: int):
    try:
        record = debt_credit_service.get_debt_credit(debt_credit_id)
    except BackofficeError as e:
        return error_response(e)
    return jsonify({"debt_credit": record.to_dict()}), 200


@debts_bp.post("/<int:debt_credit_id>/payments")
def pay_debt_credit_route(debt_credit_id: int):
    """
    Apply a payment.

    Body: {"payment_amount_cents": int > 0, "notes": str | null}
    """
    payload = request.get_json(silent=True) or {}
    try:
        if payload.get("payment_amount_cents") is None:
            raise ValidationError("payment_amount_cents is required")
        record = debt_credit_service.pay_debt_credit(
            debt_credit_id=debt_credit_id,
            payment_amount_cents=coerce_int("payment_amount_cents", payload["payment_amount_cents"]),
            notes=payload.get("notes"),
        )
        return jsonify({"debt_credit": record.to_dict()}), 200
    except BackofficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply debt/credit payment")
        return jsonify({"error": "Internal server error"}), 500
