# backend/backoffice/routes/expenses.py
from flask import Blueprint, request, jsonify, current_app

from ..models import Expense
from ..services import expense_service
from ..errors import BackofficeError
from ..responses import error_response
from ..validation import ModelValidationPolicy, validate_payload

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"type", "amount_cents", "description", "expense_date"},
    required_on_create={"type", "amount_cents"},
)

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
def list_expenses_route():
    expenses = expense_service.list_expenses(expense_type=request.args.get("type"))
    return jsonify({"items": [e.to_dict() for e in expenses], "count": len(expenses)}), 200


@expenses_bp.post("")
def create_expense_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
        expense = expense_service.create_expense(patch=patch)
        return jsonify({"expense": expense.to_dict()}), 201
    except BackofficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500
