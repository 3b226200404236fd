# Overview: Service-layer operations for expenses.

from __future__ import annotations

from ..extensions import db
from ..models import Expense
from ..validation import enforce_rules_expense
from backoffice.time_utils import utcnow
from .concurrency import run_with_retry


def create_expense(*, patch: dict) -> Expense:
    """Record an expense; expense_date defaults to now."""
    enforce_rules_expense(patch)

    def _op():
        expense = Expense(
            type=patch["type"],
            amount_cents=patch["amount_cents"],
            description=patch.get("description"),
            expense_date=patch.get("expense_date") or utcnow(),
        )
        db.session.add(expense)
        db.session.commit()
        return expense

    return run_with_retry(_op)


def list_expenses(*, expense_type: str | None = None) -> list[Expense]:
    q = db.session.query(Expense)
    if expense_type is not None:
        q = q.filter(Expense.type == expense_type)
    return q.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()
