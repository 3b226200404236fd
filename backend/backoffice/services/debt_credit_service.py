# Overview: Service-layer operations for the debt/credit ledger; encapsulates business logic and database work.

"""
Debt/Credit Ledger Service

DESIGN PRINCIPLES:
- A record's amount is fixed at creation; only remaining_amount_cents moves.
- Payments only ever decrease the remaining balance, never below zero.
- is_paid is derived from the balance (remaining == 0) on every write.
- type ('debt' / 'credit') is an opaque tag: settlement arithmetic is the same.
- No payment history entity: a payment is visible only as a balance decrement.

CONCURRENCY:
The record is read with SELECT ... FOR UPDATE and written through the
version_id optimistic lock. A concurrent writer makes the UPDATE match zero
rows (StaleDataError); run_with_retry re-reads, re-validates and retries.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import DebtCredit, Customer
from ..errors import (
    CustomerNotFoundError,
    RecordNotFoundError,
    AlreadyPaidError,
    OverpaymentError,
    ValidationError,
)
from ..validation import enforce_rules_debt_credit, enforce_rules_payment
from backoffice.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# LISTING FILTERS (CONSTANTS)
# =============================================================================

STATUS_UNPAID = "unpaid"
STATUS_PAID = "paid"
STATUS_OVERDUE = "overdue"

VALID_STATUSES = [STATUS_UNPAID, STATUS_PAID, STATUS_OVERDUE]


# =============================================================================
# CREATION
# =============================================================================

def create_debt_credit(
    *,
    customer_id: int,
    type: str,
    amount_cents: int,
    description: str | None = None,
    due_date: datetime | None = None,
) -> DebtCredit:
    """
    Open a debt/credit record for a customer.

    remaining_amount_cents starts equal to amount_cents and is_paid is False.

    Raises:
        ValidationError: bad type or non-positive amount
        CustomerNotFoundError: customer does not exist
    """
    enforce_rules_debt_credit({"type": type, "amount_cents": amount_cents})

    def _op():
        if db.session.get(Customer, customer_id) is None:
            raise CustomerNotFoundError(customer_id)

        record = DebtCredit(
            customer_id=customer_id,
            type=type,
            amount_cents=amount_cents,
            remaining_amount_cents=amount_cents,
            description=description,
            due_date=due_date,
            is_paid=False,
        )
        db.session.add(record)
        db.session.commit()
        return record

    return run_with_retry(_op)


# =============================================================================
# PAYMENT
# =============================================================================

def pay_debt_credit(
    *,
    debt_credit_id: int,
    payment_amount_cents: int,
    notes: str | None = None,
) -> DebtCredit:
    """
    Apply a payment against a record's remaining balance.

    Args:
        debt_credit_id: Record being settled
        payment_amount_cents: Positive amount; may equal but not exceed the remaining balance
        notes: Free text, written to the application log only

    Raises:
        ValidationError: payment amount is not a positive integer
        RecordNotFoundError: record does not exist
        AlreadyPaidError: record is already fully paid
        OverpaymentError: payment exceeds the remaining balance
        ConcurrentUpdateError: record kept changing underneath us
    """
    enforce_rules_payment(payment_amount_cents)

    def _op():
        record = lock_for_update(
            db.session.query(DebtCredit).filter_by(id=debt_credit_id)
        ).first()
        if record is None:
            raise RecordNotFoundError(debt_credit_id)

        if record.is_paid:
            raise AlreadyPaidError(record.id)

        remaining = record.remaining_amount_cents
        if payment_amount_cents > remaining:
            raise OverpaymentError(record.id, payment_amount_cents, remaining)

        record.remaining_amount_cents = remaining - payment_amount_cents
        record.is_paid = record.remaining_amount_cents == 0
        record.updated_at = utcnow()

        db.session.commit()

        current_app.logger.info(
            "Applied payment of %s cents to debt/credit %s (remaining %s)%s",
            payment_amount_cents,
            record.id,
            record.remaining_amount_cents,
            f": {notes}" if notes else "",
        )
        return record

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_debt_credit(debt_credit_id: int) -> DebtCredit:
    record = db.session.get(DebtCredit, debt_credit_id)
    if record is None:
        raise RecordNotFoundError(debt_credit_id)
    return record


def list_debt_credits(
    *,
    customer_id: int | None = None,
    status: str | None = None,
    now: datetime | None = None,
) -> list[DebtCredit]:
    """
    List records: unpaid first, then earliest due date (undated last), then newest.

    status:
        'unpaid'  -> is_paid is False
        'paid'    -> is_paid is True
        'overdue' -> unpaid with a due date strictly before now
    """
    if status is not None and status not in VALID_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(VALID_STATUSES)}")

    q = db.session.query(DebtCredit)
    if customer_id is not None:
        q = q.filter(DebtCredit.customer_id == customer_id)

    if status == STATUS_PAID:
        q = q.filter(DebtCredit.is_paid.is_(True))
    elif status == STATUS_UNPAID:
        q = q.filter(DebtCredit.is_paid.is_(False))
    elif status == STATUS_OVERDUE:
        q = q.filter(
            DebtCredit.is_paid.is_(False),
            DebtCredit.due_date.isnot(None),
            DebtCredit.due_date < (now or utcnow()),
        )

    return q.order_by(
        DebtCredit.is_paid.asc(),
        DebtCredit.due_date.is_(None).asc(),
        DebtCredit.due_date.asc(),
        DebtCredit.created_at.desc(),
        DebtCredit.id.desc(),
    ).all()
