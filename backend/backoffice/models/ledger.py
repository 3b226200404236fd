from __future__ import annotations

from datetime import datetime

from ..extensions import db
from backoffice.time_utils import to_utc_z, utcnow


class DebtCredit(db.Model):
    """
    Amount owed by or to a customer.

    INVARIANTS:
    - 0 <= remaining_amount_cents <= amount_cents
    - is_paid <=> remaining_amount_cents == 0
    - amount_cents is fixed at creation; remaining only ever decreases

    type ('debt' / 'credit') is an opaque tag; settlement is identical for both.
    version_id gives optimistic locking: every UPDATE is issued as
    "... WHERE id = :id AND version_id = :expected".
    """
    __tablename__ = "debt_credits"
    __table_args__ = (
        db.Index("ix_debt_credits_paid_due", "is_paid", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)

    amount_cents = db.Column(db.BigInteger, nullable=False)
    remaining_amount_cents = db.Column(db.BigInteger, nullable=False)

    description = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("debt_credits", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def is_overdue(self, now: datetime | None = None) -> bool:
        """Unpaid, has a due date, and that due date is strictly before now."""
        if self.due_date is None or self.is_paid:
            return False
        now = now or utcnow()
        due = self.due_date
        if due.tzinfo is not None:
            due = due.replace(tzinfo=None)
        return due < now

    def to_dict(self, now: datetime | None = None) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "description": self.description,
            "due_date": to_utc_z(self.due_date),
            "is_paid": self.is_paid,
            "is_overdue": self.is_overdue(now),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
