from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class Expense(db.Model):
    """Operating expense (capital, electricity, rent, salary, other)."""
    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    description = db.Column(db.Text, nullable=True)
    expense_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "expense_date": to_utc_z(self.expense_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
