# Overview: Domain error taxonomy shared by services, routes and the CLI.

"""
Back office error taxonomy.

- ValidationError   -> structural input problems caught before persistence (400)
- NotFoundError     -> a referenced product, customer, sale or ledger record is missing (404)
- ConflictError     -> business rule conflicts such as a duplicate barcode (409)
- StateConflictError-> the current state of a record forbids the operation (409)

Services raise these after rolling back their unit of work; the original
exception reaches the caller unchanged. Store failures (SQLAlchemyError)
are never wrapped in one of these.
"""

from __future__ import annotations


class BackofficeError(Exception):
    """Base class for errors the API reports back to the caller."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(BackofficeError, ValueError):
    """400-level input problem."""


class EmptyCartError(ValidationError):
    def __init__(self, message: str = "At least one item is required"):
        super().__init__(message)


class NotFoundError(BackofficeError):
    """404-level missing entity."""
    entity = "record"

    def __init__(self, entity_id=None, message: str | None = None):
        if message is None:
            message = f"{self.entity.capitalize()} with id {entity_id} not found"
        super().__init__(message, details={f"{self.entity.replace(' ', '_')}_id": entity_id})
        self.entity_id = entity_id


class ProductNotFoundError(NotFoundError):
    entity = "product"


class CustomerNotFoundError(NotFoundError):
    entity = "customer"


class SaleNotFoundError(NotFoundError):
    entity = "sale"


class RecordNotFoundError(NotFoundError):
    entity = "debt/credit record"

    def __init__(self, entity_id=None, message: str | None = None):
        super().__init__(entity_id, message or "Debt/credit record not found")
        self.details = {"debt_credit_id": entity_id}


class ConflictError(BackofficeError, ValueError):
    """409-level business rule conflict (e.g., duplicate barcode)."""


class StateConflictError(ConflictError):
    """The record's current state does not allow the requested change."""


class AlreadyPaidError(StateConflictError):
    def __init__(self, debt_credit_id: int):
        super().__init__(
            "Debt/credit is already fully paid",
            details={"debt_credit_id": debt_credit_id},
        )


class OverpaymentError(StateConflictError):
    def __init__(self, debt_credit_id: int, payment_amount_cents: int, remaining_amount_cents: int):
        super().__init__(
            "Payment amount cannot exceed remaining amount",
            details={
                "debt_credit_id": debt_credit_id,
                "payment_amount_cents": payment_amount_cents,
                "remaining_amount_cents": remaining_amount_cents,
            },
        )


class InsufficientStockError(StateConflictError):
    def __init__(self, items: list[dict]):
        super().__init__("Insufficient stock to complete sale", details={"items": items})


class ConcurrentUpdateError(StateConflictError):
    """Optimistic lock kept failing; the caller may retry manually."""
