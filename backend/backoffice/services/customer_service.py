# Overview: Service-layer operations for customers.

from __future__ import annotations

from ..extensions import db
from ..models import Customer
from ..errors import CustomerNotFoundError
from .concurrency import run_with_retry


def create_customer(*, patch: dict) -> Customer:
    def _op():
        customer = Customer(**patch)
        db.session.add(customer)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFoundError(customer_id)
    return customer


def list_customers() -> list[Customer]:
    return db.session.query(Customer).order_by(Customer.name.asc(), Customer.id.asc()).all()
