# Overview: Pytest coverage for the retrying unit-of-work helper and optimistic locking.

import pytest
from sqlalchemy import create_engine, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Customer, DebtCredit, Product, StockMovement
from backoffice.errors import ConcurrentUpdateError, OverpaymentError, StateConflictError, ValidationError
from backoffice.services import customer_service, debt_credit_service, inventory_service, products_service
from backoffice.services.concurrency import run_with_retry


def test_returns_value_of_successful_call(db_session):
    assert run_with_retry(lambda: 42, backoff_base=0) == 42


def test_retries_stale_data_then_succeeds(db_session):
    calls = {"n": 0}

    def _op():
        calls["n"] += 1
        if calls["n"] == 1:
            raise StaleDataError("version mismatch")
        return "ok"

    assert run_with_retry(_op, backoff_base=0) == "ok"
    assert calls["n"] == 2


def test_persistent_stale_data_becomes_concurrent_update(db_session):
    calls = {"n": 0}

    def _op():
        calls["n"] += 1
        raise StaleDataError("version mismatch")

    with pytest.raises(ConcurrentUpdateError) as exc_info:
        run_with_retry(_op, attempts=3, backoff_base=0)

    assert calls["n"] == 3
    assert isinstance(exc_info.value, StateConflictError)


def test_persistent_operational_error_is_reraised(db_session):
    def _op():
        raise OperationalError("UPDATE products", {}, Exception("database is locked"))

    with pytest.raises(OperationalError):
        run_with_retry(_op, attempts=2, backoff_base=0)


def test_domain_errors_are_not_retried_and_roll_back(db_session):
    calls = {"n": 0}

    def _op():
        calls["n"] += 1
        db.session.add(Customer(name="Half written"))
        db.session.flush()
        raise ValidationError("nope")

    with pytest.raises(ValidationError):
        run_with_retry(_op, backoff_base=0)

    assert calls["n"] == 1
    assert db.session.query(Customer).count() == 0


@pytest.fixture
def file_db(tmp_path):
    """App on a file-backed SQLite database plus a second, independent engine."""
    uri = f"sqlite:///{tmp_path / 'backoffice.sqlite3'}"
    file_app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": uri})

    with file_app.app_context():
        db.create_all()
        other_engine = create_engine(uri)
        yield other_engine
        db.session.remove()
        other_engine.dispose()
        db.drop_all()


class _WriteAfterFirstRead:
    """Wraps a locked query; the first read is followed by a commit from another connection."""

    def __init__(self, query, reads, concurrent_write):
        self._query = query
        self._reads = reads
        self._concurrent_write = concurrent_write

    def first(self):
        row = self._query.first()
        self._reads["n"] += 1
        if self._reads["n"] == 1:
            self._concurrent_write()
        return row


def _interleave(monkeypatch, module, concurrent_write):
    reads = {"n": 0}
    real_lock = module.lock_for_update
    monkeypatch.setattr(
        module,
        "lock_for_update",
        lambda query: _WriteAfterFirstRead(real_lock(query), reads, concurrent_write),
    )
    return reads


class TestOptimisticLocking:

    def test_payment_revalidates_against_concurrent_payment(self, file_db, monkeypatch):
        customer = customer_service.create_customer(patch={"name": "Rina"})
        record = debt_credit_service.create_debt_credit(customer_id=customer.id, type="debt", amount_cents=1000)
        record_id = record.id
        table = DebtCredit.__table__

        def _other_cashier_pays_800():
            with file_db.begin() as conn:
                conn.execute(
                    update(table)
                    .where(table.c.id == record_id)
                    .values(remaining_amount_cents=200, version_id=table.c.version_id + 1)
                )

        reads = _interleave(monkeypatch, debt_credit_service, _other_cashier_pays_800)

        with pytest.raises(OverpaymentError) as exc_info:
            debt_credit_service.pay_debt_credit(debt_credit_id=record_id, payment_amount_cents=500)

        assert reads["n"] == 2
        assert exc_info.value.details["remaining_amount_cents"] == 200

        db.session.expire_all()
        stored = db.session.get(DebtCredit, record_id)
        assert stored.remaining_amount_cents == 200
        assert stored.is_paid is False
        assert stored.version_id == 2

    def test_payment_retries_onto_fresh_balance(self, file_db, monkeypatch):
        customer = customer_service.create_customer(patch={"name": "Rina"})
        record = debt_credit_service.create_debt_credit(customer_id=customer.id, type="debt", amount_cents=1000)
        record_id = record.id
        table = DebtCredit.__table__

        def _other_cashier_pays_400():
            with file_db.begin() as conn:
                conn.execute(
                    update(table)
                    .where(table.c.id == record_id)
                    .values(remaining_amount_cents=600, version_id=table.c.version_id + 1)
                )

        _interleave(monkeypatch, debt_credit_service, _other_cashier_pays_400)

        paid = debt_credit_service.pay_debt_credit(debt_credit_id=record_id, payment_amount_cents=600)

        assert paid.remaining_amount_cents == 0
        assert paid.is_paid is True
        assert paid.version_id == 3

    def test_adjustment_delta_uses_fresh_counter(self, file_db, monkeypatch):
        product = products_service.create_product(
            patch={"name": "Teh Botol", "price_cents": 500, "unit": "pcs", "stock_quantity": 10}
        )
        product_id = product.id
        table = Product.__table__

        def _concurrent_counter_bump():
            with file_db.begin() as conn:
                conn.execute(
                    update(table)
                    .where(table.c.id == product_id)
                    .values(stock_quantity=12, version_id=table.c.version_id + 1)
                )

        reads = _interleave(monkeypatch, inventory_service, _concurrent_counter_bump)

        inventory_service.adjust_stock(product_id=product_id, new_quantity=7)

        assert reads["n"] == 2
        db.session.expire_all()
        assert db.session.get(Product, product_id).stock_quantity == 7
        last = (
            db.session.query(StockMovement)
            .filter_by(product_id=product_id)
            .order_by(StockMovement.id.desc())
            .first()
        )
        assert last.quantity == -5
