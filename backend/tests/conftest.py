"""
Pytest fixtures for back office tests.

Provides an in-memory database, per-test table wipes, a Flask test client
and small factories for products, customers and ledger records.
"""

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.services import products_service, customer_service, debt_credit_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ALLOW_NEGATIVE_STOCK': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()
        app.config['ALLOW_NEGATIVE_STOCK'] = True


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: create a product through the service so opening stock is logged."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        patch = {
            "name": f"Product {counter['n']}",
            "price_cents": 1000,
            "unit": "pcs",
            "category": None,
            "barcode": None,
            "stock_quantity": 0,
            "min_stock_threshold": 5,
        }
        patch.update(overrides)
        return products_service.create_product(patch=patch)

    return _make


@pytest.fixture(scope='function')
def customer(db_session):
    """Create a customer."""
    return customer_service.create_customer(patch={"name": "Budi", "phone": "0812000111", "address": None})


@pytest.fixture(scope='function')
def debt_record(db_session, customer):
    """Debt of 1000 cents owed by the customer, no due date."""
    return debt_credit_service.create_debt_credit(
        customer_id=customer.id,
        type="debt",
        amount_cents=1000,
        description="Tab",
    )
