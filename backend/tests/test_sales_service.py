# Overview: Pytest coverage for atomic sale recording.

"""
Sale Transaction Tests

Prove that a sale writes its header, items, stock decrement and movement
trail together, or nothing at all.
"""

import pytest

from backoffice.extensions import db
from backoffice.models import Product, Sale, SaleItem, StockMovement
from backoffice.errors import (
    EmptyCartError,
    ValidationError,
    NotFoundError,
    ProductNotFoundError,
    CustomerNotFoundError,
    SaleNotFoundError,
    InsufficientStockError,
    StateConflictError,
)
from backoffice.services import sales_service, products_service
from backoffice.services.inventory_service import reconcile_stock


def _counts():
    return (
        db.session.query(Sale).count(),
        db.session.query(SaleItem).count(),
        db.session.query(StockMovement).count(),
    )


class TestCreateSale:

    def test_totals_and_stock_decrement(self, make_product, customer):
        rice = make_product(name="Rice", stock_quantity=20)
        oil = make_product(name="Oil", stock_quantity=10)

        sale = sales_service.create_sale(
            customer_id=customer.id,
            items=[
                {"product_id": rice.id, "quantity": 3, "unit_price_cents": 1500},
                {"product_id": oil.id, "quantity": 2, "unit_price_cents": 2000},
            ],
            discount_amount_cents=500,
            payment_method="cash",
            notes="regular",
        )

        assert sale.id is not None
        assert sale.total_amount_cents == 3 * 1500 + 2 * 2000
        assert sale.discount_amount_cents == 500
        assert sale.final_amount_cents == sale.total_amount_cents - sale.discount_amount_cents
        assert sale.customer_id == customer.id

        assert db.session.get(Product, rice.id).stock_quantity == 17
        assert db.session.get(Product, oil.id).stock_quantity == 8

    def test_one_out_movement_per_line(self, make_product):
        a = make_product(stock_quantity=5)
        b = make_product(stock_quantity=5)

        sale = sales_service.create_sale(
            customer_id=None,
            items=[
                {"product_id": a.id, "quantity": 1, "unit_price_cents": 100},
                {"product_id": b.id, "quantity": 4, "unit_price_cents": 250},
            ],
            payment_method="qris",
        )

        movements = (
            db.session.query(StockMovement)
            .filter_by(reference_type="sale", reference_id=sale.id)
            .order_by(StockMovement.id.asc())
            .all()
        )
        assert [(m.product_id, m.quantity) for m in movements] == [(a.id, -1), (b.id, -4)]
        assert all(m.movement_type == "out" for m in movements)
        assert all(m.notes == f"Sale #{sale.id}" for m in movements)

    def test_items_snapshot_unit_price(self, make_product):
        p = make_product(price_cents=1000, stock_quantity=10)

        sale = sales_service.create_sale(
            customer_id=None,
            items=[{"product_id": p.id, "quantity": 2, "unit_price_cents": 900}],
            payment_method="transfer",
        )
        products_service.update_product(p.id, patch={"price_cents": 5000})

        _, items = sales_service.get_sale_details(sale.id)
        assert len(items) == 1
        assert items[0].unit_price_cents == 900
        assert items[0].total_price_cents == 1800

    def test_walk_in_sale(self, make_product):
        p = make_product(stock_quantity=1)
        sale = sales_service.create_sale(
            customer_id=None,
            items=[{"product_id": p.id, "quantity": 1, "unit_price_cents": 100}],
            payment_method="cash",
        )
        assert sale.customer_id is None

    def test_same_product_on_two_lines(self, make_product):
        p = make_product(stock_quantity=10)

        sales_service.create_sale(
            customer_id=None,
            items=[
                {"product_id": p.id, "quantity": 2, "unit_price_cents": 100},
                {"product_id": p.id, "quantity": 3, "unit_price_cents": 100},
            ],
            payment_method="cash",
        )

        assert db.session.get(Product, p.id).stock_quantity == 5
        assert reconcile_stock() == []

    def test_discount_above_total_passes_through(self, make_product):
        p = make_product(stock_quantity=1)
        sale = sales_service.create_sale(
            customer_id=None,
            items=[{"product_id": p.id, "quantity": 1, "unit_price_cents": 100}],
            discount_amount_cents=150,
            payment_method="cash",
        )
        assert sale.final_amount_cents == -50


class TestSaleRollback:

    def test_missing_product_rolls_back_everything(self, make_product):
        p = make_product(stock_quantity=10)
        before = _counts()

        with pytest.raises(ProductNotFoundError) as exc_info:
            sales_service.create_sale(
                customer_id=None,
                items=[
                    {"product_id": p.id, "quantity": 1, "unit_price_cents": 100},
                    {"product_id": 99999, "quantity": 1, "unit_price_cents": 100},
                ],
                payment_method="cash",
            )

        assert isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.entity_id == 99999
        assert "99999" in str(exc_info.value)
        assert _counts() == before
        assert db.session.get(Product, p.id).stock_quantity == 10

    def test_failure_after_partial_writes_rolls_back_everything(self, make_product, monkeypatch):
        first = make_product(stock_quantity=10)
        second = make_product(stock_quantity=10)
        before = _counts()

        real_apply = sales_service.apply_stock_change
        calls = {"n": 0}

        def _fail_on_second_line(product, delta, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("disk full")
            return real_apply(product, delta, **kwargs)

        monkeypatch.setattr(sales_service, "apply_stock_change", _fail_on_second_line)

        with pytest.raises(RuntimeError):
            sales_service.create_sale(
                customer_id=None,
                items=[
                    {"product_id": first.id, "quantity": 3, "unit_price_cents": 100},
                    {"product_id": second.id, "quantity": 1, "unit_price_cents": 100},
                ],
                payment_method="cash",
            )

        assert calls["n"] == 2
        assert _counts() == before
        db.session.expire_all()
        assert db.session.get(Product, first.id).stock_quantity == 10
        assert db.session.get(Product, second.id).stock_quantity == 10
        assert reconcile_stock() == []

    def test_first_missing_id_is_reported(self, make_product):
        p = make_product(stock_quantity=10)
        with pytest.raises(ProductNotFoundError) as exc_info:
            sales_service.create_sale(
                customer_id=None,
                items=[
                    {"product_id": 777, "quantity": 1, "unit_price_cents": 100},
                    {"product_id": p.id, "quantity": 1, "unit_price_cents": 100},
                    {"product_id": 555, "quantity": 1, "unit_price_cents": 100},
                ],
                payment_method="cash",
            )
        assert exc_info.value.entity_id == 777

    def test_empty_cart_rejected_before_persistence(self, db_session):
        before = _counts()
        with pytest.raises(EmptyCartError):
            sales_service.create_sale(customer_id=None, items=[], payment_method="cash")
        assert _counts() == before

    @pytest.mark.parametrize("line", [
        {"quantity": 0, "unit_price_cents": 100},
        {"quantity": -2, "unit_price_cents": 100},
        {"quantity": 1, "unit_price_cents": 0},
        {"quantity": 1.5, "unit_price_cents": 100},
    ])
    def test_invalid_lines_rejected(self, make_product, line):
        p = make_product(stock_quantity=5)
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                customer_id=None,
                items=[dict(line, product_id=p.id)],
                payment_method="cash",
            )
        assert db.session.get(Product, p.id).stock_quantity == 5

    def test_unknown_payment_method(self, make_product):
        p = make_product(stock_quantity=5)
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                customer_id=None,
                items=[{"product_id": p.id, "quantity": 1, "unit_price_cents": 100}],
                payment_method="card",
            )

    def test_unknown_customer(self, make_product):
        p = make_product(stock_quantity=5)
        before = _counts()
        with pytest.raises(CustomerNotFoundError):
            sales_service.create_sale(
                customer_id=4242,
                items=[{"product_id": p.id, "quantity": 1, "unit_price_cents": 100}],
                payment_method="cash",
            )
        assert _counts() == before


class TestNegativeStockPolicy:

    def test_overselling_allowed_by_default(self, make_product):
        """Stock 50, sell 50 -> 0, then sell 1 more -> -1."""
        p = make_product(stock_quantity=50, min_stock_threshold=10)

        sale = sales_service.create_sale(
            customer_id=None,
            items=[{"product_id": p.id, "quantity": 50, "unit_price_cents": 10}],
            payment_method="cash",
        )
        assert db.session.get(Product, p.id).stock_quantity == 0
        movement = db.session.query(StockMovement).filter_by(reference_type="sale", reference_id=sale.id).one()
        assert movement.quantity == -50

        sales_service.create_sale(
            customer_id=None,
            items=[{"product_id": p.id, "quantity": 1, "unit_price_cents": 10}],
            payment_method="cash",
        )
        assert db.session.get(Product, p.id).stock_quantity == -1

    def test_policy_off_rejects_and_leaves_tables_unchanged(self, app, make_product):
        app.config["ALLOW_NEGATIVE_STOCK"] = False
        p = make_product(stock_quantity=2)
        before = _counts()

        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.create_sale(
                customer_id=None,
                items=[{"product_id": p.id, "quantity": 3, "unit_price_cents": 10}],
                payment_method="cash",
            )

        assert isinstance(exc_info.value, StateConflictError)
        assert exc_info.value.details["items"] == [
            {"product_id": p.id, "requested_quantity": 3, "stock_quantity": 2}
        ]
        assert _counts() == before
        assert db.session.get(Product, p.id).stock_quantity == 2

    def test_policy_counts_repeated_lines_together(self, make_product):
        p = make_product(stock_quantity=4)
        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                customer_id=None,
                items=[
                    {"product_id": p.id, "quantity": 2, "unit_price_cents": 10},
                    {"product_id": p.id, "quantity": 3, "unit_price_cents": 10},
                ],
                payment_method="cash",
                allow_negative_stock=False,
            )

    def test_per_call_override_allows_exact_stock(self, make_product):
        p = make_product(stock_quantity=3)
        sales_service.create_sale(
            customer_id=None,
            items=[{"product_id": p.id, "quantity": 3, "unit_price_cents": 10}],
            payment_method="cash",
            allow_negative_stock=False,
        )
        assert db.session.get(Product, p.id).stock_quantity == 0


class TestSaleReads:

    def test_get_sale_details_missing(self, db_session):
        with pytest.raises(SaleNotFoundError):
            sales_service.get_sale_details(12345)

    def test_list_sales_newest_first_and_by_customer(self, make_product, customer):
        p = make_product(stock_quantity=10)
        first = sales_service.create_sale(
            customer_id=customer.id,
            items=[{"product_id": p.id, "quantity": 1, "unit_price_cents": 10}],
            payment_method="cash",
        )
        second = sales_service.create_sale(
            customer_id=None,
            items=[{"product_id": p.id, "quantity": 1, "unit_price_cents": 10}],
            payment_method="cash",
        )

        assert [s.id for s in sales_service.list_sales()] == [second.id, first.id]
        assert [s.id for s in sales_service.list_sales(customer_id=customer.id)] == [first.id]
