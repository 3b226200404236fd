"""
Sales Service - atomic sale recording

A sale touches four tables (sales, sale_items, products, stock_movements),
all written in one unit of work: a sale row never exists without its stock
decrement and movement trail, and vice versa.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Sale, SaleItem, Product, Customer
from ..errors import (
    ProductNotFoundError,
    CustomerNotFoundError,
    SaleNotFoundError,
    InsufficientStockError,
)
from ..validation import normalize_sale_items, enforce_rules_sale, resolve_list_limit
from .inventory_service import apply_stock_change, MOVEMENT_OUT, REFERENCE_SALE
from .concurrency import lock_for_update, run_with_retry


def compute_totals(lines: list[dict], discount_amount_cents: int) -> tuple[int, int]:
    """Return (total_amount_cents, final_amount_cents)."""
    total = sum(line["quantity"] * line["unit_price_cents"] for line in lines)
    # No floor at zero: a discount above the total is passed through as-is
    return total, total - discount_amount_cents


def _load_products_locked(product_ids: list[int]) -> dict[int, Product]:
    unique_ids = list(dict.fromkeys(product_ids))
    rows = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(unique_ids))
    ).all()
    products = {p.id: p for p in rows}

    # Report the first missing id in cart order
    for product_id in product_ids:
        if product_id not in products:
            raise ProductNotFoundError(product_id)
    return products


def _validate_stock(lines: list[dict], products: dict[int, Product]) -> None:
    requested: dict[int, int] = {}
    for line in lines:
        requested[line["product_id"]] = requested.get(line["product_id"], 0) + line["quantity"]

    insufficient = []
    for product_id, qty in requested.items():
        on_hand = products[product_id].stock_quantity
        if on_hand < qty:
            insufficient.append({
                "product_id": product_id,
                "requested_quantity": qty,
                "stock_quantity": on_hand,
            })

    if insufficient:
        raise InsufficientStockError(insufficient)


def create_sale(
    *,
    customer_id: int | None,
    items: list[dict],
    payment_method: str,
    discount_amount_cents: int = 0,
    notes: str | None = None,
    allow_negative_stock: bool | None = None,
) -> Sale:
    """
    Record a completed sale.

    Within one transaction: verify products, insert the sale header, then per
    line insert the item, decrement stock and append an 'out' movement
    referencing the sale. Any failure rolls everything back.

    allow_negative_stock=None defers to the ALLOW_NEGATIVE_STOCK setting.
    """
    lines = normalize_sale_items(items)
    enforce_rules_sale(discount_amount_cents=discount_amount_cents, payment_method=payment_method)

    total_amount_cents, final_amount_cents = compute_totals(lines, discount_amount_cents)

    if allow_negative_stock is None:
        allow_negative_stock = current_app.config.get("ALLOW_NEGATIVE_STOCK", True)

    def _op():
        if customer_id is not None:
            if db.session.get(Customer, customer_id) is None:
                raise CustomerNotFoundError(customer_id)

        products = _load_products_locked([line["product_id"] for line in lines])

        if not allow_negative_stock:
            _validate_stock(lines, products)

        sale = Sale(
            customer_id=customer_id,
            total_amount_cents=total_amount_cents,
            discount_amount_cents=discount_amount_cents,
            final_amount_cents=final_amount_cents,
            payment_method=payment_method,
            notes=notes,
        )
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=line["product_id"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                total_price_cents=line["quantity"] * line["unit_price_cents"],
            ))

            apply_stock_change(
                products[line["product_id"]],
                -line["quantity"],
                movement_type=MOVEMENT_OUT,
                reference_type=REFERENCE_SALE,
                reference_id=sale.id,
                notes=f"Sale #{sale.id}",
            )

        db.session.commit()
        return sale

    return run_with_retry(_op)


def get_sale_details(sale_id: int) -> tuple[Sale, list[SaleItem]]:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFoundError(sale_id)

    items = (
        db.session.query(SaleItem)
        .filter_by(sale_id=sale_id)
        .order_by(SaleItem.id.asc())
        .all()
    )
    return sale, items


def list_sales(*, customer_id: int | None = None, limit: int | None = None) -> list[Sale]:
    """Most recent sales first."""
    q = db.session.query(Sale)
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    q = q.order_by(Sale.created_at.desc(), Sale.id.desc())
    return q.limit(resolve_list_limit(limit)).all()
