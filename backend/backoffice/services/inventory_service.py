# Overview: Service-layer operations for stock; encapsulates business logic and database work.

# backend/backoffice/services/inventory_service.py

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockMovement
from ..errors import ProductNotFoundError
from ..validation import enforce_rules_stock_adjust, enforce_rules_stock_receive, resolve_list_limit
from backoffice.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
"""
Stock Invariants (authoritative)

Stock model:
- Product.stock_quantity is a denormalized counter kept for cheap reads.
- Every change to it goes through apply_stock_change(), which appends a
  StockMovement with the signed delta in the same DB transaction.
- Therefore stock_quantity == SUM(StockMovement.quantity) per product.
  reconcile_stock() checks this on demand.

Movement kinds:
- in          purchase receive or opening stock (quantity > 0)
- out         sale line (quantity = -sold)
- adjustment  manual correction to an absolute value (quantity = new - old, may be 0)

Audit:
- Movements are append-only. No updates, no deletes.
"""

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_ADJUSTMENT = "adjustment"

REFERENCE_SALE = "sale"
REFERENCE_PURCHASE = "purchase"
REFERENCE_ADJUSTMENT = "adjustment"


def ensure_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def append_stock_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Append-only movement insert. Flushes, never commits."""
    movement = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity=quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def apply_stock_change(
    product: Product,
    delta: int,
    *,
    movement_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Move the stock counter by delta and record the movement.

    The only sanctioned way to change Product.stock_quantity. Callers own
    locking and the commit.
    """
    product.stock_quantity = product.stock_quantity + delta
    product.updated_at = utcnow()
    return append_stock_movement(
        product_id=product.id,
        movement_type=movement_type,
        quantity=delta,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )


def adjust_stock(*, product_id: int, new_quantity: int, notes: str | None = None) -> Product:
    """
    Set a product's stock to an absolute value.

    Records one 'adjustment' movement with quantity = new_quantity - old
    (zero when unchanged) and reference_id NULL.
    """
    enforce_rules_stock_adjust({"new_quantity": new_quantity})

    def _op():
        product = ensure_product(product_id, lock=True)
        delta = new_quantity - product.stock_quantity

        apply_stock_change(
            product,
            delta,
            movement_type=MOVEMENT_ADJUSTMENT,
            reference_type=REFERENCE_ADJUSTMENT,
            reference_id=None,
            notes=notes,
        )

        db.session.commit()
        return product

    return run_with_retry(_op)


def receive_stock(
    *,
    product_id: int,
    quantity: int,
    reference_id: int | None = None,
    notes: str | None = None,
) -> Product:
    """Stock-in from a supplier purchase."""
    enforce_rules_stock_receive({"quantity": quantity})

    def _op():
        product = ensure_product(product_id, lock=True)

        apply_stock_change(
            product,
            quantity,
            movement_type=MOVEMENT_IN,
            reference_type=REFERENCE_PURCHASE,
            reference_id=reference_id,
            notes=notes,
        )

        db.session.commit()
        return product

    return run_with_retry(_op)


def list_stock_movements(
    *,
    product_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    limit: int | None = None,
) -> list[StockMovement]:
    if product_id is not None:
        ensure_product(product_id)

    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if reference_type is not None:
        q = q.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        q = q.filter(StockMovement.reference_id == reference_id)

    q = q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    return q.limit(resolve_list_limit(limit)).all()


def list_low_stock_products() -> list[Product]:
    """Active products at or below their minimum stock threshold."""
    return (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            Product.stock_quantity <= Product.min_stock_threshold,
        )
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )


def get_movement_total(product_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity), 0)
    ).filter(StockMovement.product_id == product_id)
    return int(q.scalar() or 0)


def reconcile_stock(product_id: int | None = None) -> list[dict]:
    """
    Compare each product's stored counter with the sum of its movements.

    Returns one entry per mismatching product; an empty list means the
    stock counters agree with the movement log.
    """
    totals = (
        db.session.query(
            StockMovement.product_id,
            func.coalesce(func.sum(StockMovement.quantity), 0).label("total"),
        )
        .group_by(StockMovement.product_id)
        .subquery()
    )

    q = (
        db.session.query(Product.id, Product.stock_quantity, func.coalesce(totals.c.total, 0))
        .outerjoin(totals, totals.c.product_id == Product.id)
    )
    if product_id is not None:
        ensure_product(product_id)
        q = q.filter(Product.id == product_id)

    discrepancies = []
    for pid, stock_quantity, movement_total in q.order_by(Product.id.asc()).all():
        movement_total = int(movement_total or 0)
        if stock_quantity != movement_total:
            discrepancies.append({
                "product_id": pid,
                "stock_quantity": stock_quantity,
                "movement_total": movement_total,
                "difference": stock_quantity - movement_total,
            })
    return discrepancies
