# backend/backoffice/services/products_service.py
"""
Products Service

STOCK RULE: stock_quantity is not a product attribute clients may patch.
An opening quantity is accepted on create and written through the stock
movement log; afterwards only sales, adjustments and receives move it.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product
from ..errors import ConflictError, ProductNotFoundError
from backoffice.time_utils import utcnow
from .inventory_service import apply_stock_change, MOVEMENT_IN
from .concurrency import lock_for_update, run_with_retry

PRODUCT_MUTABLE_FIELDS = {"name", "price_cents", "unit", "category", "barcode", "min_stock_threshold", "is_active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_barcode_free(barcode: str | None, *, exclude_product_id: int | None = None) -> None:
    if not barcode:
        return
    q = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_product_id is not None:
        q = q.filter(Product.id != exclude_product_id)
    if q.first() is not None:
        raise ConflictError("Barcode already assigned to another product", details={"barcode": barcode})


def create_product(*, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    A positive opening stock_quantity is recorded as an 'in' movement with
    no reference, so the movement log explains the counter from day one.
    """
    opening_quantity = patch.get("stock_quantity") or 0

    def _op():
        _ensure_barcode_free(patch.get("barcode"))

        p = Product(
            stock_quantity=0,
            min_stock_threshold=current_app.config.get("DEFAULT_MIN_STOCK_THRESHOLD", 5),
        )
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()

        if opening_quantity:
            apply_stock_change(
                p,
                opening_quantity,
                movement_type=MOVEMENT_IN,
                notes="Opening stock",
            )

        db.session.commit()
        return p

    return run_with_retry(_op)


def update_product(product_id: int, *, patch: dict) -> Product:
    def _op():
        p = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if p is None:
            raise ProductNotFoundError(product_id)

        if "barcode" in patch:
            _ensure_barcode_free(patch["barcode"], exclude_product_id=p.id)

        apply_product_patch(p, patch)
        p.updated_at = utcnow()
        db.session.commit()
        return p

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if p is None:
        raise ProductNotFoundError(product_id)
    return p


def get_product_by_barcode(barcode: str) -> Product | None:
    return db.session.query(Product).filter_by(barcode=barcode.strip()).first()


def list_products(*, active_only: bool = False, category: str | None = None) -> list[Product]:
    q = db.session.query(Product)
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    if category is not None:
        q = q.filter(Product.category == category)
    return q.order_by(Product.name.asc(), Product.id.asc()).all()
