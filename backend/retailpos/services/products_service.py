# backend/retailpos/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped.
- list_products filters to the organization's stores
- create_product requires a validated store_id within the tenant
- update/adjust/delete validate store ownership

STOCK: stock_quantity never goes negative. Direct edits are validated by
enforce_rules_product; relative adjustments run under a row lock.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product, Unit
from ..validation import ConflictError, ValidationError
from .concurrency import lock_for_update, begin_write_transaction, run_with_retry
from .tenant_service import require_store_in_org, get_org_store_ids

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "description", "price_cents", "cost_price_cents",
    "stock_quantity", "unit_id", "is_active",
}


class ProductNotFoundError(Exception):
    pass


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _get_product(product_id: int, org_id: int) -> Product:
    store_ids = get_org_store_ids(org_id)
    product = (
        db.session.query(Product)
        .filter(Product.id == product_id, Product.store_id.in_(store_ids))
        .first()
    )
    if not product:
        raise ProductNotFoundError("Product not found")
    return product


def _check_unit(unit_id: int | None, store_id: int) -> None:
    if unit_id is None:
        return
    if not db.session.query(Unit.id).filter_by(id=unit_id, store_id=store_id).first():
        raise ValidationError("Unit does not exist in this store")


def list_products(
    org_id: int,
    store_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
    search: str | None = None,
    active_only: bool = False,
) -> dict:
    """
    Tenant-scoped product listing with optional pagination.

    Raises TenantAccessError if store_id doesn't belong to org.
    """
    store_ids = get_org_store_ids(org_id)
    if not store_ids:
        return {"items": [], "count": 0}

    if store_id is not None:
        require_store_in_org(store_id, org_id)
        store_ids = {store_id}

    base_query = db.session.query(Product).filter(Product.store_id.in_(store_ids))
    if active_only:
        base_query = base_query.filter(Product.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        base_query = base_query.filter(db.or_(Product.name.ilike(like), Product.sku.ilike(like)))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int, org_id: int) -> dict:
    return _get_product(product_id, org_id).to_dict()


def create_product(*, patch: dict, org_id: int, store_id: int) -> dict:
    """
    Create product from a validated patch dict.

    Raises TenantAccessError, ConflictError (duplicate SKU in store),
    ValidationError (unit from another store).
    """
    store = require_store_in_org(store_id, org_id)

    existing = (
        db.session.query(Product)
        .filter(Product.store_id == store.id, Product.sku == patch["sku"])
        .first()
    )
    if existing:
        raise ConflictError("SKU already exists for this store.")

    _check_unit(patch.get("unit_id"), store.id)

    p = Product(store_id=store.id)
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.commit()

    current_app.logger.info("Product created: product_id=%s sku=%s store_id=%s", p.id, p.sku, p.store_id)
    return p.to_dict()


def update_product(*, product_id: int, patch: dict, org_id: int) -> dict:
    p = _get_product(product_id, org_id)

    if "sku" in patch and patch["sku"] != p.sku:
        clash = (
            db.session.query(Product)
            .filter(Product.store_id == p.store_id, Product.sku == patch["sku"], Product.id != p.id)
            .first()
        )
        if clash:
            raise ConflictError("SKU already exists for this store.")

    if "unit_id" in patch:
        _check_unit(patch["unit_id"], p.store_id)

    apply_product_patch(p, patch)
    db.session.commit()
    return p.to_dict()


def adjust_stock(*, product_id: int, delta: int, org_id: int) -> dict:
    """
    Add delta (may be negative) to stock_quantity under a row lock.

    Raises ValidationError if the result would be negative.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")

    store_ids = get_org_store_ids(org_id)

    def _op():
        begin_write_transaction()
        p = lock_for_update(
            db.session.query(Product).filter(Product.id == product_id, Product.store_id.in_(store_ids))
        ).first()
        if not p:
            db.session.rollback()
            raise ProductNotFoundError("Product not found")
        new_quantity = p.stock_quantity + delta
        if new_quantity < 0:
            db.session.rollback()
            raise ValidationError(f"Stock cannot go negative (available {p.stock_quantity}, delta {delta})")
        p.stock_quantity = new_quantity
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)


def delete_product(*, product_id: int, org_id: int) -> None:
    """Soft delete: order lines keep referencing the product."""
    p = _get_product(product_id, org_id)
    p.is_active = False
    db.session.commit()
