# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's organization
(g.org_id). Writes target the store named by X-Store-Id, which the caller
must be able to access.

SECURITY: All routes require authentication and the "products" module
permission for the matching action.
"""
from flask import Blueprint, request, g
from ..services import products_service
from ..services.products_service import ProductNotFoundError
from ..services.tenant_service import TenantAccessError
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission, require_store_access

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "price_cents", "cost_price_cents",
        "stock_quantity", "unit_id", "is_active",
    },
    required_on_create={"sku", "name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("products", "view")
def list_products():
    """
    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    - search: str (optional) - name or SKU substring
    Filtered to the X-Store-Id store when the header is present.
    """
    try:
        return products_service.list_products(
            org_id=g.org_id,
            store_id=g.store_id,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
            search=request.args.get("search"),
        )
    except TenantAccessError:
        return {"error": "Store not found"}, 404


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("products", "view")
def get_product_route(product_id: int):
    try:
        return products_service.get_product(product_id, g.org_id)
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404


@products_bp.post("")
@require_auth
@require_permission("products", "add")
@require_store_access
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = products_service.create_product(patch=patch, org_id=g.org_id, store_id=g.store_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TenantAccessError:
        return {"error": "Store not found"}, 404

    return created, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("products", "edit")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        return products_service.update_product(product_id=product_id, patch=patch, org_id=g.org_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404


@products_bp.post("/<int:product_id>/adjust-stock")
@require_auth
@require_permission("products", "edit")
def adjust_stock_route(product_id: int):
    """Request body: {"delta": -3}. The result may not go below zero."""
    payload = request.get_json(silent=True) or {}

    try:
        return products_service.adjust_stock(product_id=product_id, delta=payload.get("delta"), org_id=g.org_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("products", "delete")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id=product_id, org_id=g.org_id)
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404

    return {"ok": True}, 200
