# Overview: Service-layer operations for the public storefront cart and checkout.

"""
Storefront Cart and Checkout Service

Anonymous shoppers are identified by the X-Session-Id header; one cart
exists per (online store, session id). Checkout turns the cart into a
pending OnlineOrder and empties the cart.

Checkout only validates stock. Stock is deducted when staff confirm the
order (order_status_service), so an abandoned pending order never holds
inventory.

Every failure raises CheckoutError with a stable machine-readable code.
"""

from __future__ import annotations

import re
import secrets

from flask import current_app

from ..extensions import db
from ..models import OnlineStore, ShoppingCart, CartItem, OnlineOrder, OnlineOrderItem, Product
from ..time_utils import utcnow
from .payment_service import VALID_PAYMENT_METHODS

CART_EMPTY = "CART_EMPTY"
STORE_INACTIVE = "STORE_INACTIVE"
STORE_NOT_FOUND = "STORE_NOT_FOUND"
PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
PRODUCT_OUT_OF_STOCK = "PRODUCT_OUT_OF_STOCK"
INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
VALIDATION_ERROR = "VALIDATION_ERROR"
ORDER_NOT_FOUND = "ORDER_NOT_FOUND"

_HTTP_STATUS = {
    STORE_NOT_FOUND: 404,
    PRODUCT_NOT_FOUND: 404,
    ORDER_NOT_FOUND: 404,
    PRODUCT_OUT_OF_STOCK: 409,
    INSUFFICIENT_STOCK: 409,
}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_CART_QUANTITY = 999


class CheckoutError(Exception):
    def __init__(self, code: str, message: str, details: list | dict | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS.get(self.code, 400)

    def to_dict(self) -> dict:
        data = {"error": self.message, "code": self.code}
        if self.details is not None:
            data["details"] = self.details
        return data


# =============================================================================
# STORE + PRODUCTS
# =============================================================================

def get_online_store(slug: str, *, require_active: bool = True) -> OnlineStore:
    online_store = db.session.query(OnlineStore).filter_by(slug=slug).first()
    if not online_store:
        raise CheckoutError(STORE_NOT_FOUND, "Store not found")
    if require_active and not online_store.is_active:
        raise CheckoutError(STORE_INACTIVE, "Store is not accepting orders")
    return online_store


def list_published_products(online_store: OnlineStore, *, search: str | None = None) -> list[dict]:
    query = db.session.query(Product).filter(
        Product.store_id == online_store.store_id,
        Product.is_active.is_(True),
        Product.price_cents.isnot(None),
    )
    if search:
        query = query.filter(Product.name.ilike(f"%{search.strip()}%"))
    return [_public_product(p) for p in query.order_by(Product.name.asc()).all()]


def _public_product(p: Product) -> dict:
    return {
        "id": p.id,
        "sku": p.sku,
        "name": p.name,
        "description": p.description,
        "price_cents": p.price_cents,
        "in_stock": p.stock_quantity > 0,
        "stock_quantity": p.stock_quantity,
    }


def _get_sellable_product(online_store: OnlineStore, product_id) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, store_id=online_store.store_id).first()
    if not product or not product.is_active or product.price_cents is None:
        raise CheckoutError(PRODUCT_NOT_FOUND, "Product not found")
    return product


# =============================================================================
# CART
# =============================================================================

def _require_session_id(session_id: str | None) -> str:
    if not session_id or not session_id.strip():
        raise CheckoutError(VALIDATION_ERROR, "X-Session-Id header is required")
    return session_id.strip()


def _parse_quantity(raw, *, allow_zero: bool = False) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise CheckoutError(VALIDATION_ERROR, "quantity must be an integer")
    low = 0 if allow_zero else 1
    if raw < low or raw > MAX_CART_QUANTITY:
        raise CheckoutError(VALIDATION_ERROR, f"quantity must be between {low} and {MAX_CART_QUANTITY}")
    return raw


def get_cart(online_store: OnlineStore, session_id: str | None, *, create: bool = False) -> ShoppingCart | None:
    session_id = _require_session_id(session_id)
    cart = db.session.query(ShoppingCart).filter_by(online_store_id=online_store.id, session_id=session_id).first()
    if cart is None and create:
        cart = ShoppingCart(online_store_id=online_store.id, session_id=session_id)
        db.session.add(cart)
        db.session.flush()
    return cart


def cart_to_dict(online_store: OnlineStore, cart: ShoppingCart | None) -> dict:
    if cart is None:
        return {"id": None, "items": [], "subtotal_cents": 0, "currency": online_store.currency}
    data = cart.to_dict()
    data["currency"] = online_store.currency
    return data


def add_to_cart(online_store: OnlineStore, session_id: str | None, product_id, quantity) -> ShoppingCart:
    quantity = _parse_quantity(quantity)
    product = _get_sellable_product(online_store, product_id)
    cart = get_cart(online_store, session_id, create=True)

    item = db.session.query(CartItem).filter_by(cart_id=cart.id, product_id=product.id).first()
    new_quantity = quantity + (item.quantity if item else 0)
    _check_stock(product, new_quantity)

    if item is None:
        item = CartItem(cart_id=cart.id, product_id=product.id, quantity=new_quantity, unit_price_cents=product.price_cents)
        db.session.add(item)
    else:
        item.quantity = new_quantity
        item.unit_price_cents = product.price_cents

    db.session.commit()
    return cart


def update_cart_item(online_store: OnlineStore, session_id: str | None, item_id: int, quantity) -> ShoppingCart:
    """Set an item's quantity; 0 removes it."""
    quantity = _parse_quantity(quantity, allow_zero=True)
    cart = get_cart(online_store, session_id)
    item = _get_cart_item(cart, item_id)

    if quantity == 0:
        db.session.delete(item)
    else:
        _check_stock(item.product, quantity)
        item.quantity = quantity

    db.session.commit()
    return cart


def remove_cart_item(online_store: OnlineStore, session_id: str | None, item_id: int) -> ShoppingCart:
    cart = get_cart(online_store, session_id)
    item = _get_cart_item(cart, item_id)
    db.session.delete(item)
    db.session.commit()
    return cart


def _get_cart_item(cart: ShoppingCart | None, item_id: int) -> CartItem:
    item = None
    if cart is not None:
        item = db.session.query(CartItem).filter_by(id=item_id, cart_id=cart.id).first()
    if item is None:
        raise CheckoutError(VALIDATION_ERROR, "Cart item not found")
    return item


def _check_stock(product: Product, quantity: int) -> None:
    if product.stock_quantity <= 0:
        raise CheckoutError(PRODUCT_OUT_OF_STOCK, f"{product.name} is out of stock")
    if product.stock_quantity < quantity:
        raise CheckoutError(
            INSUFFICIENT_STOCK,
            f"Only {product.stock_quantity} of {product.name} available",
            {"product_id": product.id, "available": product.stock_quantity, "requested": quantity},
        )


# =============================================================================
# CHECKOUT
# =============================================================================

def _validate_customer(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise CheckoutError(VALIDATION_ERROR, "Invalid JSON payload")

    errors = {}
    name = str(payload.get("customer_name") or "").strip()
    email = str(payload.get("customer_email") or "").strip().lower()
    phone = str(payload.get("customer_phone") or "").strip()
    address = payload.get("shipping_address")
    payment_method = payload.get("payment_method") or "cod"

    if not name:
        errors["customer_name"] = "required"
    if not _EMAIL_RE.match(email):
        errors["customer_email"] = "invalid email"
    if not re.fullmatch(r"\+?[0-9 ]{8,15}", phone):
        errors["customer_phone"] = "invalid phone number"
    if not isinstance(address, dict) or not str(address.get("address") or "").strip():
        errors["shipping_address"] = "address is required"
    if payment_method not in VALID_PAYMENT_METHODS:
        errors["payment_method"] = f"must be one of {', '.join(VALID_PAYMENT_METHODS)}"

    if errors:
        raise CheckoutError(VALIDATION_ERROR, "Invalid checkout data", errors)

    return {
        "customer_name": name,
        "customer_email": email,
        "customer_phone": phone,
        "shipping_address": address,
        "payment_method": payment_method,
        "customer_note": (payload.get("customer_note") or None),
    }


def generate_order_number() -> str:
    """ORD + yymmdd + 6 random hex chars, unique across all stores."""
    while True:
        candidate = f"ORD{utcnow():%y%m%d}{secrets.token_hex(3).upper()}"
        if not db.session.query(OnlineOrder.id).filter_by(order_number=candidate).first():
            return candidate


def checkout(online_store: OnlineStore, session_id: str | None, payload: dict) -> OnlineOrder:
    """
    Create a pending order from the cart and empty the cart.

    Every cart line is checked before failing, so PRODUCT_OUT_OF_STOCK and
    INSUFFICIENT_STOCK carry the full list of problem lines in details.
    """
    if not online_store.is_active:
        raise CheckoutError(STORE_INACTIVE, "Store is not accepting orders")

    customer = _validate_customer(payload)

    cart = get_cart(online_store, session_id)
    if cart is None or not cart.items:
        raise CheckoutError(CART_EMPTY, "Cart is empty")

    problems = []
    for item in cart.items:
        product = item.product
        if product is None or not product.is_active or product.stock_quantity <= 0:
            problems.append({
                "product_id": item.product_id,
                "product_name": product.name if product else None,
                "available": 0,
                "requested": item.quantity,
                "code": PRODUCT_OUT_OF_STOCK,
            })
        elif product.stock_quantity < item.quantity:
            problems.append({
                "product_id": product.id,
                "product_name": product.name,
                "available": product.stock_quantity,
                "requested": item.quantity,
                "code": INSUFFICIENT_STOCK,
            })
    if problems:
        code = PRODUCT_OUT_OF_STOCK if all(p["code"] == PRODUCT_OUT_OF_STOCK for p in problems) else INSUFFICIENT_STOCK
        raise CheckoutError(code, "Some items are not available in the requested quantity", problems)

    subtotal = sum(item.unit_price_cents * item.quantity for item in cart.items)
    order = OnlineOrder(
        online_store_id=online_store.id,
        order_number=generate_order_number(),
        status="pending",
        payment_status="pending",
        subtotal_cents=subtotal,
        shipping_fee_cents=online_store.shipping_fee_cents,
        total_cents=subtotal + online_store.shipping_fee_cents,
        stock_deducted=False,
        **customer,
    )
    for item in cart.items:
        order.items.append(OnlineOrderItem(
            product_id=item.product_id,
            product_name=item.product.name,
            sku=item.product.sku,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            total_price_cents=item.unit_price_cents * item.quantity,
        ))

    db.session.add(order)
    cart.items.clear()
    db.session.commit()

    current_app.logger.info("Order %s placed in online_store_id=%s total_cents=%s", order.order_number, online_store.id, order.total_cents)
    return order


def get_order_by_number(online_store: OnlineStore, order_number: str, email: str | None = None) -> OnlineOrder:
    """Public order lookup; when email is given it must match the order."""
    order = db.session.query(OnlineOrder).filter_by(online_store_id=online_store.id, order_number=order_number).first()
    if order is None or (email and order.customer_email != email.strip().lower()):
        raise CheckoutError(ORDER_NOT_FOUND, "Order not found")
    return order
