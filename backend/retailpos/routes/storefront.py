# Overview: Public storefront API routes; no authentication, carts keyed by X-Session-Id.

from flask import Blueprint, request, jsonify, current_app

from ..services import checkout_service, notification_service
from ..services.checkout_service import CheckoutError

storefront_bp = Blueprint("storefront", __name__, url_prefix="/api/storefront")

SESSION_HEADER = "X-Session-Id"


def _session_id():
    return request.headers.get(SESSION_HEADER)


def _error(e: CheckoutError):
    return jsonify(e.to_dict()), e.http_status


@storefront_bp.get("/<slug>/config")
def store_config_route(slug: str):
    try:
        online_store = checkout_service.get_online_store(slug, require_active=False)
    except CheckoutError as e:
        return _error(e)
    return jsonify({"store": online_store.to_public_dict()})


@storefront_bp.get("/<slug>/products")
def products_route(slug: str):
    try:
        online_store = checkout_service.get_online_store(slug)
    except CheckoutError as e:
        return _error(e)
    products = checkout_service.list_published_products(online_store, search=request.args.get("search"))
    return jsonify({"products": products, "count": len(products)})


@storefront_bp.get("/<slug>/cart")
def get_cart_route(slug: str):
    try:
        online_store = checkout_service.get_online_store(slug)
        cart = checkout_service.get_cart(online_store, _session_id())
    except CheckoutError as e:
        return _error(e)
    return jsonify({"cart": checkout_service.cart_to_dict(online_store, cart)})


@storefront_bp.post("/<slug>/cart")
def add_to_cart_route(slug: str):
    """Request body: {"product_id": 1, "quantity": 2}"""
    data = request.get_json(silent=True) or {}
    try:
        online_store = checkout_service.get_online_store(slug)
        cart = checkout_service.add_to_cart(online_store, _session_id(), data.get("product_id"), data.get("quantity", 1))
    except CheckoutError as e:
        return _error(e)
    return jsonify({"cart": checkout_service.cart_to_dict(online_store, cart)})


@storefront_bp.put("/<slug>/cart/items/<int:item_id>")
def update_cart_item_route(slug: str, item_id: int):
    """Request body: {"quantity": 3}; 0 removes the item."""
    data = request.get_json(silent=True) or {}
    try:
        online_store = checkout_service.get_online_store(slug)
        cart = checkout_service.update_cart_item(online_store, _session_id(), item_id, data.get("quantity"))
    except CheckoutError as e:
        return _error(e)
    return jsonify({"cart": checkout_service.cart_to_dict(online_store, cart)})


@storefront_bp.delete("/<slug>/cart/items/<int:item_id>")
def remove_cart_item_route(slug: str, item_id: int):
    try:
        online_store = checkout_service.get_online_store(slug)
        cart = checkout_service.remove_cart_item(online_store, _session_id(), item_id)
    except CheckoutError as e:
        return _error(e)
    return jsonify({"cart": checkout_service.cart_to_dict(online_store, cart)})


@storefront_bp.post("/<slug>/checkout")
def checkout_route(slug: str):
    """
    Request body:
    - customer_name, customer_email, customer_phone (required)
    - shipping_address: {"address": ..., "city"?, "district"?, "ward"?}
    - payment_method: cod | bank_transfer (default cod)
    - customer_note (optional)
    """
    try:
        online_store = checkout_service.get_online_store(slug, require_active=False)
        order = checkout_service.checkout(online_store, _session_id(), request.get_json(silent=True) or {})
    except CheckoutError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to checkout")
        return jsonify({"error": "Internal server error"}), 500

    notification_service.send_order_confirmation(order=order, online_store=online_store)
    notification_service.send_new_order_alert(order=order, online_store=online_store)

    return jsonify({"order": order.to_dict(include_items=True)}), 201


@storefront_bp.get("/<slug>/orders/<order_number>")
def order_lookup_route(slug: str, order_number: str):
    try:
        online_store = checkout_service.get_online_store(slug, require_active=False)
        order = checkout_service.get_order_by_number(online_store, order_number, request.args.get("email"))
    except CheckoutError as e:
        return _error(e)

    data = order.to_dict(include_items=True)
    # Staff-only fields
    data.pop("internal_note", None)
    data.pop("payment_note", None)
    return jsonify({"order": data})
