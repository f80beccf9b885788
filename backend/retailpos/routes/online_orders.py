# Overview: Flask API routes for online order management; parses input and returns JSON responses.

"""
Online order management (staff side).

Every route is scoped to the X-Store-Id store; the online store in the
URL must belong to it. Status changes go through order_status_service,
which owns stock deduction/restoration. A customer email is sent after
each successful status change and never affects the response.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import OnlineStore
from ..services import order_status_service, payment_service, notification_service
from ..services.order_status_service import (
    OrderNotFoundError,
    InvalidStatusTransitionError,
    InsufficientStockError,
)
from ..services.payment_service import PaymentStatusError
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError
from ..decorators import require_auth, require_permission, require_store_access

online_orders_bp = Blueprint("online_orders", __name__, url_prefix="/api/online-stores")


def _get_online_store(online_store_id: int) -> OnlineStore | None:
    return db.session.query(OnlineStore).filter_by(id=online_store_id, store_id=g.store_id).first()


def _parse_datetime_arg(value):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"Invalid datetime: {value}")


@online_orders_bp.get("")
@require_auth
@require_permission("online-orders", "view")
@require_store_access
def list_online_stores_route():
    stores = db.session.query(OnlineStore).filter_by(store_id=g.store_id).order_by(OnlineStore.name.asc()).all()
    return jsonify({"online_stores": [s.to_dict() for s in stores]})


@online_orders_bp.get("/<int:online_store_id>/orders")
@require_auth
@require_permission("online-orders", "view")
@require_store_access
def list_orders_route(online_store_id: int):
    """
    Query params: status, payment_status, search, date_from, date_to, page, per_page
    """
    if not _get_online_store(online_store_id):
        return jsonify({"error": "Online store not found"}), 404

    try:
        result = order_status_service.list_orders(
            online_store_id,
            status=request.args.get("status"),
            payment_status=request.args.get("payment_status"),
            search=request.args.get("search"),
            date_from=_parse_datetime_arg(request.args.get("date_from")),
            date_to=_parse_datetime_arg(request.args.get("date_to")),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    result["status_counts"] = order_status_service.count_by_status(online_store_id)
    return jsonify(result)


@online_orders_bp.get("/<int:online_store_id>/orders/counts")
@require_auth
@require_permission("online-orders", "view")
@require_store_access
def order_counts_route(online_store_id: int):
    if not _get_online_store(online_store_id):
        return jsonify({"error": "Online store not found"}), 404
    return jsonify({"counts": order_status_service.count_by_status(online_store_id)})


@online_orders_bp.get("/<int:online_store_id>/orders/<int:order_id>")
@require_auth
@require_permission("online-orders", "view")
@require_store_access
def get_order_route(online_store_id: int, order_id: int):
    if not _get_online_store(online_store_id):
        return jsonify({"error": "Online store not found"}), 404
    try:
        order = order_status_service.get_order(order_id, online_store_id)
    except OrderNotFoundError:
        return jsonify({"error": "Order not found"}), 404

    data = order.to_dict(include_items=True)
    data["allowed_transitions"] = order_status_service.get_allowed_transitions(order.status)
    return jsonify({"order": data})


@online_orders_bp.put("/<int:online_store_id>/orders/<int:order_id>")
@require_auth
@require_permission("online-orders", "edit")
@require_store_access
def update_order_route(online_store_id: int, order_id: int):
    """
    Request body (all optional):
    - status: target order status
    - payment_status
    - tracking_number, carrier, estimated_delivery (ISO-8601)
    - internal_note
    """
    online_store = _get_online_store(online_store_id)
    if not online_store:
        return jsonify({"error": "Online store not found"}), 404

    data = request.get_json(silent=True) or {}
    status = data.get("status")
    payment_status = data.get("payment_status")
    tracking_number = data.get("tracking_number")
    carrier = data.get("carrier")
    internal_note = data.get("internal_note")

    try:
        estimated_delivery = _parse_datetime_arg(data.get("estimated_delivery"))
        current = order_status_service.get_order(order_id, online_store_id)
        if payment_status is not None:
            payment_service.check_payment_status_change(current, payment_status)

        result = None
        if status is not None:
            result = order_status_service.update_status(
                order_id,
                status,
                online_store_id,
                internal_note=internal_note,
                tracking_number=tracking_number,
                carrier=carrier,
                estimated_delivery=estimated_delivery,
            )
        else:
            if tracking_number is not None or carrier is not None or estimated_delivery is not None:
                order_status_service.update_shipping_info(
                    order_id,
                    online_store_id,
                    tracking_number=tracking_number,
                    carrier=carrier,
                    estimated_delivery=estimated_delivery,
                )
            if internal_note is not None:
                order_status_service.add_internal_note(order_id, online_store_id, internal_note)

        if payment_status is not None:
            payment_service.set_payment_status(order_id, online_store_id, payment_status)

        order = order_status_service.get_order(order_id, online_store_id)
        if result is not None:
            notification_service.send_status_update_notification(
                order=order,
                online_store=online_store,
                previous_status=result.previous_status,
                new_status=result.new_status,
            )
        return jsonify({"order": order.to_dict(include_items=True)})

    except OrderNotFoundError:
        return jsonify({"error": "Order not found"}), 404
    except InvalidStatusTransitionError as e:
        return jsonify({
            "error": str(e),
            "current_status": e.current_status,
            "target_status": e.target_status,
        }), 400
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "code": "INSUFFICIENT_STOCK", "items": e.items}), 409
    except (ValidationError, PaymentStatusError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update online order")
        return jsonify({"error": "Internal server error"}), 500


@online_orders_bp.get("/<int:online_store_id>/orders/<int:order_id>/payment")
@require_auth
@require_permission("online-orders", "view")
@require_store_access
def get_payment_route(online_store_id: int, order_id: int):
    if not _get_online_store(online_store_id):
        return jsonify({"error": "Online store not found"}), 404
    try:
        order = order_status_service.get_order(order_id, online_store_id)
    except OrderNotFoundError:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(payment_service.get_payment_info(order))


@online_orders_bp.post("/<int:online_store_id>/orders/<int:order_id>/payment")
@require_auth
@require_permission("online-orders", "edit")
@require_store_access
def payment_action_route(online_store_id: int, order_id: int):
    """
    Request body: {"action": ..., ...}
    - confirm_bank_transfer: transaction_reference?, note?
    - complete_cod: collected_amount_cents (required), note?
    - mark_failed: reason?
    - refund: refund_amount_cents (required), reason?
    """
    if not _get_online_store(online_store_id):
        return jsonify({"error": "Online store not found"}), 404

    data = request.get_json(silent=True) or {}
    action = data.get("action")
    actor = g.current_user.email

    try:
        if action == "confirm_bank_transfer":
            result = payment_service.confirm_bank_transfer(
                order_id,
                online_store_id,
                transaction_reference=data.get("transaction_reference"),
                confirmed_by=actor,
                note=data.get("note"),
            )
        elif action == "complete_cod":
            if data.get("collected_amount_cents") is None:
                return jsonify({"error": "collected_amount_cents is required"}), 400
            result = payment_service.complete_cod_payment(
                order_id,
                online_store_id,
                collected_amount_cents=data["collected_amount_cents"],
                collected_by=actor,
                note=data.get("note"),
            )
        elif action == "mark_failed":
            result = payment_service.mark_payment_failed(order_id, online_store_id, data.get("reason"))
        elif action == "refund":
            if data.get("refund_amount_cents") is None:
                return jsonify({"error": "refund_amount_cents is required"}), 400
            result = payment_service.process_refund(
                order_id,
                online_store_id,
                data["refund_amount_cents"],
                data.get("reason"),
            )
        else:
            return jsonify({"error": "Invalid action"}), 400

        return jsonify(result)

    except OrderNotFoundError:
        return jsonify({"error": "Order not found"}), 404
    except PaymentStatusError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to process payment action")
        return jsonify({"error": "Internal server error"}), 500
