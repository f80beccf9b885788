# Overview: Service-layer operations for online order status; owns stock deduction and restoration.

"""
Online Order Status Service

Orders move through a fixed state machine:

    pending    -> confirmed | cancelled
    confirmed  -> processing | cancelled
    processing -> shipped | cancelled
    shipped    -> delivered
    delivered, cancelled: terminal

INVENTORY:
- Entering "confirmed" decrements every line's product stock in the same
  transaction that records the status. Any shortfall aborts the whole
  transition (InsufficientStockError lists every short line); nothing is
  partially deducted.
- Entering "cancelled" after stock was deducted puts it back.
- order.stock_deducted tracks which of the two happened, so stock is
  never deducted or restored twice.

CONCURRENCY: the order row and all affected product rows are locked
(FOR UPDATE, or BEGIN IMMEDIATE on SQLite) and the unit of work is retried
on lock and version conflicts. Product rows are locked in id order.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import OnlineOrder, Product
from ..time_utils import utcnow
from ..validation import ValidationError
from .concurrency import lock_for_update, begin_write_transaction, run_with_retry


ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")

ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("confirmed", "cancelled"),
    "confirmed": ("processing", "cancelled"),
    "processing": ("shipped", "cancelled"),
    "shipped": ("delivered",),
    "delivered": (),
    "cancelled": (),
}

# Timestamp column stamped when an order enters a status
_STATUS_TIMESTAMPS = {
    "confirmed": "confirmed_at",
    "shipped": "shipped_at",
    "delivered": "delivered_at",
    "cancelled": "cancelled_at",
}


class OrderNotFoundError(Exception):
    pass


class InvalidStatusTransitionError(Exception):
    def __init__(self, current_status: str, target_status: str):
        super().__init__(f"Cannot change order status from '{current_status}' to '{target_status}'")
        self.current_status = current_status
        self.target_status = target_status


class InsufficientStockError(Exception):
    """
    items: [{"product_id", "product_name", "available", "requested"}, ...]
    """

    def __init__(self, items: list[dict]):
        names = ", ".join(
            f"{i['product_name']} (available {i['available']}, requested {i['requested']})" for i in items
        )
        super().__init__(f"Insufficient stock: {names}")
        self.items = items


@dataclass
class StatusUpdateResult:
    order: OnlineOrder
    previous_status: str
    new_status: str
    stock_deducted: bool = False
    stock_restored: bool = False
    adjustments: list[dict] = field(default_factory=list)


def can_transition(current_status: str, target_status: str) -> bool:
    return target_status in ALLOWED_TRANSITIONS.get(current_status, ())


def get_allowed_transitions(current_status: str) -> list[str]:
    return list(ALLOWED_TRANSITIONS.get(current_status, ()))


def get_order(order_id: int, online_store_id: int) -> OnlineOrder:
    order = db.session.query(OnlineOrder).filter_by(id=order_id, online_store_id=online_store_id).first()
    if not order:
        raise OrderNotFoundError("Order not found")
    return order


def _quantities_by_product(order: OnlineOrder) -> OrderedDict:
    """{product_id: (product_name, total quantity)} ordered by product id."""
    totals: dict[int, list] = {}
    for item in order.items:
        entry = totals.setdefault(item.product_id, [item.product_name, 0])
        entry[1] += item.quantity
    return OrderedDict((pid, tuple(totals[pid])) for pid in sorted(totals))


def _lock_products(product_ids) -> dict[int, Product]:
    rows = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(list(product_ids))).order_by(Product.id.asc())
    ).all()
    return {p.id: p for p in rows}


def _deduct_stock(order: OnlineOrder) -> list[dict]:
    wanted = _quantities_by_product(order)
    products = _lock_products(wanted.keys())

    shortfalls = []
    for product_id, (name, requested) in wanted.items():
        product = products.get(product_id)
        available = product.stock_quantity if product is not None else 0
        if available < requested:
            shortfalls.append({
                "product_id": product_id,
                "product_name": name,
                "available": available,
                "requested": requested,
            })
    if shortfalls:
        raise InsufficientStockError(shortfalls)

    adjustments = []
    for product_id, (name, requested) in wanted.items():
        product = products[product_id]
        product.stock_quantity -= requested
        adjustments.append({"product_id": product_id, "delta": -requested, "stock_quantity": product.stock_quantity})
    return adjustments


def _restore_stock(order: OnlineOrder) -> list[dict]:
    wanted = _quantities_by_product(order)
    products = _lock_products(wanted.keys())

    adjustments = []
    for product_id, (name, quantity) in wanted.items():
        product = products.get(product_id)
        if product is None:
            current_app.logger.warning("Cannot restore stock for deleted product_id=%s order_id=%s", product_id, order.id)
            continue
        product.stock_quantity += quantity
        adjustments.append({"product_id": product_id, "delta": quantity, "stock_quantity": product.stock_quantity})
    return adjustments


def _apply_shipping_fields(order: OnlineOrder, *, tracking_number=None, carrier=None, estimated_delivery=None) -> None:
    if tracking_number is not None:
        order.tracking_number = tracking_number
    if carrier is not None:
        order.carrier = carrier
    if estimated_delivery is not None:
        order.estimated_delivery = estimated_delivery


def update_status(
    order_id: int,
    new_status: str,
    online_store_id: int,
    *,
    internal_note: str | None = None,
    tracking_number: str | None = None,
    carrier: str | None = None,
    estimated_delivery: datetime | None = None,
) -> StatusUpdateResult:
    """
    Move an order to new_status, adjusting stock when required.

    Raises:
        ValidationError: unknown status
        OrderNotFoundError: order not in this online store
        InvalidStatusTransitionError: transition not in ALLOWED_TRANSITIONS
        InsufficientStockError: confirmation with short stock (nothing changed)
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {new_status}")

    def _op() -> StatusUpdateResult:
        begin_write_transaction()
        try:
            order = lock_for_update(
                db.session.query(OnlineOrder).filter_by(id=order_id, online_store_id=online_store_id)
            ).first()
            if not order:
                raise OrderNotFoundError("Order not found")

            previous_status = order.status
            if not can_transition(previous_status, new_status):
                raise InvalidStatusTransitionError(previous_status, new_status)

            result = StatusUpdateResult(order=order, previous_status=previous_status, new_status=new_status)

            if new_status == "confirmed" and not order.stock_deducted:
                result.adjustments = _deduct_stock(order)
                order.stock_deducted = True
                result.stock_deducted = True
            elif new_status == "cancelled" and order.stock_deducted:
                result.adjustments = _restore_stock(order)
                order.stock_deducted = False
                result.stock_restored = True

            order.status = new_status
            stamp = _STATUS_TIMESTAMPS.get(new_status)
            if stamp:
                setattr(order, stamp, utcnow())

            if internal_note is not None:
                order.internal_note = internal_note
            _apply_shipping_fields(
                order,
                tracking_number=tracking_number,
                carrier=carrier,
                estimated_delivery=estimated_delivery,
            )

            db.session.commit()
        except (OrderNotFoundError, InvalidStatusTransitionError, InsufficientStockError):
            db.session.rollback()
            raise

        current_app.logger.info(
            "Order %s status %s -> %s (stock_deducted=%s stock_restored=%s)",
            order.order_number, previous_status, new_status, result.stock_deducted, result.stock_restored,
        )
        return result

    return run_with_retry(_op)


def update_shipping_info(
    order_id: int,
    online_store_id: int,
    *,
    tracking_number: str | None = None,
    carrier: str | None = None,
    estimated_delivery: datetime | None = None,
) -> OnlineOrder:
    order = get_order(order_id, online_store_id)
    _apply_shipping_fields(
        order,
        tracking_number=tracking_number,
        carrier=carrier,
        estimated_delivery=estimated_delivery,
    )
    db.session.commit()
    return order


def add_internal_note(order_id: int, online_store_id: int, note: str) -> OnlineOrder:
    order = get_order(order_id, online_store_id)
    order.internal_note = note
    db.session.commit()
    return order


def list_orders(
    online_store_id: int,
    *,
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Filtered, newest-first order listing with pagination metadata."""
    query = db.session.query(OnlineOrder).filter(OnlineOrder.online_store_id == online_store_id)
    if status:
        query = query.filter(OnlineOrder.status == status)
    if payment_status:
        query = query.filter(OnlineOrder.payment_status == payment_status)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            OnlineOrder.order_number.ilike(like),
            OnlineOrder.customer_name.ilike(like),
            OnlineOrder.customer_email.ilike(like),
            OnlineOrder.customer_phone.ilike(like),
        ))
    if date_from is not None:
        query = query.filter(OnlineOrder.created_at >= date_from)
    if date_to is not None:
        query = query.filter(OnlineOrder.created_at <= date_to)

    per_page = min(max(per_page or 20, 1), 100)
    page = max(page or 1, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    orders = (
        query.order_by(OnlineOrder.created_at.desc(), OnlineOrder.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def count_by_status(online_store_id: int) -> dict[str, int]:
    """{status: count} for every status, zero-filled, plus "all"."""
    rows = (
        db.session.query(OnlineOrder.status, db.func.count(OnlineOrder.id))
        .filter(OnlineOrder.online_store_id == online_store_id)
        .group_by(OnlineOrder.status)
        .all()
    )
    counts = {status: 0 for status in ORDER_STATUSES}
    for status, count in rows:
        counts[status] = count
    counts["all"] = sum(count for _, count in rows)
    return counts
