# Overview: Service-layer operations for online order payment; encapsulates business logic and database work.

"""
Online Order Payment Service

WHY: Online orders are paid either by bank transfer (confirmed manually
against the store's bank statement) or cash on delivery (collected by
the courier). Payment status moves independently of order status.

DESIGN PRINCIPLES:
- Payment status follows PAYMENT_TRANSITIONS; anything else raises
  PaymentStatusError (400 at the route)
- Amounts are integer cents
- Order rows are locked while their payment fields change
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import OnlineOrder
from ..time_utils import utcnow, to_utc_z
from .concurrency import lock_for_update, run_with_retry
from .order_status_service import OrderNotFoundError


class PaymentStatusError(Exception):
    """Raised for invalid payment operations."""
    pass


# =============================================================================
# CONSTANTS
# =============================================================================

PAYMENT_METHOD_COD = "cod"
PAYMENT_METHOD_BANK_TRANSFER = "bank_transfer"
VALID_PAYMENT_METHODS = (PAYMENT_METHOD_COD, PAYMENT_METHOD_BANK_TRANSFER)

PAYMENT_STATUSES = ("pending", "paid", "refunded", "failed")

PAYMENT_TRANSITIONS = {
    "pending": ("paid", "failed"),
    "failed": ("pending", "paid"),
    "paid": ("refunded",),
    "refunded": (),
}

# Unpaid bank transfers are considered expired after this long
BANK_TRANSFER_EXPIRY = timedelta(hours=24)


# =============================================================================
# HELPERS
# =============================================================================

def _locked_order(order_id: int, online_store_id: int) -> OnlineOrder:
    order = lock_for_update(
        db.session.query(OnlineOrder).filter_by(id=order_id, online_store_id=online_store_id)
    ).first()
    if not order:
        raise OrderNotFoundError("Order not found")
    return order


def _check_transition(current: str, target: str) -> None:
    if target not in PAYMENT_TRANSITIONS.get(current, ()):
        raise PaymentStatusError(f"Cannot change payment status from '{current}' to '{target}'")


def _transition(order: OnlineOrder, target: str) -> None:
    _check_transition(order.payment_status, target)
    order.payment_status = target


def _run(order_id: int, online_store_id: int, mutate) -> dict:
    """Lock the order, apply mutate(order), commit. Rolls back on any error."""
    def _op():
        try:
            order = _locked_order(order_id, online_store_id)
            mutate(order)
            db.session.commit()
        except (OrderNotFoundError, PaymentStatusError):
            db.session.rollback()
            raise
        return payment_summary(order)

    return run_with_retry(_op)


def payment_summary(order: OnlineOrder) -> dict:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "payment_reference": order.payment_reference,
        "paid_at": to_utc_z(order.paid_at),
        "total_cents": order.total_cents,
        "refunded_cents": order.refunded_cents,
    }


# =============================================================================
# QUERIES
# =============================================================================

def get_bank_transfer_instructions(order: OnlineOrder) -> dict:
    store = order.online_store
    return {
        "bank_name": store.bank_name,
        "account_number": store.bank_account_number,
        "account_name": store.bank_account_name,
        "amount_cents": order.total_cents,
        "currency": store.currency,
        # Customers put the order number in the transfer description
        "transfer_content": order.order_number,
        "expires_at": to_utc_z(order.created_at + BANK_TRANSFER_EXPIRY) if order.created_at else None,
    }


def is_payment_expired(order: OnlineOrder) -> bool:
    if order.payment_method != PAYMENT_METHOD_BANK_TRANSFER or order.payment_status != "pending":
        return False
    if order.created_at is None:
        return False
    return utcnow() > order.created_at + BANK_TRANSFER_EXPIRY


def get_payment_info(order: OnlineOrder) -> dict:
    info = payment_summary(order)
    if order.payment_method == PAYMENT_METHOD_BANK_TRANSFER:
        info["instructions"] = get_bank_transfer_instructions(order)
        info["is_expired"] = is_payment_expired(order)
    return info


# =============================================================================
# ACTIONS
# =============================================================================

def confirm_bank_transfer(
    order_id: int,
    online_store_id: int,
    *,
    transaction_reference: str | None = None,
    confirmed_by: str | None = None,
    note: str | None = None,
) -> dict:
    def mutate(order: OnlineOrder) -> None:
        if order.payment_method != PAYMENT_METHOD_BANK_TRANSFER:
            raise PaymentStatusError("Order is not paid by bank transfer")
        if order.status == "cancelled":
            raise PaymentStatusError("Cannot confirm payment for a cancelled order")
        _transition(order, "paid")
        order.paid_at = utcnow()
        order.payment_reference = transaction_reference
        order.payment_note = note or (f"Confirmed by {confirmed_by}" if confirmed_by else None)

    result = _run(order_id, online_store_id, mutate)
    current_app.logger.info("Bank transfer confirmed: order_id=%s by=%s", order_id, confirmed_by)
    return result


def complete_cod_payment(
    order_id: int,
    online_store_id: int,
    *,
    collected_amount_cents: int,
    collected_by: str | None = None,
    note: str | None = None,
) -> dict:
    """Record cash collected on delivery. The amount must cover the order total."""
    if isinstance(collected_amount_cents, bool) or not isinstance(collected_amount_cents, int):
        raise PaymentStatusError("collected_amount_cents must be an integer")

    def mutate(order: OnlineOrder) -> None:
        if order.payment_method != PAYMENT_METHOD_COD:
            raise PaymentStatusError("Order is not cash on delivery")
        if order.status == "cancelled":
            raise PaymentStatusError("Cannot collect payment for a cancelled order")
        if collected_amount_cents < order.total_cents:
            raise PaymentStatusError(
                f"Collected amount {collected_amount_cents} is less than order total {order.total_cents}"
            )
        _transition(order, "paid")
        order.paid_at = utcnow()
        order.payment_note = note or (f"Collected by {collected_by}" if collected_by else None)

    return _run(order_id, online_store_id, mutate)


def mark_payment_failed(order_id: int, online_store_id: int, reason: str | None = None) -> dict:
    def mutate(order: OnlineOrder) -> None:
        _transition(order, "failed")
        order.payment_note = reason

    return _run(order_id, online_store_id, mutate)


def process_refund(
    order_id: int,
    online_store_id: int,
    refund_amount_cents: int,
    reason: str | None = None,
) -> dict:
    """Refund a paid order; 0 < amount <= total."""
    if isinstance(refund_amount_cents, bool) or not isinstance(refund_amount_cents, int):
        raise PaymentStatusError("refund_amount_cents must be an integer")

    def mutate(order: OnlineOrder) -> None:
        if order.payment_status != "paid":
            raise PaymentStatusError("Only paid orders can be refunded")
        if refund_amount_cents <= 0 or refund_amount_cents > order.total_cents:
            raise PaymentStatusError("Refund amount must be greater than 0 and at most the order total")
        _transition(order, "refunded")
        order.refunded_cents = refund_amount_cents
        order.payment_note = reason

    result = _run(order_id, online_store_id, mutate)
    current_app.logger.info("Refund processed: order_id=%s amount_cents=%s", order_id, refund_amount_cents)
    return result


def check_payment_status_change(order: OnlineOrder, payment_status: str) -> None:
    """
    Raise PaymentStatusError unless set_payment_status would accept the edit.

    Lets a combined order update reject a bad payment edit before any
    other field is written.
    """
    if payment_status not in PAYMENT_STATUSES:
        raise PaymentStatusError(f"Invalid payment status: {payment_status}")
    if order.payment_status != payment_status:
        _check_transition(order.payment_status, payment_status)


def set_payment_status(order_id: int, online_store_id: int, payment_status: str) -> dict:
    """Direct status edit from the order form, still bound by PAYMENT_TRANSITIONS."""
    if payment_status not in PAYMENT_STATUSES:
        raise PaymentStatusError(f"Invalid payment status: {payment_status}")

    def mutate(order: OnlineOrder) -> None:
        if order.payment_status == payment_status:
            return
        _transition(order, payment_status)
        if payment_status == "paid":
            order.paid_at = utcnow()

    return _run(order_id, online_store_id, mutate)
