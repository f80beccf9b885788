# Overview: Customer and store-owner email notifications for online orders; delivery never affects the caller.

"""
Order Notification Service

Three messages:
- order confirmation to the customer after checkout
- new order alert to the shop's contact_email after checkout
- status update to the customer after each status change

All of them are fire-and-forget: the order has already committed when
they are sent, so any delivery failure is logged and swallowed here.
With EMAIL_ASYNC the SMTP round-trip happens on a daemon thread. Without
MAIL_SERVER the message is only logged.
"""

from __future__ import annotations

import smtplib
import threading
from email.message import EmailMessage

from flask import current_app

STATUS_LABELS = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "processing": "Processing",
    "shipped": "Shipped",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}

PAYMENT_METHOD_LABELS = {
    "cod": "Cash on delivery",
    "bank_transfer": "Bank transfer",
}


def _format_money(cents: int, currency: str) -> str:
    return f"{cents / 100:,.2f} {currency}"


def _label(value: str) -> str:
    return STATUS_LABELS.get(value, value)


def _item_lines(order, currency: str) -> list[str]:
    lines = [
        f"  {item.quantity} x {item.product_name}: {_format_money(item.total_price_cents, currency)}"
        for item in order.items
    ]
    lines.append(f"Shipping: {_format_money(order.shipping_fee_cents, currency)}")
    lines.append(f"Total: {_format_money(order.total_cents, currency)}")
    return lines


def _address_line(address) -> str:
    if not isinstance(address, dict):
        return str(address or "")
    parts = [address.get(k) for k in ("address", "ward", "district", "city")]
    return ", ".join(p for p in parts if p)


def build_status_update_message(order, online_store, previous_status: str, new_status: str, sender: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"[{online_store.name}] Order {order.order_number} is now {_label(new_status)}"
    msg["From"] = sender
    msg["To"] = order.customer_email

    lines = [
        f"Hello {order.customer_name},",
        "",
        f"Your order {order.order_number} changed from {_label(previous_status)} to {_label(new_status)}.",
        "",
    ]
    lines += _item_lines(order, online_store.currency)
    if new_status == "shipped" and order.tracking_number:
        lines.append(f"Tracking: {order.carrier or ''} {order.tracking_number}".rstrip())
    lines += ["", online_store.name]

    msg.set_content("\n".join(lines))
    return msg


def build_order_confirmation_message(order, online_store, sender: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"[{online_store.name}] Order {order.order_number} received"
    msg["From"] = sender
    msg["To"] = order.customer_email
    if online_store.contact_email:
        msg["Reply-To"] = online_store.contact_email

    lines = [
        f"Hello {order.customer_name},",
        "",
        f"Thank you for your order {order.order_number}. We will contact you to confirm it.",
        "",
    ]
    lines += _item_lines(order, online_store.currency)
    lines += [
        "",
        f"Payment: {PAYMENT_METHOD_LABELS.get(order.payment_method, order.payment_method)}",
        f"Ship to: {_address_line(order.shipping_address)}",
    ]
    if order.payment_method == "bank_transfer" and online_store.bank_account_number:
        lines += [
            "",
            "Please transfer the total to:",
            f"  {online_store.bank_name or ''} {online_store.bank_account_number}".rstrip(),
            f"  Account name: {online_store.bank_account_name or '-'}",
            f"  Transfer content: {order.order_number}",
        ]
    lines += ["", online_store.name]

    msg.set_content("\n".join(lines))
    return msg


def build_new_order_alert_message(order, online_store, sender: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"[{online_store.name}] New order {order.order_number} ({_format_money(order.total_cents, online_store.currency)})"
    msg["From"] = sender
    msg["To"] = online_store.contact_email
    msg["Reply-To"] = order.customer_email

    lines = [
        f"New online order {order.order_number}.",
        "",
        f"Customer: {order.customer_name} <{order.customer_email}> {order.customer_phone}",
        f"Ship to: {_address_line(order.shipping_address)}",
        f"Payment: {PAYMENT_METHOD_LABELS.get(order.payment_method, order.payment_method)}",
    ]
    if order.customer_note:
        lines.append(f"Note: {order.customer_note}")
    lines.append("")
    lines += _item_lines(order, online_store.currency)

    msg.set_content("\n".join(lines))
    return msg


def _deliver(msg: EmailMessage, server: str | None, port: int, log) -> None:
    try:
        if not server:
            log.info("Email (not sent, MAIL_SERVER unset) to=%s subject=%s", msg["To"], msg["Subject"])
            return
        with smtplib.SMTP(server, port, timeout=10) as smtp:
            smtp.send_message(msg)
        log.info("Email sent to=%s subject=%s", msg["To"], msg["Subject"])
    except (smtplib.SMTPException, OSError):
        log.exception("Failed to send email to=%s", msg["To"])


def _dispatch(build, kind: str, order) -> None:
    """
    Build the message in the caller's thread, then deliver it.

    No ORM object crosses into the delivery thread; the app logger is
    handed over because the thread has no app context.
    """
    log = current_app.logger
    try:
        config = current_app.config
        msg = build(config.get("MAIL_SENDER", "no-reply@retailpos.local"))
        server = config.get("MAIL_SERVER")
        port = int(config.get("MAIL_PORT", 25))

        if config.get("EMAIL_ASYNC", True):
            threading.Thread(
                target=_deliver,
                args=(msg, server, port, log),
                daemon=True,
                name=f"order-email-{kind}",
            ).start()
        else:
            _deliver(msg, server, port, log)
    except Exception:
        log.exception("Failed to queue %s email for order_id=%s", kind, getattr(order, "id", None))


def send_status_update_notification(*, order, online_store, previous_status: str, new_status: str) -> None:
    """Notify the customer of a status change. Never raises."""
    _dispatch(
        lambda sender: build_status_update_message(order, online_store, previous_status, new_status, sender),
        "status-update",
        order,
    )


def send_order_confirmation(*, order, online_store) -> None:
    """Confirm a freshly placed order to the customer. Never raises."""
    _dispatch(lambda sender: build_order_confirmation_message(order, online_store, sender), "confirmation", order)


def send_new_order_alert(*, order, online_store) -> None:
    """Alert the shop about a new order. Skipped when the shop has no contact_email. Never raises."""
    if not online_store.contact_email:
        current_app.logger.info("New order alert skipped: online_store_id=%s has no contact_email", online_store.id)
        return
    _dispatch(lambda sender: build_new_order_alert_message(order, online_store, sender), "new-order-alert", order)
