"""
Online order status workflow and its stock effects.

Verifies:
- Transition table (valid, invalid, terminal states)
- Confirmation deducts stock atomically, all lines or none
- Cancellation restores stock exactly once
- Staff API responses (400 invalid transition, 409 stock shortfall, 404)
- Status emails never break the transition
"""

import logging
import smtplib

import pytest

from retailpos.models import Product, OnlineOrder
from retailpos.services import notification_service, order_status_service
from retailpos.services.order_status_service import (
    InvalidStatusTransitionError,
    InsufficientStockError,
    OrderNotFoundError,
)
from retailpos.validation import ValidationError

from conftest import headers_for, make_order


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock_quantity


# =============================================================================
# TRANSITION TABLE
# =============================================================================


class TestTransitionTable:

    @pytest.mark.parametrize("current,target", [
        ("pending", "confirmed"),
        ("pending", "cancelled"),
        ("confirmed", "processing"),
        ("processing", "shipped"),
        ("shipped", "delivered"),
    ])
    def test_allowed(self, current, target):
        assert order_status_service.can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        ("pending", "shipped"),
        ("pending", "pending"),
        ("shipped", "cancelled"),
        ("delivered", "cancelled"),
        ("delivered", "processing"),
        ("cancelled", "pending"),
    ])
    def test_rejected(self, current, target):
        assert not order_status_service.can_transition(current, target)

    def test_terminal_states_have_no_transitions(self):
        assert order_status_service.get_allowed_transitions("delivered") == []
        assert order_status_service.get_allowed_transitions("cancelled") == []


# =============================================================================
# SERVICE
# =============================================================================


class TestStockEffects:

    def test_confirm_deducts_stock(self, db_session, online_store, pending_order, product_a):
        result = order_status_service.update_status(pending_order.id, "confirmed", online_store.id)

        assert result.stock_deducted is True
        assert result.previous_status == "pending"
        assert _stock(db_session, product_a.id) == 7
        order = db_session.get(OnlineOrder, pending_order.id)
        assert order.stock_deducted is True
        assert order.confirmed_at is not None

    def test_cancel_after_confirm_restores_stock(self, db_session, online_store, pending_order, product_a):
        order_status_service.update_status(pending_order.id, "confirmed", online_store.id)
        result = order_status_service.update_status(pending_order.id, "cancelled", online_store.id)

        assert result.stock_restored is True
        assert _stock(db_session, product_a.id) == 10
        assert db_session.get(OnlineOrder, pending_order.id).stock_deducted is False

    def test_cancel_pending_leaves_stock_alone(self, db_session, online_store, pending_order, product_a):
        result = order_status_service.update_status(pending_order.id, "cancelled", online_store.id)

        assert result.stock_restored is False
        assert _stock(db_session, product_a.id) == 10

    def test_shortfall_on_one_line_deducts_nothing(self, db_session, online_store, product_a, product_a2):
        # Product A has 10, Product A2 has 2
        order = make_order(db_session, online_store, [(product_a, 4), (product_a2, 5)])

        with pytest.raises(InsufficientStockError) as exc:
            order_status_service.update_status(order.id, "confirmed", online_store.id)

        assert [i["product_id"] for i in exc.value.items] == [product_a2.id]
        assert exc.value.items[0]["available"] == 2
        assert exc.value.items[0]["requested"] == 5
        assert _stock(db_session, product_a.id) == 10
        assert _stock(db_session, product_a2.id) == 2
        assert db_session.get(OnlineOrder, order.id).status == "pending"

    def test_duplicate_lines_are_summed(self, db_session, online_store, product_a2):
        order = make_order(db_session, online_store, [(product_a2, 1), (product_a2, 2)])

        with pytest.raises(InsufficientStockError) as exc:
            order_status_service.update_status(order.id, "confirmed", online_store.id)
        assert exc.value.items[0]["requested"] == 3

    def test_invalid_transition_raises(self, db_session, online_store, pending_order):
        with pytest.raises(InvalidStatusTransitionError) as exc:
            order_status_service.update_status(pending_order.id, "shipped", online_store.id)
        assert exc.value.current_status == "pending"
        assert exc.value.target_status == "shipped"

        db_session.expire_all()
        assert db_session.get(OnlineOrder, pending_order.id).status == "pending"

    def test_delivered_order_cannot_reopen(self, db_session, online_store, product_a):
        order = make_order(db_session, online_store, [(product_a, 2)], status="delivered")

        with pytest.raises(InvalidStatusTransitionError) as exc:
            order_status_service.update_status(order.id, "processing", online_store.id)
        assert exc.value.current_status == "delivered"
        assert exc.value.target_status == "processing"

        db_session.expire_all()
        assert db_session.get(OnlineOrder, order.id).status == "delivered"
        assert _stock(db_session, product_a.id) == 10

    def test_unknown_status_rejected(self, db_session, online_store, pending_order):
        with pytest.raises(ValidationError):
            order_status_service.update_status(pending_order.id, "lost", online_store.id)

    def test_order_from_other_store_not_found(self, db_session, online_store, pending_order):
        with pytest.raises(OrderNotFoundError):
            order_status_service.update_status(pending_order.id, "confirmed", online_store.id + 1000)

    def test_full_lifecycle_stamps_timestamps(self, db_session, online_store, pending_order):
        for status in ("confirmed", "processing", "shipped", "delivered"):
            order_status_service.update_status(pending_order.id, status, online_store.id)

        order = db_session.get(OnlineOrder, pending_order.id)
        assert order.status == "delivered"
        assert order.shipped_at is not None
        assert order.delivered_at is not None


class TestListing:

    def test_counts_zero_filled(self, db_session, online_store, pending_order):
        counts = order_status_service.count_by_status(online_store.id)
        assert counts["pending"] == 1
        assert counts["shipped"] == 0
        assert counts["all"] == 1

    def test_search_by_customer(self, db_session, online_store, pending_order):
        result = order_status_service.list_orders(online_store.id, search="buyer@")
        assert result["pagination"]["total"] == 1
        result = order_status_service.list_orders(online_store.id, search="nobody")
        assert result["items"] == []


# =============================================================================
# API
# =============================================================================


class TestOrderApi:

    def _url(self, online_store, order=None):
        base = f"/api/online-stores/{online_store.id}/orders"
        return f"{base}/{order.id}" if order is not None else base

    def test_confirm_via_api(self, client, db_session, store_manager, store_a, online_store, pending_order, product_a):
        resp = client.put(
            self._url(online_store, pending_order),
            json={"status": "confirmed", "internal_note": "call before delivery"},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "confirmed"
        assert resp.json["order"]["internal_note"] == "call before delivery"
        assert _stock(db_session, product_a.id) == 7

    def test_invalid_transition_is_400(self, client, store_manager, store_a, online_store, pending_order):
        resp = client.put(
            self._url(online_store, pending_order),
            json={"status": "delivered"},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 400
        assert resp.json["current_status"] == "pending"
        assert resp.json["target_status"] == "delivered"

    def test_rejected_payment_edit_leaves_order_untouched(
        self, client, db_session, store_manager, store_a, online_store, pending_order, product_a, monkeypatch
    ):
        sent = []
        monkeypatch.setattr(notification_service, "send_status_update_notification", lambda **kw: sent.append(kw))

        resp = client.put(
            self._url(online_store, pending_order),
            json={"status": "confirmed", "payment_status": "refunded"},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 400
        assert "refunded" in resp.json["error"]

        db_session.expire_all()
        order = db_session.get(OnlineOrder, pending_order.id)
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert order.stock_deducted is False
        assert _stock(db_session, product_a.id) == 10
        assert sent == []

    def test_status_and_payment_in_one_request(
        self, client, db_session, store_manager, store_a, online_store, pending_order, product_a
    ):
        resp = client.put(
            self._url(online_store, pending_order),
            json={"status": "confirmed", "payment_status": "paid"},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "confirmed"
        assert resp.json["order"]["payment_status"] == "paid"
        assert _stock(db_session, product_a.id) == 7

    def test_shortfall_is_409(self, client, db_session, store_manager, store_a, online_store, product_a2):
        order = make_order(db_session, online_store, [(product_a2, 5)])
        resp = client.put(
            self._url(online_store, order),
            json={"status": "confirmed"},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "INSUFFICIENT_STOCK"
        assert resp.json["items"][0]["available"] == 2

    def test_missing_order_is_404(self, client, store_manager, store_a, online_store):
        resp = client.get(
            f"/api/online-stores/{online_store.id}/orders/424242",
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 404

    def test_get_order_lists_allowed_transitions(self, client, store_manager, store_a, online_store, pending_order):
        resp = client.get(
            self._url(online_store, pending_order),
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 200
        assert resp.json["order"]["allowed_transitions"] == ["confirmed", "cancelled"]
        assert len(resp.json["order"]["items"]) == 1

    def test_salesperson_cannot_update(self, client, salesperson, store_a, online_store, pending_order):
        resp = client.put(
            self._url(online_store, pending_order),
            json={"status": "confirmed"},
            headers=headers_for(client, salesperson, store_a.id),
        )
        assert resp.status_code == 403
        assert resp.json["code"] == "PERM001"

    def test_online_store_of_other_store_is_404(self, client, admin, store_a2, online_store, pending_order):
        resp = client.get(
            self._url(online_store),
            headers=headers_for(client, admin, store_a2.id),
        )
        assert resp.status_code == 404

    def test_list_includes_status_counts(self, client, store_manager, store_a, online_store, pending_order):
        resp = client.get(
            self._url(online_store) + "?status=pending",
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["status_counts"]["pending"] == 1

    def test_tracking_update_without_status(self, client, store_manager, store_a, online_store, pending_order):
        resp = client.put(
            self._url(online_store, pending_order),
            json={"tracking_number": "VN123", "carrier": "GHN"},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 200
        assert resp.json["order"]["tracking_number"] == "VN123"
        assert resp.json["order"]["status"] == "pending"


class TestStatusNotification:

    def test_message_content(self, db_session, online_store, pending_order):
        msg = notification_service.build_status_update_message(
            pending_order, online_store, "pending", "confirmed", "shop@acme.com"
        )
        assert msg["To"] == "buyer@example.com"
        assert "is now Confirmed" in msg["Subject"]
        assert "from Pending to Confirmed" in msg.get_content()

    def test_without_mail_server_only_logs(self, db_session, online_store, pending_order, caplog):
        with caplog.at_level(logging.INFO, logger="retailpos"):
            notification_service.send_status_update_notification(
                order=pending_order, online_store=online_store, previous_status="pending", new_status="confirmed",
            )
        assert "MAIL_SERVER unset" in caplog.text

    def test_smtp_failure_is_logged_not_raised(self, app, db_session, online_store, pending_order, monkeypatch, caplog):
        def refuse(*args, **kwargs):
            raise OSError("connection refused")

        monkeypatch.setitem(app.config, "MAIL_SERVER", "mail.invalid")
        monkeypatch.setattr(smtplib, "SMTP", refuse)

        with caplog.at_level(logging.ERROR, logger="retailpos"):
            notification_service.send_status_update_notification(
                order=pending_order, online_store=online_store, previous_status="confirmed", new_status="cancelled",
            )
        assert "Failed to send email" in caplog.text
