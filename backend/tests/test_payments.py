"""
Online order payment tests: bank transfer, COD, refunds, status table.
"""

import pytest

from retailpos.services import payment_service
from retailpos.services.payment_service import PaymentStatusError

from conftest import headers_for, make_order


@pytest.fixture
def transfer_order(db_session, online_store, product_a):
    return make_order(db_session, online_store, [(product_a, 1)], payment_method="bank_transfer", number="ORD260101BBBBBB")


class TestBankTransfer:

    def test_confirm_marks_paid(self, db_session, online_store, transfer_order):
        result = payment_service.confirm_bank_transfer(
            transfer_order.id,
            online_store.id,
            transaction_reference="FT2601010001",
            confirmed_by="manager@acme.com",
        )
        assert result["payment_status"] == "paid"
        assert result["payment_reference"] == "FT2601010001"
        assert result["paid_at"] is not None

    def test_confirm_rejects_cod_order(self, db_session, online_store, pending_order):
        with pytest.raises(PaymentStatusError):
            payment_service.confirm_bank_transfer(pending_order.id, online_store.id)

    def test_instructions_use_order_number(self, db_session, online_store, transfer_order):
        info = payment_service.get_payment_info(transfer_order)
        assert info["instructions"]["transfer_content"] == transfer_order.order_number
        assert info["instructions"]["amount_cents"] == transfer_order.total_cents
        assert info["instructions"]["bank_name"] == "Acme Bank"
        assert info["is_expired"] is False


class TestCashOnDelivery:

    def test_collect_full_amount(self, db_session, online_store, pending_order):
        result = payment_service.complete_cod_payment(
            pending_order.id,
            online_store.id,
            collected_amount_cents=pending_order.total_cents,
        )
        assert result["payment_status"] == "paid"

    def test_short_collection_rejected(self, db_session, online_store, pending_order):
        with pytest.raises(PaymentStatusError):
            payment_service.complete_cod_payment(
                pending_order.id,
                online_store.id,
                collected_amount_cents=pending_order.total_cents - 1,
            )

    def test_amount_must_be_integer(self, db_session, online_store, pending_order):
        with pytest.raises(PaymentStatusError):
            payment_service.complete_cod_payment(pending_order.id, online_store.id, collected_amount_cents=10.5)


class TestRefunds:

    def test_refund_paid_order(self, db_session, online_store, pending_order):
        total = pending_order.total_cents
        payment_service.complete_cod_payment(pending_order.id, online_store.id, collected_amount_cents=total)

        result = payment_service.process_refund(pending_order.id, online_store.id, total, "Damaged")
        assert result["payment_status"] == "refunded"
        assert result["refunded_cents"] == total

    def test_refund_unpaid_rejected(self, db_session, online_store, pending_order):
        with pytest.raises(PaymentStatusError):
            payment_service.process_refund(pending_order.id, online_store.id, 100)

    def test_refund_over_total_rejected(self, db_session, online_store, pending_order):
        total = pending_order.total_cents
        payment_service.complete_cod_payment(pending_order.id, online_store.id, collected_amount_cents=total)
        with pytest.raises(PaymentStatusError):
            payment_service.process_refund(pending_order.id, online_store.id, total + 1)


class TestPaymentStatusTable:

    def test_failed_can_retry(self, db_session, online_store, pending_order):
        payment_service.mark_payment_failed(pending_order.id, online_store.id, "Customer unreachable")
        result = payment_service.set_payment_status(pending_order.id, online_store.id, "pending")
        assert result["payment_status"] == "pending"

    def test_pending_to_refunded_rejected(self, db_session, online_store, pending_order):
        with pytest.raises(PaymentStatusError):
            payment_service.set_payment_status(pending_order.id, online_store.id, "refunded")

    def test_unknown_status_rejected(self, db_session, online_store, pending_order):
        with pytest.raises(PaymentStatusError):
            payment_service.set_payment_status(pending_order.id, online_store.id, "chargeback")


class TestPaymentApi:

    def _url(self, online_store, order):
        return f"/api/online-stores/{online_store.id}/orders/{order.id}/payment"

    def test_get_payment_info(self, client, store_manager, store_a, online_store, transfer_order):
        resp = client.get(self._url(online_store, transfer_order), headers=headers_for(client, store_manager, store_a.id))
        assert resp.status_code == 200
        assert resp.json["payment_method"] == "bank_transfer"
        assert "instructions" in resp.json

    def test_confirm_transfer_records_actor(self, client, db_session, store_manager, store_a, online_store, transfer_order):
        resp = client.post(
            self._url(online_store, transfer_order),
            json={"action": "confirm_bank_transfer", "transaction_reference": "FT1"},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 200
        assert resp.json["payment_status"] == "paid"

    def test_complete_cod_requires_amount(self, client, store_manager, store_a, online_store, pending_order):
        resp = client.post(
            self._url(online_store, pending_order),
            json={"action": "complete_cod"},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 400

    def test_unknown_action(self, client, store_manager, store_a, online_store, pending_order):
        resp = client.post(
            self._url(online_store, pending_order),
            json={"action": "teleport"},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 400

    def test_invalid_payment_transition_is_400(self, client, store_manager, store_a, online_store, pending_order):
        resp = client.post(
            self._url(online_store, pending_order),
            json={"action": "refund", "refund_amount_cents": 100},
            headers=headers_for(client, store_manager, store_a.id),
        )
        assert resp.status_code == 400
