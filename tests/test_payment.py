import re
from unittest.mock import MagicMock

import pytest

from jungian_journals.errors import PaymentError
from jungian_journals.payment import (
    PaymentManager, generate_order_id, get_subscription_months, create_payment_request,
    payment_status, summarize_payments,
)


def test_generate_order_id_format():
    assert re.match(r"^order_\d{13}_[0-9a-z]{9}$", generate_order_id())
    assert generate_order_id() != generate_order_id()


@pytest.mark.parametrize("amount,months", [
    (10000, 1), (24999, 1), (25000, 3), (50000, 6), (89999, 6), (90000, 12), (150000, 12),
])
def test_subscription_months(amount, months):
    assert get_subscription_months(amount) == months


def test_create_payment_request_urls():
    req = create_payment_request(10000, "order_1", "Premium", "Carl", "https://jj.example/")
    assert req["successUrl"] == "https://jj.example/payment/success"
    assert req["failUrl"] == "https://jj.example/payment/fail"
    assert req["orderId"] == "order_1"


def _session(status=200, body=None):
    session = MagicMock()
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body if body is not None else {}
    session.post.return_value = resp
    return session


def test_confirm_payment_sends_basic_auth(dummy_db):
    session = _session(body={"status": "DONE"})
    manager = PaymentManager(dummy_db, secret_key="test_sk", api_url="https://toss.example", session=session)
    assert manager.confirm_payment("pk", "order_1", 10000) == {"status": "DONE"}

    url = session.post.call_args.args[0]
    headers = session.post.call_args.kwargs["headers"]
    assert url == "https://toss.example/v1/payments/confirm"
    assert headers["Authorization"] == "Basic dGVzdF9zazo="
    assert session.post.call_args.kwargs["json"] == {"paymentKey": "pk", "orderId": "order_1", "amount": 10000}


def test_confirm_payment_error_carries_toss_code(dummy_db):
    session = _session(400, {"code": "ALREADY_PROCESSED_PAYMENT", "message": "already done"})
    manager = PaymentManager(dummy_db, secret_key="sk", session=session)
    with pytest.raises(PaymentError) as exc:
        manager.confirm_payment("pk", "order_1", 10000)
    assert exc.value.code == "ALREADY_PROCESSED_PAYMENT"
    assert str(exc.value) == "already done"


def test_complete_payment_requires_fields(dummy_db):
    manager = PaymentManager(dummy_db, session=_session())
    with pytest.raises(PaymentError):
        manager.complete_payment("u", "", "order_1", 10000)


def test_complete_payment_creates_subscription(dummy_db):
    session = _session(body={"status": "DONE", "approvedAt": "2024-05-20T12:00:00+09:00"})
    manager = PaymentManager(dummy_db, secret_key="sk", session=session)
    result = manager.complete_payment("u", "pk", "order_1", 50000)

    assert result["approvedAt"] == "2024-05-20T12:00:00+09:00"
    assert result["subscription"]["status"] == "active"
    assert dummy_db.payments[0]["order_id"] == "order_1"
    assert dummy_db.subscriptions[0]["payment_id"] == "p1"
    assert dummy_db.metadata["u"]["isPremium"] is True
    assert manager.subscriptions.has_active_subscription("u")


def test_complete_payment_without_user_never_charges(dummy_db):
    session = _session(body={"status": "DONE"})
    manager = PaymentManager(dummy_db, secret_key="sk", session=session)
    with pytest.raises(PaymentError) as exc:
        manager.complete_payment(None, "pk", "order_2", 90000)
    assert exc.value.code == "UNAUTHENTICATED"
    session.post.assert_not_called()
    assert dummy_db.payments == []
    assert dummy_db.subscriptions == []


@pytest.mark.parametrize("raw,status", [
    ("DONE", "completed"),
    ("CANCELED", "refunded"),
    ("ABORTED", "failed"),
    ("WAITING_FOR_DEPOSIT", "pending"),
    ("failed", "failed"),
    (None, "pending"),
])
def test_payment_status(raw, status):
    assert payment_status(raw) == status


def _payments():
    return [
        {"id": "p1", "user_id": "u1", "order_id": "order_A1", "amount": 25000, "status": "DONE"},
        {"id": "p2", "user_id": "u2", "order_id": "order_B2", "amount": 90000, "status": "DONE"},
        {"id": "p3", "user_id": "u2", "order_id": "order_C3", "amount": 9900, "status": "ABORTED"},
    ]


def _users():
    return [
        {"id": "u1", "email": "carl@jung.ch", "user_metadata": {"full_name": "Carl"}},
        {"id": "u2", "email": "marie@vonfranz.ch", "user_metadata": {"name": "Marie-Louise"}},
    ]


def test_summarize_payments_totals_only_completed():
    summary = summarize_payments(_payments(), _users())
    assert len(summary["payments"]) == 3
    assert summary["stats"] == {
        "totalRevenue": 115000, "completed": 2, "failed": 1, "pending": 0, "refunded": 0,
    }
    assert summary["payments"][1]["userName"] == "Marie-Louise"


@pytest.mark.parametrize("search,ids", [
    ("order_a", ["p1"]),
    ("VONFRANZ", ["p2", "p3"]),
    ("carl", ["p1"]),
    ("nobody", []),
])
def test_summarize_payments_search(search, ids):
    summary = summarize_payments(_payments(), _users(), search=search)
    assert [p["id"] for p in summary["payments"]] == ids


def test_summarize_payments_status_filter_keeps_totals():
    summary = summarize_payments(_payments(), _users(), status="failed")
    assert [p["id"] for p in summary["payments"]] == ["p3"]
    assert summary["stats"]["totalRevenue"] == 115000


def test_list_payments_reads_table(dummy_db):
    dummy_db.payments = _payments()
    dummy_db.users = _users()
    summary = PaymentManager(dummy_db, session=_session()).list_payments(status="completed")
    assert [p["orderId"] for p in summary["payments"]] == ["order_B2", "order_A1"]
