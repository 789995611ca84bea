import pytest
import stripe

from common.errors import BadRequestError, InternalError, NotFoundError, UnauthorizedError
from common.models.notification import Notification
from common.models.order import Order
from common.services.notification_service import CANCEL_ORDER, EDIT_ORDER
from services.webhook_reconciler import WebhookConcern

from .conftest import charge_refunded, checkout_completed, payment_intent_event


@pytest.fixture
def place_order(bag_service, deliver, reference_for, session_factory, seed):
    def _place(product_id="p_jacket", payment_intent="pi_test_1"):
        bag = bag_service.add_to_bag(user_id=seed.buyer, product_id=product_id)
        deliver(
            WebhookConcern.PAYMENT,
            checkout_completed(reference_for(bag["id"]), payment_intent=payment_intent, event_id=f"evt_{payment_intent}"),
        )
        with session_factory() as session:
            return session.query(Order).filter(Order.payment_id == payment_intent).one().id

    return _place


@pytest.fixture
def order_id(place_order):
    return place_order()


def _status(session_factory, order_id):
    with session_factory() as session:
        order = session.get(Order, order_id)
        return order.payment_status, order.order_status


def test_buyer_and_store_order_lists(order_service, order_id, seed):
    mine = order_service.get_user_orders(user_id=seed.buyer, limit=10)
    assert [o["id"] for o in mine["items"]] == [order_id]
    assert mine["next"] is None
    assert mine["items"][0]["counterparty"]["id"] == seed.seller
    assert mine["items"][0]["address"]["id"] == seed.address

    theirs = order_service.get_store_orders(user_id=seed.seller, limit=10)
    assert [o["id"] for o in theirs["items"]] == [order_id]
    assert theirs["items"][0]["counterparty"]["id"] == seed.buyer


def test_store_orders_require_a_store(order_service, seed):
    with pytest.raises(UnauthorizedError):
        order_service.get_store_orders(user_id=seed.buyer, limit=10)


def test_orders_paginate_newest_first(order_service, place_order, seed):
    ids = [
        place_order("p_jacket", "pi_a"),
        place_order("p_boots", "pi_b"),
        place_order("p_scarf", "pi_c"),
    ]

    first = order_service.get_user_orders(user_id=seed.buyer, limit=2)
    assert [o["id"] for o in first["items"]] == [ids[2], ids[1]]
    assert first["next"] == ids[0]

    second = order_service.get_user_orders(user_id=seed.buyer, limit=2, cursor=first["next"])
    assert [o["id"] for o in second["items"]] == [ids[0]]
    assert second["next"] is None

    skipped = order_service.get_user_orders(user_id=seed.buyer, limit=2, skip=1)
    assert [o["id"] for o in skipped["items"]] == [ids[1], ids[0]]


def test_buyer_cancel_requests_refund(order_service, fake_stripe, session_factory, order_id, seed):
    result = order_service.cancel_order(user_id=seed.buyer, order_id=order_id, actor="user")

    assert result["order_status"] == "cancelled"
    assert result["payment_status"] == "processing_refund"
    (refund,) = fake_stripe.calls_to("Refund")
    assert refund["payment_intent"] == "pi_test_1"
    assert refund["reverse_transfer"] is True
    assert refund["refund_application_fee"] is True
    assert refund["idempotency_key"] == f"cancel-{order_id}"

    with session_factory() as session:
        note = session.query(Notification).filter(Notification.action == CANCEL_ORDER).one()
        assert (note.notifier_id, note.notified_id) == (seed.buyer, seed.seller)


def test_refund_webhook_settles_cancelled_order(order_service, deliver, session_factory, order_id, seed):
    order_service.cancel_order(user_id=seed.seller, order_id=order_id, actor="store")
    deliver(WebhookConcern.REFUND, charge_refunded())
    assert _status(session_factory, order_id) == ("refunded", "cancelled")


def test_cancel_after_failed_payment_skips_refund(order_service, deliver, fake_stripe, session_factory, order_id, seed):
    deliver(WebhookConcern.PAYMENT, payment_intent_event("payment_intent.payment_failed"))
    result = order_service.cancel_order(user_id=seed.buyer, order_id=order_id, actor="user")
    assert (result["payment_status"], result["order_status"]) == ("failed", "cancelled")
    assert fake_stripe.calls_to("Refund") == []


def test_cancel_guards(order_service, order_id, seed):
    with pytest.raises(BadRequestError):
        order_service.cancel_order(user_id=seed.buyer, order_id=order_id, actor="admin")
    with pytest.raises(UnauthorizedError):
        order_service.cancel_order(user_id=seed.other, order_id=order_id, actor="user")
    with pytest.raises(UnauthorizedError):
        order_service.cancel_order(user_id=seed.buyer, order_id=order_id, actor="store")
    with pytest.raises(NotFoundError):
        order_service.cancel_order(user_id=seed.buyer, order_id="missing", actor="user")


def test_cancel_twice_is_rejected(order_service, fake_stripe, order_id, seed):
    order_service.cancel_order(user_id=seed.buyer, order_id=order_id, actor="user")
    with pytest.raises(BadRequestError):
        order_service.cancel_order(user_id=seed.seller, order_id=order_id, actor="store")
    assert len(fake_stripe.calls_to("Refund")) == 1


def test_refund_failure_rolls_back_cancel(order_service, fake_stripe, session_factory, order_id, seed):
    fake_stripe.fail_with = stripe.StripeError("refund declined")
    with pytest.raises(InternalError):
        order_service.cancel_order(user_id=seed.buyer, order_id=order_id, actor="user")
    assert _status(session_factory, order_id) == ("pending", "in_progress")
    with session_factory() as session:
        assert session.query(Notification).filter(Notification.action == CANCEL_ORDER).count() == 0

    # the order is still cancellable once stripe recovers
    fake_stripe.fail_with = None
    result = order_service.cancel_order(user_id=seed.buyer, order_id=order_id, actor="user")
    assert result["order_status"] == "cancelled"


def test_refund_requested_after_cancel_is_committed(order_service, fake_stripe, session_factory, order_id, seed, monkeypatch):
    seen = []
    create = fake_stripe.Refund.create

    def record_state(**params):
        seen.append(_status(session_factory, order_id))
        return create(**params)

    monkeypatch.setattr(fake_stripe.Refund, "create", record_state)
    order_service.cancel_order(user_id=seed.seller, order_id=order_id, actor="store")

    assert seen == [("processing_refund", "cancelled")]


def test_seller_marks_shipped(order_service, session_factory, order_id, seed):
    with pytest.raises(BadRequestError):
        order_service.mark_order_as_shipped(user_id=seed.buyer, order_id=order_id)
    with pytest.raises(UnauthorizedError):
        order_service.mark_order_as_shipped(user_id=seed.other, order_id=order_id)

    result = order_service.mark_order_as_shipped(user_id=seed.seller, order_id=order_id)
    assert result["order_status"] == "shipped"

    with pytest.raises(BadRequestError):
        order_service.cancel_order(user_id=seed.buyer, order_id=order_id, actor="user")
    with pytest.raises(BadRequestError):
        order_service.mark_order_as_shipped(user_id=seed.seller, order_id=order_id)


def test_buyer_marks_received(order_service, order_id, seed):
    with pytest.raises(BadRequestError):
        order_service.mark_order_as_received(user_id=seed.seller, order_id=order_id)

    result = order_service.mark_order_as_received(user_id=seed.buyer, order_id=order_id)
    assert result["order_status"] == "shipped"


def test_cancelled_order_cannot_ship(order_service, order_id, seed):
    order_service.cancel_order(user_id=seed.buyer, order_id=order_id, actor="user")
    with pytest.raises(BadRequestError):
        order_service.mark_order_as_shipped(user_id=seed.seller, order_id=order_id)


def test_update_shipping_address(order_service, session_factory, order_id, seed):
    result = order_service.update_user_order(user_id=seed.buyer, order_id=order_id, address_id=seed.address_2)
    assert result["address_id"] == seed.address_2
    assert result["address"]["line1"] == "9 Bay St"

    with session_factory() as session:
        note = session.query(Notification).filter(Notification.action == EDIT_ORDER).one()
        assert note.notified_id == seed.seller
        assert order_id in note.message


def test_update_address_guards(order_service, order_id, seed):
    with pytest.raises(NotFoundError):
        order_service.update_user_order(user_id=seed.buyer, order_id=order_id, address_id=seed.other_address)
    with pytest.raises(UnauthorizedError):
        order_service.update_user_order(user_id=seed.seller, order_id=order_id, address_id=seed.address_2)
    with pytest.raises(BadRequestError):
        order_service.update_user_order(user_id=seed.buyer, order_id=order_id, address_id="")


def test_notifications_feed(order_service, notifications, order_id, seed):
    order_service.mark_order_as_shipped(user_id=seed.seller, order_id=order_id)

    feed = notifications.get_user_notifications(seed.buyer, limit=10)
    assert len(feed["items"]) == 1
    assert "shipped" in feed["items"][0]["message"]
    seller_feed = notifications.get_user_notifications(seed.seller, limit=10)
    assert [n["action"] for n in seller_feed["items"]] == ["NEW_ORDER"]
