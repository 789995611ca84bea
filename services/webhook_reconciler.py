"""Stripe webhook reconciliation.

Turns verified gateway events into durable order, payment and store state.
Deliveries may repeat or arrive in any order, so every transition is a
conditional update keyed by the order's payment intent id and the set of
statuses it may move from. Notifications are written after the transition
commits and never undo it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from common.db.session import get_session
from common.errors import BadRequestError, ConflictError, InternalError, NotFoundError
from common.models.address import Address
from common.models.bag import Bag
from common.models.order import (
    ORDER_IN_PROGRESS,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_PENDING,
    PAYMENT_PROCESSING_REFUND,
    PAYMENT_REFUNDED,
    Order,
    OrderItem,
)
from common.models.product import Product
from common.models.store import STRIPE_SETUP_COMPLETE, STRIPE_SETUP_IN_PROGRESS, Store
from common.models.user import User
from common.services.bag_service import delete_bag
from common.services.logging import log_event
from common.services.notification_service import NEW_ORDER, UPDATE_ORDER
from common.utils.checkout_reference import CheckoutReference
from common.utils.ids import new_id
from common.utils.money import line_amount


class WebhookConcern(str, Enum):
    CONNECT = "connect"
    PAYMENT = "payment"
    REFUND = "refund"


class EventKind(str, Enum):
    ACCOUNT_UPDATED = "account.updated"
    CHECKOUT_COMPLETED = "checkout.session.completed"
    ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
    ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"
    CHARGE_REFUNDED = "charge.refunded"

    @classmethod
    def resolve(cls, value: Any) -> Optional["EventKind"]:
        try:
            return cls(value)
        except ValueError:
            return None


CONCERN_KINDS: Dict[WebhookConcern, FrozenSet[EventKind]] = {
    WebhookConcern.CONNECT: frozenset({EventKind.ACCOUNT_UPDATED}),
    WebhookConcern.PAYMENT: frozenset(
        {
            EventKind.CHECKOUT_COMPLETED,
            EventKind.ASYNC_PAYMENT_SUCCEEDED,
            EventKind.ASYNC_PAYMENT_FAILED,
            EventKind.PAYMENT_SUCCEEDED,
            EventKind.PAYMENT_FAILED,
        }
    ),
    WebhookConcern.REFUND: frozenset({EventKind.CHARGE_REFUNDED}),
}

# target payment status -> statuses it may be reached from
PAYMENT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PAYMENT_COMPLETED: frozenset({PAYMENT_PENDING, PAYMENT_FAILED}),
    PAYMENT_FAILED: frozenset({PAYMENT_PENDING}),
    PAYMENT_REFUNDED: frozenset({PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_FAILED, PAYMENT_PROCESSING_REFUND}),
}

RECEIVED = {"received": True}


class WebhookReconciler:
    def __init__(self, gateway, secrets: Dict[WebhookConcern, str], notifications, session_factory=get_session):
        self._gateway = gateway
        self._secrets = secrets
        self._notifications = notifications
        self._session_factory = session_factory
        self._handlers: Dict[EventKind, Callable[[Dict[str, Any], EventKind], str]] = {
            EventKind.ACCOUNT_UPDATED: self._on_account_updated,
            EventKind.CHECKOUT_COMPLETED: self._on_checkout_completed,
            EventKind.ASYNC_PAYMENT_SUCCEEDED: self._on_payment_outcome,
            EventKind.ASYNC_PAYMENT_FAILED: self._on_payment_outcome,
            EventKind.PAYMENT_SUCCEEDED: self._on_payment_outcome,
            EventKind.PAYMENT_FAILED: self._on_payment_outcome,
            EventKind.CHARGE_REFUNDED: self._on_charge_refunded,
        }

    def handle(self, concern: WebhookConcern, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify and apply one delivery.

        Returns ``{"received": True}`` when the event was applied, was a
        duplicate, or is of a kind this endpoint does not act on. Raises a
        ServiceError otherwise; the caller maps it to a non-2xx response so
        that stripe redelivers.
        """

        event = self._gateway.verify_event(payload, signature, self._secrets.get(concern))
        kind = EventKind.resolve(event.get("type"))
        event_id = event.get("id")
        if kind is None or kind not in CONCERN_KINDS[concern]:
            log_event("info", "webhook.ignored", concern=concern.value, type=event.get("type"), event_id=event_id)
            return dict(RECEIVED)

        data = event.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            raise BadRequestError("Webhook Error: Invalid Payload")

        log_event("info", "webhook.received", concern=concern.value, kind=kind.value, event_id=event_id)
        try:
            outcome = self._handlers[kind](obj, kind)
        except SQLAlchemyError as exc:
            log_event("error", "webhook.failed", kind=kind.value, event_id=event_id, error=str(exc))
            raise InternalError("Webhook Error: Could Not Create or Update Order")
        log_event("info", "webhook.processed", kind=kind.value, event_id=event_id, outcome=outcome)
        return dict(RECEIVED)

    # --- checkout -------------------------------------------------------

    def _on_checkout_completed(self, obj: Dict[str, Any], kind: EventKind) -> str:
        reference = CheckoutReference.parse(obj.get("client_reference_id"))
        payment_id = self._payment_intent_of(obj)

        try:
            with self._session_factory() as session:
                if self._order_exists(session, payment_id):
                    return "duplicate"
                bag = session.query(Bag).filter(Bag.id == reference.bag_id).first()
                if bag is None:
                    raise NotFoundError("Webhook Error: Bag Not Found")
                self._validate_reference(session, reference, bag)

                order = self._materialize_order(session, reference, bag, payment_id)
                self._mark_products_sold(session, [it.product_id for it in bag.items])
                self._consume_bag(session, bag, reference)
                order_id = order.id
                grand_total = order.grand_total
        except IntegrityError:
            # a concurrent delivery of the same session committed first
            with self._session_factory() as session:
                if self._order_exists(session, payment_id):
                    return "duplicate"
            raise

        self._notifications.notify(
            notifier_id=reference.user_id,
            notified_id=reference.seller_id,
            model_id=order_id,
            action=NEW_ORDER,
        )
        log_event("info", "order.created", order_id=order_id, payment_id=payment_id, grand_total=grand_total)
        return "order_created"

    @staticmethod
    def _order_exists(session, payment_id: str) -> bool:
        return session.query(Order.id).filter(Order.payment_id == payment_id).first() is not None

    @staticmethod
    def _validate_reference(session, reference: CheckoutReference, bag: Bag) -> None:
        if bag.store_id != reference.store_id or bag.user_id != reference.user_id:
            raise BadRequestError("Webhook Error: Client Reference Does Not Match Bag")
        store = session.query(Store).filter(Store.id == reference.store_id).first()
        if store is None:
            raise NotFoundError("Webhook Error: Store Not Found")
        if store.user_id != reference.seller_id:
            raise BadRequestError("Webhook Error: Client Reference Does Not Match Seller")
        address = session.query(Address).filter(Address.id == reference.address_id).first()
        if address is None:
            raise NotFoundError("Webhook Error: Address Not Found")
        if address.user_id != reference.user_id:
            raise BadRequestError("Webhook Error: Client Reference Does Not Match Address")
        if not bag.items:
            raise BadRequestError("Webhook Error: Bag Is Empty")

    @staticmethod
    def _materialize_order(session, reference: CheckoutReference, bag: Bag, payment_id: str) -> Order:
        items = list(bag.items)
        order = Order(
            id=new_id(),
            user_id=reference.user_id,
            store_id=reference.store_id,
            address_id=reference.address_id,
            payment_id=payment_id,
            subtotal=sum(it.price for it in items),
            shipping_total=sum(it.shipping_price for it in items),
            grand_total=sum(line_amount(it.price, it.shipping_price) for it in items),
            payment_status=PAYMENT_PENDING,
            order_status=ORDER_IN_PROGRESS,
        )
        session.add(order)
        session.flush()
        for it in items:
            session.add(
                OrderItem(
                    id=new_id(),
                    order_id=order.id,
                    product_id=it.product_id,
                    name=it.name,
                    description=it.description,
                    images=list(it.images or []),
                    price=it.price,
                    shipping_price=it.shipping_price,
                )
            )
        session.query(Store).filter(Store.id == reference.store_id).update(
            {Store.orders_count: Store.orders_count + 1}, synchronize_session=False
        )
        session.flush()
        return order

    @staticmethod
    def _mark_products_sold(session, product_ids: Iterable[str], sold: bool = True) -> None:
        ids: List[str] = list(product_ids)
        if ids:
            session.query(Product).filter(Product.id.in_(ids)).update(
                {Product.sold: sold}, synchronize_session=False
            )

    @staticmethod
    def _consume_bag(session, bag: Bag, reference: CheckoutReference) -> None:
        removed = delete_bag(session, bag.id, user_id=reference.user_id, store_id=reference.store_id)
        if removed != 1:
            raise ConflictError("Webhook Error: Bag Already Consumed")

    # --- payment status -------------------------------------------------

    def _on_payment_outcome(self, obj: Dict[str, Any], kind: EventKind) -> str:
        if kind in (EventKind.ASYNC_PAYMENT_SUCCEEDED, EventKind.ASYNC_PAYMENT_FAILED):
            CheckoutReference.parse(obj.get("client_reference_id"))
            payment_id = self._payment_intent_of(obj)
        else:
            payment_id = obj.get("id")
            if not isinstance(payment_id, str) or not payment_id:
                raise BadRequestError("Webhook Error: Invalid Payment Intent")

        if kind in (EventKind.ASYNC_PAYMENT_SUCCEEDED, EventKind.PAYMENT_SUCCEEDED):
            return self._transition_payment(
                payment_id,
                PAYMENT_COMPLETED,
                to_seller="The payment has been processed.",
                to_buyer="Your payment has been processed.",
            )
        return self._transition_payment(
            payment_id,
            PAYMENT_FAILED,
            to_seller="The payment could not be processed.",
            to_buyer="Your payment could not be processed.",
        )

    def _on_charge_refunded(self, obj: Dict[str, Any], kind: EventKind) -> str:
        payment_id = self._payment_intent_of(obj)
        if obj.get("status") != "succeeded":
            return "ignored"
        return self._transition_payment(
            payment_id,
            PAYMENT_REFUNDED,
            to_seller="The refund has been processed.",
            to_buyer="Your refund has been processed.",
            relist=True,
        )

    def _transition_payment(self, payment_id: str, target: str, *, to_seller: str, to_buyer: str, relist: bool = False) -> str:
        with self._session_factory() as session:
            order = session.query(Order).filter(Order.payment_id == payment_id).first()
            if order is None:
                # not materialized yet; stripe retries until checkout completion lands
                raise NotFoundError("Webhook Error: Order Not Found")
            store = session.query(Store).filter(Store.id == order.store_id).first()
            if store is None:
                raise NotFoundError("Webhook Error: Store Not Found")
            updated = (
                session.query(Order)
                .filter(Order.id == order.id, Order.payment_status.in_(PAYMENT_TRANSITIONS[target]))
                .update({Order.payment_status: target}, synchronize_session=False)
            )
            if updated and relist:
                self._mark_products_sold(session, [it.product_id for it in order.items], sold=False)
            order_id, buyer_id, seller_id = order.id, order.user_id, store.user_id

        if not updated:
            log_event("info", "order.payment_transition_skipped", order_id=order_id, target=target)
            return "skipped"

        self._notifications.notify(
            notifier_id=buyer_id, notified_id=seller_id, model_id=order_id, action=UPDATE_ORDER, update=to_seller
        )
        self._notifications.notify(
            notifier_id=seller_id, notified_id=buyer_id, model_id=order_id, action=UPDATE_ORDER, update=to_buyer
        )
        log_event("info", "order.payment_status", order_id=order_id, payment_status=target)
        return target

    @staticmethod
    def _payment_intent_of(obj: Dict[str, Any]) -> str:
        payment_id = obj.get("payment_intent")
        if isinstance(payment_id, dict):
            payment_id = payment_id.get("id")
        if not isinstance(payment_id, str) or not payment_id:
            raise BadRequestError("Webhook Error: Invalid Payment Intent")
        return payment_id

    # --- connect --------------------------------------------------------

    def _on_account_updated(self, obj: Dict[str, Any], kind: EventKind) -> str:
        account_id = obj.get("id")
        if not isinstance(account_id, str) or not account_id:
            raise BadRequestError("Webhook Error: Invalid Account")
        if obj.get("charges_enabled"):
            status = STRIPE_SETUP_COMPLETE
        elif obj.get("details_submitted"):
            status = STRIPE_SETUP_IN_PROGRESS
        else:
            return "ignored"

        with self._session_factory() as session:
            store = session.query(Store).filter(Store.stripe_account_id == account_id).first()
            if store is None:
                raise NotFoundError("Webhook Error: Store Not Found")
            session.query(Store).filter(Store.id == store.id).update(
                {Store.stripe_setup_status: status}, synchronize_session=False
            )
            if status == STRIPE_SETUP_COMPLETE:
                session.query(User).filter(User.id == store.user_id).update(
                    {User.can_sell: True}, synchronize_session=False
                )
        log_event("info", "store.stripe_setup", account_id=account_id, status=status)
        return status
