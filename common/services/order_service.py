from typing import Dict, Optional, Tuple
from ..db.session import get_session
from ..errors import BadRequestError, NotFoundError, ServiceError, UnauthorizedError
from ..models.address import Address
from ..models.order import (
    ORDER_CANCELLED,
    ORDER_IN_PROGRESS,
    ORDER_SHIPPED,
    PAYMENT_COMPLETED,
    PAYMENT_PENDING,
    PAYMENT_PROCESSING_REFUND,
    Order,
)
from ..models.store import Store
from ..models.user import User
from ..utils.dto import to_order_dto
from ..utils.pagination import page_dict, paginate_newest_first
from .logging import log_event
from .notification_service import CANCEL_ORDER, EDIT_ORDER, UPDATE_ORDER


CANCEL_ACTORS = ("user", "store")


class OrderService:
    """Buyer and seller actions on materialized orders.

    ``order_status`` moves only ``in_progress -> shipped`` or
    ``in_progress -> cancelled``; every write is conditional on the order
    still being ``in_progress``. ``payment_status`` belongs to the webhook
    reconciler, except that a cancellation parks it at ``processing_refund``
    until the refund webhook lands.
    """

    def __init__(self, gateway, notifications, session_factory=get_session):
        self._gateway = gateway
        self._notifications = notifications
        self._session_factory = session_factory

    # --- queries --------------------------------------------------------

    def get_user_orders(self, *, user_id: str, limit: int, cursor: Optional[str] = None, skip: Optional[int] = None) -> Dict:
        with self._session_factory() as session:
            q = session.query(Order).filter(Order.user_id == user_id)
            rows, next_cursor = paginate_newest_first(session, q, Order, limit=limit, cursor=cursor, skip=skip)
            items = []
            for order in rows:
                store = session.get(Store, order.store_id)
                seller = session.get(User, store.user_id) if store else None
                items.append(to_order_dto(order, address=session.get(Address, order.address_id), counterparty=seller))
            return page_dict(items, next_cursor)

    def get_store_orders(self, *, user_id: str, limit: int, cursor: Optional[str] = None, skip: Optional[int] = None) -> Dict:
        with self._session_factory() as session:
            store = session.query(Store).filter(Store.user_id == user_id).first()
            if not store:
                raise UnauthorizedError("Store Not Found For User")
            q = session.query(Order).filter(Order.store_id == store.id)
            rows, next_cursor = paginate_newest_first(session, q, Order, limit=limit, cursor=cursor, skip=skip)
            items = [
                to_order_dto(
                    order,
                    address=session.get(Address, order.address_id),
                    counterparty=session.get(User, order.user_id),
                )
                for order in rows
            ]
            return page_dict(items, next_cursor)

    # --- mutations ------------------------------------------------------

    def cancel_order(self, *, user_id: str, order_id: str, actor: str) -> Dict:
        if actor not in CANCEL_ACTORS:
            raise BadRequestError("Invalid Cancel Type")
        with self._session_factory() as session:
            order, store = self._load(session, order_id)
            owner = order.user_id if actor == "user" else store.user_id
            if owner != user_id:
                raise UnauthorizedError("Not Allowed To Cancel This Order")
            if order.order_status != ORDER_IN_PROGRESS:
                raise BadRequestError("Order Can No Longer Be Cancelled")

            prior = order.payment_status
            refund = bool(order.payment_id) and prior in (PAYMENT_PENDING, PAYMENT_COMPLETED)
            values = {Order.order_status: ORDER_CANCELLED}
            if refund:
                values[Order.payment_status] = PAYMENT_PROCESSING_REFUND
            self._transition(session, order, values, Order.payment_status == prior)
            result = self._dto(session, order, viewer=actor)

        if refund:
            # committed first so no write lock spans the stripe call
            try:
                self._gateway.create_refund(payment_intent=order.payment_id, idempotency_key=f"cancel-{order.id}")
            except ServiceError:
                self._revert_cancel(order.id, prior)
                raise

        if actor == "store":
            notifier, notified, message = store.user_id, order.user_id, "Your refund is being processed."
        else:
            notifier, notified, message = order.user_id, store.user_id, "The refund is being processed."
        self._notifications.notify(
            notifier_id=notifier, notified_id=notified, model_id=order.id, action=CANCEL_ORDER, message=message
        )
        log_event("info", "order.cancelled", order_id=order.id, actor=actor, refund_requested=refund)
        return result

    def mark_order_as_shipped(self, *, user_id: str, order_id: str) -> Dict:
        with self._session_factory() as session:
            order, store = self._load(session, order_id)
            if store.user_id != user_id:
                if order.user_id == user_id:
                    raise BadRequestError("Buyer Cannot Mark Order As Shipped")
                raise UnauthorizedError("Not Allowed To Update This Order")
            self._require_in_progress(order)
            self._transition(session, order, {Order.order_status: ORDER_SHIPPED})
            result = self._dto(session, order, viewer="store")

        self._notifications.notify(
            notifier_id=store.user_id,
            notified_id=order.user_id,
            model_id=order.id,
            action=UPDATE_ORDER,
            update="Your order has been shipped.",
        )
        log_event("info", "order.shipped", order_id=order.id)
        return result

    def mark_order_as_received(self, *, user_id: str, order_id: str) -> Dict:
        with self._session_factory() as session:
            order, store = self._load(session, order_id)
            if order.user_id != user_id:
                if store.user_id == user_id:
                    raise BadRequestError("Seller Cannot Mark Order As Received")
                raise UnauthorizedError("Not Allowed To Update This Order")
            self._require_in_progress(order)
            self._transition(session, order, {Order.order_status: ORDER_SHIPPED})
            result = self._dto(session, order, viewer="user")

        self._notifications.notify(
            notifier_id=order.user_id,
            notified_id=store.user_id,
            model_id=order.id,
            action=UPDATE_ORDER,
            update="The order has been received.",
        )
        log_event("info", "order.received", order_id=order.id)
        return result

    def update_user_order(self, *, user_id: str, order_id: str, address_id: str) -> Dict:
        if not address_id:
            raise BadRequestError("address_id required")
        with self._session_factory() as session:
            order, store = self._load(session, order_id)
            if order.user_id != user_id:
                raise UnauthorizedError("Not Allowed To Update This Order")
            address = (
                session.query(Address)
                .filter(Address.id == address_id, Address.user_id == user_id)
                .first()
            )
            if not address:
                raise NotFoundError("Address Not Found")
            self._require_in_progress(order)
            self._transition(session, order, {Order.address_id: address.id})
            result = self._dto(session, order, viewer="user")

        self._notifications.notify(
            notifier_id=order.user_id, notified_id=store.user_id, model_id=order.id, action=EDIT_ORDER
        )
        log_event("info", "order.address_updated", order_id=order.id)
        return result

    # --- helpers --------------------------------------------------------

    @staticmethod
    def _load(session, order_id: str) -> Tuple[Order, Store]:
        order = session.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order Not Found")
        store = session.query(Store).filter(Store.id == order.store_id).first()
        if not store:
            raise NotFoundError("Store Not Found")
        return order, store

    def _revert_cancel(self, order_id: str, payment_status: str) -> None:
        with self._session_factory() as session:
            reverted = (
                session.query(Order)
                .filter(
                    Order.id == order_id,
                    Order.order_status == ORDER_CANCELLED,
                    Order.payment_status == PAYMENT_PROCESSING_REFUND,
                )
                .update(
                    {Order.order_status: ORDER_IN_PROGRESS, Order.payment_status: payment_status},
                    synchronize_session=False,
                )
            )
        log_event("warning", "order.cancel_reverted", order_id=order_id, reverted=bool(reverted))

    @staticmethod
    def _require_in_progress(order: Order) -> None:
        if order.order_status != ORDER_IN_PROGRESS:
            raise BadRequestError(f"Order Is Already {order.order_status.replace('_', ' ').title()}")

    @staticmethod
    def _transition(session, order: Order, values: Dict, *conditions) -> None:
        updated = (
            session.query(Order)
            .filter(Order.id == order.id, Order.order_status == ORDER_IN_PROGRESS, *conditions)
            .update(values, synchronize_session=False)
        )
        if not updated:
            # lost a race with another writer since the read above
            raise BadRequestError("Order Was Modified, Please Retry")
        session.flush()
        session.expire(order)

    @staticmethod
    def _dto(session, order: Order, *, viewer: str) -> Dict:
        if viewer == "store":
            counterparty = session.get(User, order.user_id)
        else:
            store = session.get(Store, order.store_id)
            counterparty = session.get(User, store.user_id)
        return to_order_dto(order, address=session.get(Address, order.address_id), counterparty=counterparty)
