from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..db.session import get_session
from ..models.notification import Notification
from ..utils.dto import to_notification_dto
from ..utils.ids import new_id
from ..utils.pagination import page_dict, paginate_newest_first
from .logging import log_event


NEW_ORDER = "NEW_ORDER"
EDIT_ORDER = "EDIT_ORDER"
CANCEL_ORDER = "CANCEL_ORDER"
UPDATE_ORDER = "UPDATE_ORDER"

TEMPLATES = {
    NEW_ORDER: lambda **_: "A new order has been placed.",
    EDIT_ORDER: lambda order_id, **_: f"A change has been made to order #{order_id}.",
    CANCEL_ORDER: lambda order_id, message="", **_: f"Order #{order_id} has been cancelled. {message}".strip(),
    UPDATE_ORDER: lambda order_id, update="", **_: f"There has been an update to order #{order_id}. {update}".strip(),
}


def render(action: str, **args) -> str:
    return TEMPLATES[action](**args)


class NotificationService:
    """Fire-and-forget notifications; a failed write never propagates."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def notify(self, *, notifier_id: str, notified_id: str, model_id: str, action: str, **template_args) -> Optional[str]:
        message = render(action, order_id=model_id, **template_args)
        nid = new_id()
        try:
            with self._session_factory() as session:
                session.add(
                    Notification(
                        id=nid,
                        notifier_id=notifier_id,
                        notified_id=notified_id,
                        model_id=model_id,
                        action=action,
                        message=message,
                    )
                )
        except SQLAlchemyError as exc:
            log_event("error", "notification.failed", action=action, model_id=model_id, error=str(exc))
            return None
        log_event("debug", "notification.created", action=action, model_id=model_id, notified_id=notified_id)
        return nid

    def get_user_notifications(self, user_id: str, *, limit: int, cursor: Optional[str] = None, skip: Optional[int] = None) -> Dict:
        with self._session_factory() as session:
            q = session.query(Notification).filter(Notification.notified_id == user_id)
            rows, next_cursor = paginate_newest_first(
                session, q, Notification, limit=limit, cursor=cursor, skip=skip
            )
            return page_dict([to_notification_dto(r) for r in rows], next_cursor)
