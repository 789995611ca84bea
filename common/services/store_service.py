from typing import Dict, Optional
from sqlalchemy.exc import IntegrityError
from ..config import AppConfig, ENABLED_COUNTRIES
from ..db.session import get_session
from ..errors import BadRequestError, ConflictError, NotFoundError
from ..models.store import Store
from ..models.user import User
from ..utils.dto import to_store_dto
from ..utils.ids import new_id
from ..utils.validators import require_str
from .logging import log_event


ADDRESS_FIELDS = ("first_name", "last_name", "line1", "city", "province", "zip", "country")


class StoreService:
    """Seller onboarding onto a stripe connected account."""

    def __init__(self, gateway, config: AppConfig, session_factory=get_session):
        self._gateway = gateway
        self._config = config
        self._session_factory = session_factory

    def create_store(self, *, user_id: str, email: Optional[str], address: Dict) -> Dict:
        try:
            fields = {name: require_str(address, name) for name in ADDRESS_FIELDS}
        except ValueError as exc:
            raise BadRequestError(str(exc))
        fields["country"] = fields["country"].upper()
        fields["line2"] = (address.get("line2") or "").strip() or None
        if fields["country"] not in ENABLED_COUNTRIES:
            raise BadRequestError("Country Not Supported")

        with self._session_factory() as session:
            if session.query(Store).filter(Store.user_id == user_id).first():
                raise ConflictError("User Already Has Store")

        account = self._gateway.create_connected_account(email=email, address=fields)
        try:
            with self._session_factory() as session:
                store = Store(id=new_id(), user_id=user_id, stripe_account_id=account.id, **fields)
                session.add(store)
                session.query(User).filter(User.id == user_id).update(
                    {User.has_store: True}, synchronize_session=False
                )
                session.flush()
                result = to_store_dto(store)
        except IntegrityError:
            raise ConflictError("User Already Has Store")
        log_event("info", "store.created", store_id=result["id"], stripe_account_id=account.id)
        return result

    def get_store(self, *, user_id: str) -> Dict:
        with self._session_factory() as session:
            store = session.query(Store).filter(Store.user_id == user_id).first()
            if not store:
                raise NotFoundError("Store Not Found")
            return to_store_dto(store)

    def get_onboarding_link(self, *, user_id: str) -> str:
        store = self.get_store(user_id=user_id)
        if not store["stripe_account_id"]:
            raise BadRequestError("No Id Provided")
        return self._gateway.create_account_link(
            account_id=store["stripe_account_id"], return_url=self._config.get_url("/store")
        )
