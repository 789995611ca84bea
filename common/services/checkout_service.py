from typing import Dict, List, Optional
from ..config import AppConfig, currency_for_country
from ..db.session import get_session
from ..errors import BadRequestError, InternalError, NotFoundError
from ..models.address import Address
from ..models.bag import Bag
from ..models.store import Store
from ..utils.checkout_reference import CheckoutReference
from ..utils.money import application_fee, line_amount
from .logging import log_event


class CheckoutService:
    """Builds a hosted stripe checkout session for a bag.

    Nothing is written locally; the order only comes into existence when the
    payment webhook confirms the session.
    """

    def __init__(self, gateway, config: AppConfig, session_factory=get_session):
        self._gateway = gateway
        self._config = config
        self._session_factory = session_factory

    def create_checkout_session(self, *, user_id: str, bag_id: str, address_id: str) -> str:
        with self._session_factory() as session:
            bag = session.query(Bag).filter(Bag.id == bag_id, Bag.user_id == user_id).first()
            if not bag:
                raise NotFoundError("Bag Not Found")
            address = (
                session.query(Address)
                .filter(Address.id == address_id, Address.user_id == user_id)
                .first()
            )
            if not address:
                raise NotFoundError("Address Not Found")
            store = session.query(Store).filter(Store.id == bag.store_id).first()
            if not store:
                raise NotFoundError("Store Not Found")
            currency = currency_for_country(store.country)
            if not currency:
                raise BadRequestError("Invalid Store Country")
            if not store.stripe_account_id:
                raise BadRequestError("Seller Cannot Accept Payments")
            if not bag.items:
                raise BadRequestError("Bag Is Empty")

            reference = CheckoutReference(
                bag_id=bag.id,
                store_id=bag.store_id,
                seller_id=store.user_id,
                user_id=user_id,
                address_id=address.id,
            )
            params = self.build_session_params(
                items=bag.items,
                currency=currency,
                reference=reference,
                destination=store.stripe_account_id,
            )

        session_obj = self._gateway.create_checkout_session(**params)
        url: Optional[str] = getattr(session_obj, "url", None)
        if not url:
            raise InternalError("Unable To Create Stripe Session")
        log_event(
            "info",
            "checkout.session_created",
            bag_id=bag_id,
            session_id=getattr(session_obj, "id", None),
            application_fee=params["payment_intent_data"]["application_fee_amount"],
        )
        return url

    def build_session_params(self, *, items, currency: str, reference: CheckoutReference, destination: str) -> Dict:
        amounts: List[int] = [line_amount(it.price, it.shipping_price) for it in items]
        line_items = [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {
                        "name": it.name,
                        "images": [self._config.get_image_url(key) for key in (it.images or [])],
                    },
                    "unit_amount": amount,
                },
                "quantity": 1,
            }
            for it, amount in zip(items, amounts)
        ]
        return {
            "mode": "payment",
            "client_reference_id": reference.to_client_reference(),
            "line_items": line_items,
            "payment_intent_data": {
                "application_fee_amount": application_fee(amounts, self._config.application_fee_percentage),
                "transfer_data": {"destination": destination},
            },
            "success_url": self._config.get_url("/orders"),
            "cancel_url": self._config.get_url("/bag"),
        }
