import hashlib
import hmac
import json
import os
import time
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
import stripe
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from common.config import AppConfig
from common.db.session import init_db, session_scope
from common.models.address import Address
from common.models.product import Product
from common.models.store import STRIPE_SETUP_COMPLETE, Store
from common.models.user import User
from common.services.bag_service import BagService
from common.services.checkout_service import CheckoutService
from common.services.notification_service import NotificationService
from common.services.order_service import OrderService
from common.services.store_service import StoreService
from common.utils.checkout_reference import CheckoutReference
from services.payment_gateway import StripeGateway
from services.webhook_reconciler import WebhookConcern, WebhookReconciler


SECRETS = {
    WebhookConcern.CONNECT: "whsec_connect",
    WebhookConcern.PAYMENT: "whsec_pay",
    WebhookConcern.REFUND: "whsec_refund",
}


class _Endpoint:
    def __init__(self, owner, name, make_result):
        self._owner = owner
        self._name = name
        self._make_result = make_result

    def create(self, **params):
        self._owner.calls.append((self._name, params))
        if self._owner.fail_with is not None:
            raise self._owner.fail_with
        return self._make_result(params)


class FakeStripe:
    """Stands in for the stripe module: real signature checks, recorded API calls."""

    WebhookSignature = stripe.WebhookSignature
    Webhook = stripe.Webhook
    SignatureVerificationError = stripe.SignatureVerificationError
    StripeError = stripe.StripeError

    def __init__(self):
        self.api_key = None
        self.calls = []
        self.fail_with = None
        self.session_url = "https://checkout.stripe.test/c/pay/cs_test_1"
        self.checkout = SimpleNamespace(
            Session=_Endpoint(self, "checkout.Session", lambda p: SimpleNamespace(id="cs_test_1", url=self.session_url))
        )
        self.Refund = _Endpoint(self, "Refund", lambda p: SimpleNamespace(id="re_test_1", status="pending"))
        self.Account = _Endpoint(self, "Account", lambda p: SimpleNamespace(id="acct_new_1"))
        self.AccountLink = _Endpoint(
            self, "AccountLink", lambda p: SimpleNamespace(url="https://connect.stripe.test/setup/acct_new_1")
        )

    def calls_to(self, name):
        return [params for called, params in self.calls if called == name]


def sign(payload: str, secret: str, timestamp=None) -> str:
    ts = int(timestamp if timestamp is not None else time.time())
    digest = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def make_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> str:
    return json.dumps({"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}})


def checkout_completed(reference: CheckoutReference, payment_intent="pi_test_1", event_id="evt_checkout_1") -> str:
    return make_event(
        "checkout.session.completed",
        {
            "id": "cs_test_1",
            "object": "checkout.session",
            "client_reference_id": reference.to_client_reference(),
            "payment_intent": payment_intent,
            "payment_status": "paid",
        },
        event_id,
    )


def payment_intent_event(event_type: str, payment_intent="pi_test_1", event_id="evt_pi_1") -> str:
    return make_event(event_type, {"id": payment_intent, "object": "payment_intent"}, event_id)


def charge_refunded(payment_intent="pi_test_1", status="succeeded", event_id="evt_refund_1") -> str:
    return make_event(
        "charge.refunded",
        {"id": "ch_test_1", "object": "charge", "payment_intent": payment_intent, "status": status, "refunded": True},
        event_id,
    )


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return session_scope(sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True))


@pytest.fixture
def app_config():
    return AppConfig(
        database_url="sqlite://",
        secret_key="test-secret",
        log_level="WARNING",
        public_domain="https://shop.test",
        image_domain="https://cdn.shop.test/",
        application_fee_percentage=Decimal("0.08"),
    )


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def gateway(fake_stripe):
    return StripeGateway("sk_test_123", stripe_client=fake_stripe)


@pytest.fixture
def notifications(session_factory):
    return NotificationService(session_factory)


@pytest.fixture
def bag_service(session_factory):
    return BagService(session_factory)


@pytest.fixture
def checkout_service(gateway, app_config, session_factory):
    return CheckoutService(gateway, app_config, session_factory)


@pytest.fixture
def order_service(gateway, notifications, session_factory):
    return OrderService(gateway, notifications, session_factory)


@pytest.fixture
def store_service(gateway, app_config, session_factory):
    return StoreService(gateway, app_config, session_factory)


@pytest.fixture
def reconciler(gateway, notifications, session_factory):
    return WebhookReconciler(gateway, dict(SECRETS), notifications, session_factory)


@pytest.fixture
def deliver(reconciler):
    def _deliver(concern: WebhookConcern, payload: str):
        return reconciler.handle(concern, payload.encode("utf-8"), sign(payload, SECRETS[concern]))

    return _deliver


@pytest.fixture
def seed(session_factory):
    with session_factory() as session:
        session.add_all(
            [
                User(id="u_buyer", username="buyer", name="Bea Buyer", email="buyer@example.com"),
                User(id="u_seller", username="seller", name="Sam Seller", email="seller@example.com", can_sell=True, has_store=True),
                User(id="u_other", username="other", name="Otto Other", email="other@example.com"),
            ]
        )
        session.flush()
        session.add(
            Store(
                id="s_1",
                user_id="u_seller",
                stripe_account_id="acct_seller",
                stripe_setup_status=STRIPE_SETUP_COMPLETE,
                first_name="Sam",
                last_name="Seller",
                line1="1 Queen St",
                city="Toronto",
                province="ON",
                zip="M5H 2N2",
                country="CA",
            )
        )
        session.add_all(
            [
                Address(
                    id="a_buyer",
                    user_id="u_buyer",
                    first_name="Bea",
                    last_name="Buyer",
                    line1="2 King St",
                    city="Toronto",
                    province="ON",
                    zip="M5V 1J1",
                    country="CA",
                ),
                Address(
                    id="a_buyer_2",
                    user_id="u_buyer",
                    first_name="Bea",
                    last_name="Buyer",
                    line1="9 Bay St",
                    city="Toronto",
                    province="ON",
                    zip="M5J 2R8",
                    country="CA",
                ),
                Address(
                    id="a_other",
                    user_id="u_other",
                    first_name="Otto",
                    last_name="Other",
                    line1="3 Front St",
                    city="Toronto",
                    province="ON",
                    zip="M5J 1E6",
                    country="CA",
                ),
            ]
        )
        session.flush()
        session.add_all(
            [
                Product(
                    id="p_jacket",
                    store_id="s_1",
                    name="Denim Jacket",
                    description="Vintage trucker jacket",
                    images=["products/p_jacket/0.jpg"],
                    price=2000,
                    shipping_price=500,
                    country="CA",
                ),
                Product(
                    id="p_boots",
                    store_id="s_1",
                    name="Leather Boots",
                    description="Size 9",
                    images=["products/p_boots/0.jpg", "products/p_boots/1.jpg"],
                    price=1500,
                    shipping_price=300,
                    country="CA",
                ),
                Product(
                    id="p_scarf",
                    store_id="s_1",
                    name="Wool Scarf",
                    description=None,
                    images=[],
                    price=999,
                    shipping_price=0,
                    country="CA",
                ),
            ]
        )
    return SimpleNamespace(
        buyer="u_buyer",
        seller="u_seller",
        other="u_other",
        store="s_1",
        address="a_buyer",
        address_2="a_buyer_2",
        other_address="a_other",
    )


@pytest.fixture
def reference_for(seed):
    def _reference(bag_id: str, **overrides) -> CheckoutReference:
        values = dict(
            bag_id=bag_id,
            store_id=seed.store,
            seller_id=seed.seller,
            user_id=seed.buyer,
            address_id=seed.address,
        )
        values.update(overrides)
        return CheckoutReference(**values)

    return _reference


@pytest.fixture
def marketplace_config(app_config):
    from config import MarketplaceConfig

    return MarketplaceConfig(
        app=app_config,
        stripe_secret_key="sk_test_123",
        stripe_connect_secret=SECRETS[WebhookConcern.CONNECT],
        stripe_pay_secret=SECRETS[WebhookConcern.PAYMENT],
        stripe_refund_secret=SECRETS[WebhookConcern.REFUND],
        project_root=Path(__file__).resolve().parents[1],
    )


@pytest.fixture
def client(marketplace_config, session_factory, gateway, seed):
    from app import create_app

    app = create_app(marketplace_config, session_factory=session_factory, gateway=gateway)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(user_id: str):
        with client.session_transaction() as sess:
            sess["user_id"] = user_id

    return _login
