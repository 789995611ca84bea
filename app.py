"""Secondhand apparel marketplace Flask application."""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify

from common.db.session import get_session, init_db
from common.errors import ServiceError
from common.services.bag_service import BagService
from common.services.checkout_service import CheckoutService
from common.services.logging import log_event
from common.services.notification_service import NotificationService
from common.services.order_service import OrderService
from common.services.store_service import StoreService
from config import MarketplaceConfig
from routes import account, bags, orders, webhooks
from services import StripeGateway, WebhookConcern, WebhookReconciler


def build_components(config: MarketplaceConfig, *, session_factory=get_session, gateway=None) -> dict:
    gateway = gateway or StripeGateway(config.stripe_secret_key)
    notifications = NotificationService(session_factory)
    return {
        "gateway": gateway,
        "notification_service": notifications,
        "bag_service": BagService(session_factory),
        "checkout_service": CheckoutService(gateway, config.app, session_factory),
        "order_service": OrderService(gateway, notifications, session_factory),
        "store_service": StoreService(gateway, config.app, session_factory),
        "reconciler": WebhookReconciler(
            gateway,
            {
                WebhookConcern.CONNECT: config.stripe_connect_secret,
                WebhookConcern.PAYMENT: config.stripe_pay_secret,
                WebhookConcern.REFUND: config.stripe_refund_secret,
            },
            notifications,
            session_factory,
        ),
    }


def create_app(
    config: Optional[MarketplaceConfig] = None,
    *,
    session_factory=None,
    gateway=None,
) -> Flask:
    config = config or MarketplaceConfig.load()
    logging.basicConfig(level=getattr(logging, config.app.log_level.upper(), logging.INFO))

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["MARKETPLACE_CONFIG"] = config

    if session_factory is None:
        init_db()
        session_factory = get_session
    app.extensions["marketplace_components"] = build_components(
        config, session_factory=session_factory, gateway=gateway
    )

    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        if exc.status >= 500:
            log_event("error", "request.failed", code=exc.code, error=exc.message)
        return jsonify(exc.to_dict()), exc.status

    app.register_blueprint(bags.bags_bp)
    app.register_blueprint(orders.orders_bp)
    app.register_blueprint(account.account_bp)
    app.register_blueprint(webhooks.webhooks_bp)

    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=False)


if __name__ == "__main__":
    main()
