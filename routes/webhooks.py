"""Stripe webhook endpoints, one per signing secret."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from common.errors import ServiceError
from services.webhook_reconciler import WebhookConcern


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/stripe")


def _receive(concern: WebhookConcern):
    reconciler = current_app.extensions["marketplace_components"]["reconciler"]
    # signature is computed over the raw bytes; never parse before verifying
    payload = request.get_data(cache=False)
    signature = request.headers.get("Stripe-Signature")
    try:
        body = reconciler.handle(concern, payload, signature)
    except ServiceError as exc:
        return jsonify({"error": exc.message}), exc.status
    return jsonify(body), 200


@webhooks_bp.post("/connect")
def connect():
    return _receive(WebhookConcern.CONNECT)


@webhooks_bp.post("/pay")
def pay():
    return _receive(WebhookConcern.PAYMENT)


@webhooks_bp.post("/refund")
def refund():
    return _receive(WebhookConcern.REFUND)
