"""Store onboarding and notification routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request, session


account_bp = Blueprint("account", __name__, url_prefix="/api")


def _components() -> Dict[str, Any]:
    return current_app.extensions["marketplace_components"]


@account_bp.before_request
def require_login():
    if not session.get("user_id"):
        return jsonify({"error": "Login required.", "code": "UNAUTHORIZED"}), 401
    return None


@account_bp.post("/store")
def create_store():
    payload = request.get_json(silent=True) or {}
    store = _components()["store_service"].create_store(
        user_id=session["user_id"],
        email=session.get("email"),
        address=payload,
    )
    return jsonify(store), 201


@account_bp.get("/store")
def get_store():
    return jsonify(_components()["store_service"].get_store(user_id=session["user_id"]))


@account_bp.get("/store/stripe-link")
def get_stripe_link():
    url = _components()["store_service"].get_onboarding_link(user_id=session["user_id"])
    return jsonify({"url": url})


@account_bp.get("/notifications")
def get_user_notifications():
    result = _components()["notification_service"].get_user_notifications(
        session["user_id"],
        limit=request.args.get("limit", 50, type=int),
        cursor=request.args.get("cursor") or None,
        skip=request.args.get("skip", type=int),
    )
    return jsonify(result)
