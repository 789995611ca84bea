"""Checkout and order API routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request, session


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

DEFAULT_LIMIT = 50


def _components() -> Dict[str, Any]:
    return current_app.extensions["marketplace_components"]


def _paging() -> Dict[str, Any]:
    return {
        "limit": request.args.get("limit", DEFAULT_LIMIT, type=int),
        "cursor": request.args.get("cursor") or None,
        "skip": request.args.get("skip", type=int),
    }


@orders_bp.before_request
def require_login():
    if not session.get("user_id"):
        return jsonify({"error": "Login required.", "code": "UNAUTHORIZED"}), 401
    return None


@orders_bp.post("/checkout")
def create_checkout_session():
    payload = request.get_json(silent=True) or {}
    url = _components()["checkout_service"].create_checkout_session(
        user_id=session["user_id"],
        bag_id=str(payload.get("bag_id", "")).strip(),
        address_id=str(payload.get("address_id", "")).strip(),
    )
    return jsonify({"url": url})


@orders_bp.get("")
def get_user_orders():
    return jsonify(_components()["order_service"].get_user_orders(user_id=session["user_id"], **_paging()))


@orders_bp.get("/store")
def get_store_orders():
    return jsonify(_components()["order_service"].get_store_orders(user_id=session["user_id"], **_paging()))


@orders_bp.post("/<order_id>/cancel")
def cancel_order(order_id: str):
    payload = request.get_json(silent=True) or {}
    order = _components()["order_service"].cancel_order(
        user_id=session["user_id"], order_id=order_id, actor=str(payload.get("type", "user"))
    )
    return jsonify(order)


@orders_bp.post("/<order_id>/shipped")
def mark_order_as_shipped(order_id: str):
    order = _components()["order_service"].mark_order_as_shipped(user_id=session["user_id"], order_id=order_id)
    return jsonify(order)


@orders_bp.post("/<order_id>/received")
def mark_order_as_received(order_id: str):
    order = _components()["order_service"].mark_order_as_received(user_id=session["user_id"], order_id=order_id)
    return jsonify(order)


@orders_bp.put("/<order_id>")
def update_user_order(order_id: str):
    payload = request.get_json(silent=True) or {}
    order = _components()["order_service"].update_user_order(
        user_id=session["user_id"],
        order_id=order_id,
        address_id=str(payload.get("address_id", "")).strip(),
    )
    return jsonify(order)
