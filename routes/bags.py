"""Shopping bag API routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request, session


bags_bp = Blueprint("bags", __name__, url_prefix="/api/bags")


def _components() -> Dict[str, Any]:
    return current_app.extensions["marketplace_components"]


@bags_bp.before_request
def require_login():
    if not session.get("user_id"):
        return jsonify({"error": "Login required.", "code": "UNAUTHORIZED"}), 401
    return None


@bags_bp.post("/items")
def add_to_bag():
    payload = request.get_json(silent=True) or {}
    product_id = str(payload.get("product_id", "")).strip()
    bag = _components()["bag_service"].add_to_bag(user_id=session["user_id"], product_id=product_id)
    return jsonify(bag)


@bags_bp.delete("/<bag_id>/items/<item_id>")
def remove_from_bag(bag_id: str, item_id: str):
    result = _components()["bag_service"].remove_from_bag(
        user_id=session["user_id"], bag_id=bag_id, bag_item_id=item_id
    )
    return jsonify(result)


@bags_bp.get("/count")
def count_bag_items():
    count = _components()["bag_service"].count_bag_items(user_id=session["user_id"])
    return jsonify({"count": count})


@bags_bp.get("")
def get_user_bags():
    return jsonify({"bags": _components()["bag_service"].get_user_bags(user_id=session["user_id"])})


@bags_bp.get("/<bag_id>")
def get_user_bag(bag_id: str):
    return jsonify(_components()["bag_service"].get_user_bag(user_id=session["user_id"], bag_id=bag_id))
