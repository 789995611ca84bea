from typing import Any, Dict, Optional


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def to_user_dto(row: Any) -> Optional[Dict]:
    if row is None:
        return None
    return {
        "id": getattr(row, "id", None),
        "username": getattr(row, "username", None),
        "name": getattr(row, "name", None),
        "image": getattr(row, "image", None),
    }


def to_item_dto(row: Any) -> Dict:
    return {
        "id": getattr(row, "id", None),
        "product_id": getattr(row, "product_id", None),
        "name": getattr(row, "name", None),
        "description": getattr(row, "description", None),
        "images": getattr(row, "images", None) or [],
        "price": int(getattr(row, "price", 0) or 0),
        "shipping_price": int(getattr(row, "shipping_price", 0) or 0),
    }


def to_bag_dto(row: Any, seller: Any = None) -> Dict:
    return {
        "id": row.id,
        "store_id": row.store_id,
        "user_id": row.user_id,
        "items": [to_item_dto(it) for it in row.items],
        "subtotal": int(row.subtotal or 0),
        "shipping_total": int(row.shipping_total or 0),
        "grand_total": int(row.grand_total or 0),
        "seller": to_user_dto(seller),
        "created_at": _iso(row.created_at),
    }


def to_address_dto(row: Any) -> Optional[Dict]:
    if row is None:
        return None
    return {
        "id": row.id,
        "first_name": row.first_name,
        "last_name": row.last_name,
        "line1": row.line1,
        "line2": row.line2,
        "city": row.city,
        "province": row.province,
        "zip": row.zip,
        "country": row.country,
    }


def to_order_dto(row: Any, *, address: Any = None, counterparty: Any = None) -> Dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "store_id": row.store_id,
        "address_id": row.address_id,
        "payment_id": row.payment_id,
        "items": [to_item_dto(it) for it in row.items],
        "subtotal": int(row.subtotal),
        "shipping_total": int(row.shipping_total),
        "grand_total": int(row.grand_total),
        "payment_status": row.payment_status,
        "order_status": row.order_status,
        "address": to_address_dto(address),
        "counterparty": to_user_dto(counterparty),
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def to_store_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "stripe_account_id": row.stripe_account_id,
        "stripe_setup_status": row.stripe_setup_status,
        "country": row.country,
        "orders_count": int(row.orders_count or 0),
    }


def to_notification_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "notifier_id": row.notifier_id,
        "notified_id": row.notified_id,
        "model_id": row.model_id,
        "action": row.action,
        "message": row.message,
        "read": bool(row.read),
        "created_at": _iso(row.created_at),
    }
