"""Correlation token round-tripped through stripe as ``client_reference_id``."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from ..errors import BadRequestError


# wire key -> attribute
_FIELDS = (
    ("bagId", "bag_id"),
    ("storeId", "store_id"),
    ("sellerId", "seller_id"),
    ("userId", "user_id"),
    ("addressId", "address_id"),
)


@dataclass(frozen=True)
class CheckoutReference:
    bag_id: str
    store_id: str
    seller_id: str
    user_id: str
    address_id: str

    def to_client_reference(self) -> str:
        return json.dumps(
            {wire: getattr(self, attr) for wire, attr in _FIELDS},
            separators=(",", ":"),
        )

    @classmethod
    def parse(cls, raw: Optional[str]) -> "CheckoutReference":
        """Parse an untrusted client reference, raising BadRequestError if unusable."""

        if not raw:
            raise BadRequestError("Webhook Error: No Client Reference Id")
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            raise BadRequestError("Webhook Error: Malformed Client Reference Id")
        if not isinstance(data, dict):
            raise BadRequestError("Webhook Error: Malformed Client Reference Id")

        values = {}
        for wire, attr in _FIELDS:
            value = data.get(wire)
            if not isinstance(value, str) or not value:
                raise BadRequestError(f"Webhook Error: Client Reference Missing {wire}")
            values[attr] = value
        return cls(**values)
