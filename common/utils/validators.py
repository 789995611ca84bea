def ensure_positive_int(value: int, field: str) -> int:
    if value is None or isinstance(value, bool) or int(value) < 0:
        raise ValueError(f"{field} must be >= 0")
    if int(value) != value:
        raise ValueError(f"{field} must be an integer amount in minor units")
    return int(value)


def require_str(payload: dict, field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} required")
    return value.strip()
