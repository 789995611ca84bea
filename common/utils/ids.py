from uuid import uuid4


def new_id() -> str:
    # 24 hex chars keeps a five-id checkout reference under stripe's
    # 200 character client_reference_id limit
    return uuid4().hex[:24]
