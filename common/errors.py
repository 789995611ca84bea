"""Typed service errors shared by the RPC routes and the webhook endpoints."""


class ServiceError(Exception):
    code = "INTERNAL"
    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status = 404


class BadRequestError(ServiceError):
    code = "BAD_REQUEST"
    status = 400


class ConflictError(ServiceError):
    code = "CONFLICT"
    status = 409


class UnauthorizedError(ServiceError):
    code = "UNAUTHORIZED"
    status = 403


class InternalError(ServiceError):
    code = "INTERNAL"
    status = 500
