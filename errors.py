"""
Error taxonomy

Every failure the API reports is one of these. They are plain
``HTTPException`` subclasses so they travel through FastAPI the same way as
an ``HTTPException`` raised inline in a route.
"""
from fastapi import HTTPException


class ShopError(HTTPException):
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(status_code=status_code or self.status_code, detail=message)

    @property
    def message(self) -> str:
        return self.detail


class ValidationFailed(ShopError):
    status_code = 400


class Unauthorized(ShopError):
    status_code = 401


class Forbidden(ShopError):
    status_code = 403


class NotFound(ShopError):
    status_code = 404


class Conflict(ShopError):
    status_code = 409


class InvalidState(ShopError):
    status_code = 400


class SecurityViolation(ShopError):
    status_code = 400


class UpstreamFailure(ShopError):
    status_code = 500
