# services/errors.py
from __future__ import annotations

from fastapi import HTTPException


class FinanceError(Exception):
    """Base for errors the payments core raises on purpose."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.code


class NotFoundError(FinanceError):
    code = "NOT_FOUND"


class InvalidRequestError(FinanceError):
    code = "INVALID_REQUEST"


class InvalidSignatureError(InvalidRequestError):
    code = "INVALID_SIGNATURE"


class ForbiddenError(FinanceError):
    code = "FORBIDDEN"


class InvalidStateError(FinanceError):
    code = "INVALID_STATE"


class ConflictError(FinanceError):
    """Optimistic version mismatch: the caller may re-read and retry."""

    code = "CONFLICT"


class UpstreamFailureError(FinanceError):
    code = "UPSTREAM_FAILURE"


class InternalError(FinanceError):
    code = "INTERNAL_ERROR"


ERROR_HTTP_MAP: dict[type[FinanceError], int] = {
    NotFoundError: 404,
    ForbiddenError: 403,
    InvalidSignatureError: 400,
    InvalidRequestError: 400,
    InvalidStateError: 409,
    ConflictError: 409,
    UpstreamFailureError: 502,
    InternalError: 500,
}


def http_status_for(exc: FinanceError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_HTTP_MAP:
            return ERROR_HTTP_MAP[cls]
    return 500


def error_response_parts(exc: FinanceError) -> tuple[int, dict[str, str]]:
    """
    (status, detail) for a core error.
    Upstream and internal failures never leak their message.
    """
    status = http_status_for(exc)
    if status >= 500:
        detail = {"error": exc.code, "message": "Request failed, please try again later."}
    else:
        detail = {"error": exc.code, "message": exc.message}
    return status, detail


def raise_http_from_finance_error(exc: FinanceError) -> None:
    status, detail = error_response_parts(exc)
    raise HTTPException(status_code=status, detail=detail) from exc
