"""Error taxonomy and normalized JSON error responses.

Every error body carries a short ``message`` naming the failing
precondition, a longer ``details`` string, and an ``error`` envelope with a
stable ``code`` and the ``request_id``. Subclasses may attach extra
client-facing fields (e.g. current usage and limit on quota denials).
"""

import logging
import builtins
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from backend.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        details: Optional[str] = None,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.extra = dict(extra or {})
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class AuthenticationError(AppError):
    code = "unauthorized"
    status_code = 401


class AuthorizationError(AppError, builtins.PermissionError):
    code = "forbidden"
    status_code = 403


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class SubscriptionInactiveError(AppError):
    code = "subscription_inactive"
    status_code = 403


class QuotaExceeded(AppError):
    code = "quota_exceeded"
    status_code = 403


class LengthLimitExceeded(AppError):
    code = "length_limit_exceeded"
    status_code = 403


class StorageError(AppError):
    code = "storage_error"
    status_code = 500


class WebhookVerificationError(AppError):
    code = "invalid_webhook_signature"
    status_code = 401


class BillingError(AppError):
    code = "billing_error"
    status_code = 500


class ProviderError(AppError):
    """Upstream synthesis provider failure."""
    code = "provider_error"
    status_code = 500

    def __init__(self, message: str, *, upstream_status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.upstream_status = upstream_status


class ProviderUnavailable(ProviderError):
    """Network failure, timeout, or upstream 5xx."""
    code = "provider_unavailable"

    def __init__(self, message: str, *, upstream_status: Optional[int] = None, **kwargs):
        super().__init__(message, upstream_status=upstream_status, **kwargs)
        if upstream_status and upstream_status >= 500:
            self.status_code = upstream_status


class ProviderRejected(ProviderError):
    """Upstream refused the request (4xx), e.g. an unknown voice."""
    code = "provider_rejected"
    status_code = 400

    def __init__(self, message: str, *, upstream_status: Optional[int] = None, **kwargs):
        super().__init__(message, upstream_status=upstream_status, **kwargs)
        if upstream_status and 400 <= upstream_status < 500:
            self.status_code = upstream_status


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, details: str, request_id: str, extra: Optional[Dict[str, Any]] = None) -> dict:
    payload = {
        "message": message,
        "details": details,
        "error": {"code": code, "request_id": request_id},
    }
    if extra:
        payload.update(extra)
    return payload


def _respond(status_code: int, payload: dict, rid: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, exc.details, rid, exc.extra)
    logger = logging.getLogger("vidify")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _respond(exc.status_code, payload, rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "HTTP error"
    payload = _error_payload(code, message, message, rid)
    logger = logging.getLogger("vidify")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _respond(exc.status_code, payload, rid)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    payload = _error_payload("validation_error", "Invalid request", "; ".join(problems) or "Invalid request", rid)
    logging.getLogger("vidify").warning("validation.error", extra={"request_id": rid, "error_code": "validation_error", "status": 400})
    return _respond(400, payload, rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("vidify")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", "An unexpected error occurred", rid)
    return _respond(500, payload, rid)
