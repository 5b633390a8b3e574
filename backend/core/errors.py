"""Error taxonomy and FastAPI handlers."""

import logging
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
    retryable = False

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id

    def details(self) -> Optional[Dict[str, Any]]:
        """Machine-readable payload beyond the message, if any."""
        return None


class ValidationError(AppError, ValueError):
    """Malformed request. Raised before any policy check or backend call."""
    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, *, field: Optional[str] = None, reason: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.reason = reason or message

    def details(self) -> Optional[Dict[str, Any]]:
        return {"field": self.field, "reason": self.reason}


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class QuotaExceededError(AppError):
    """Entitlement denial. Recoverable by waiting for the period reset or upgrading."""
    code = "quota_exceeded"
    status_code = 403

    def __init__(
        self,
        message: str,
        *,
        reason: Optional[str] = None,
        upgrade_hint: Optional[Dict[str, Any]] = None,
        model_selection: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.reason = reason or message
        self.upgrade_hint = upgrade_hint
        self.model_selection = model_selection

    def details(self) -> Optional[Dict[str, Any]]:
        payload: Dict[str, Any] = {"reason": self.reason, "upgrade_hint": self.upgrade_hint}
        if self.model_selection is not None:
            payload["model_selection"] = self.model_selection
        return payload


class BackendUnavailableError(AppError):
    """Generative backend timed out, failed, or returned no content. Safe to retry."""
    code = "backend_unavailable"
    status_code = 503
    retryable = True


class NoHooksProducedError(AppError):
    """Backend answered but neither parse path produced a usable hook. Safe to retry."""
    code = "no_hooks_produced"
    status_code = 502
    retryable = True


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, details: Optional[Dict[str, Any]] = None) -> dict:
    error: Dict[str, Any] = {"code": code, "message": message, "request_id": request_id}
    if details:
        error["details"] = details
    return {
        "error": error,
        "detail": message,
    }


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, exc.details())
    logger = logging.getLogger("hooksmith")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    if exc.retryable:
        response.headers["retry-after"] = "5"
    return response


_HTTP_ERROR_CODES = {
    401: "unauthorized",
    404: "not_found",
    405: "method_not_allowed",
    503: "service_unavailable",
}


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and query params use the validation_error contract."""
    first = exc.errors()[0] if exc.errors() else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    error = ValidationError(
        first.get("msg", "Invalid request"),
        field=".".join(loc) or None,
        reason=first.get("msg", "invalid value"),
    )
    return await app_error_handler(request, error)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("hooksmith")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("hooksmith")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
