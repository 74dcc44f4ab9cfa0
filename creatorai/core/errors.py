"""Error normalization and handlers."""

import logging
import builtins
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from creatorai.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id
        self.details = details or {}


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class PermissionError(AppError, builtins.PermissionError):
    code = "forbidden"
    status_code = 403


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class UnauthenticatedError(AppError):
    """Missing, expired or otherwise invalid bearer credential."""
    code = "unauthenticated"
    status_code = 401


class ConfigurationError(AppError):
    """Feature id unknown to the policy table."""
    code = "unknown_feature"
    status_code = 400


class AccessDeniedError(AppError):
    """The caller's plan does not reach the feature at all."""
    code = "insufficient_plan"
    status_code = 403


class InsufficientTokensError(AppError):
    """Plan permits the feature but the balance cannot cover its cost."""
    code = "insufficient_tokens"
    status_code = 402

    def __init__(self, required: int, remaining: int, **kwargs):
        message = f"You need {required} tokens. You have {remaining} tokens remaining."
        details = {"tokensRequired": required, "tokensRemaining": remaining}
        super().__init__(message, details=details, **kwargs)
        self.required = required
        self.remaining = remaining


class BrandProfileLimitError(AppError):
    code = "brand_profile_limit"
    status_code = 403


class UpstreamFailure(AppError):
    """Completion provider failed after tokens were spent."""
    code = "upstream_error"
    status_code = 502


class UpstreamRateLimitedError(UpstreamFailure):
    code = "upstream_rate_limited"
    status_code = 429


class UpstreamQuotaError(UpstreamFailure):
    code = "upstream_quota_exceeded"
    status_code = 503


class BillingProviderUnavailable(AppError):
    code = "billing_unavailable"
    status_code = 503


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, details: Optional[Dict[str, Any]] = None) -> dict:
    payload = {
        "success": False,
        "error": code,
        "message": message,
        "request_id": request_id,
    }
    if details:
        payload.update(details)
    return payload


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, exc.details)
    logger = logging.getLogger("creatorai")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("creatorai")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("creatorai")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
