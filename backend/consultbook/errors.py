"""
Problem+json error responses.

Every error leaves the API as ``{type, title, status, detail, instance, code,
errors}``. Booking errors keep the machine-readable code their exception
carries (``SlotFull``, ``PackageExhausted``, ...) so clients can branch on it;
anything unexpected becomes a 500 without leaking internals.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.exceptions import DomainException

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"

STATUS_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def problem_response(
    request: Request,
    status: int,
    *,
    detail: Optional[str] = None,
    code: Optional[str] = None,
    errors: Optional[Any] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {
        "type": "about:blank",
        "title": STATUS_TITLES.get(status, "Error"),
        "status": status,
        "detail": detail or "",
        "instance": request.url.path,
    }
    if code:
        body["code"] = code
    if errors:
        body["errors"] = jsonable_encoder(errors)
    return JSONResponse(
        body, status_code=status, media_type=PROBLEM_MEDIA_TYPE, headers=dict(headers or {})
    )


def _unpack_detail(detail: Any) -> tuple[Optional[str], Optional[str], Optional[Any]]:
    """Split an HTTPException detail into (message, code, errors)."""
    if isinstance(detail, dict):
        code = detail.get("code")
        message = detail.get("message") or detail.get("detail")
        return (
            message if isinstance(message, str) else None,
            code if isinstance(code, str) else None,
            detail.get("details") or detail.get("errors"),
        )
    if detail is None:
        return None, None, None
    return str(detail), None, None


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Routes raise domain errors through DomainException.to_http_exception()
        message, code, errors = _unpack_detail(exc.detail)
        return problem_response(
            request,
            exc.status_code,
            detail=message,
            code=code,
            errors=errors,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        http_exc = exc.to_http_exception()
        if http_exc.status_code >= 500:
            logger.error(
                "%s on %s: %s",
                exc.code,
                request.url.path,
                exc.message,
                extra={"code": exc.code, "details": exc.details},
            )
        return await http_exception_handler(request, http_exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return problem_response(
            request,
            422,
            detail="Request validation failed",
            code="validation_error",
            errors=exc.errors(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=exc)
        return problem_response(
            request, 500, detail="Internal Server Error", code="internal_server_error"
        )
