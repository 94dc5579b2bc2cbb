"""API error handling: consistent error responses.

Registers FastAPI exception handlers that convert gateway errors into
the ``{"success": false, "error": {"kind": "...", "message": "..."}}``
envelope. Store error text and stack traces are logged, never returned.

Status code mapping:
- ``GatewayError`` subclasses → their own ``status_code``
- ``RequestValidationError`` (malformed body / params) → 400 InvalidRequest
- Any other ``Exception`` → 500 InternalError
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from schemagate.api.models import ErrorDetail, ErrorResponse
from schemagate.errors import GatewayError

logger = logging.getLogger(__name__)


def error_response(status_code: int, kind: str, message: str, details=None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(kind=kind, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def _handle_gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
    """Return the taxonomy kind and message with the kind's status code."""
    log = logger.warning if exc.status_code >= 500 else logger.info
    log("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return error_response(exc.status_code, exc.kind, exc.message, exc.details)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 for request bodies / parameters FastAPI could not parse."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        problems.append(f"{location}: {error.get('msg', 'invalid')}")
    logger.info("Invalid request on %s %s: %s", request.method, request.url.path, problems)
    return error_response(400, "InvalidRequest", "; ".join(problems) or "invalid request")


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that turns any unhandled exception into a generic 500."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            return error_response(500, "InternalError", "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application."""
    app.add_exception_handler(GatewayError, _handle_gateway_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
