"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class WrappedError(Exception):
    """Base exception with HTTP status code and a machine-readable category."""

    category = "internal"

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class UnauthorizedError(WrappedError):
    category = "unauthorized"

    def __init__(self, message: str = "Unauthorized. x-user-id header missing."):
        super().__init__(message, status_code=401)


class NotLinkedError(WrappedError):
    category = "not_linked"

    def __init__(self, message: str = "No Instagram account linked. Complete OAuth first."):
        super().__init__(message, status_code=404)


class NotFoundError(WrappedError):
    category = "not_found"

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class UpstreamError(WrappedError):
    """Instagram Graph API call failed (network, expired token, rate limit, timeout)."""

    category = "upstream"

    def __init__(self, message: str):
        super().__init__(message, status_code=502)


class InvalidRequestError(WrappedError):
    category = "validation"

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


def _error_body(message: str, category: str, **extra) -> dict:
    return {"error": message, "category": category, **extra}


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(WrappedError)
    async def handle_wrapped_error(_request: Request, exc: WrappedError):
        return JSONResponse(_error_body(str(exc), exc.category), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            _error_body("Invalid request", "validation", details=details),
            status_code=400,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return JSONResponse(_error_body(str(exc), "validation"), status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            _error_body("Internal server error", "internal"),
            status_code=500,
        )
