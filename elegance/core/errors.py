"""Application error catalogue.

Every user-visible failure carries an HTTP status, a stable machine-readable
``code`` and a human message. The handlers registered in :func:`install`
render them as ``{"ok": false, "error": {...}}``.
"""
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details


class ValidationError(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"

class InvalidAmount(AppError):
    status_code = 400
    code = "INVALID_AMOUNT"
    default_message = "Amount must be greater than 0"

class EmptyCart(AppError):
    status_code = 400
    code = "EMPTY_CART"
    default_message = "Cart is empty"

class PaymentNotSucceeded(AppError):
    status_code = 400
    code = "PAYMENT_NOT_SUCCEEDED"
    default_message = "Payment has not succeeded"

class InvalidSignature(AppError):
    status_code = 400
    code = "INVALID_SIGNATURE"
    default_message = "Webhook signature verification failed"

class Unauthorized(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Not authenticated"

class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"

class OrderNotFound(AppError):
    status_code = 404
    code = "ORDER_NOT_FOUND"
    default_message = "Order not found"

class PerfumeNotFound(AppError):
    status_code = 404
    code = "PERFUME_NOT_FOUND"
    default_message = "Perfume not found"

class EmailTaken(AppError):
    status_code = 409
    code = "EMAIL_TAKEN"
    default_message = "Email already registered"

class OrderNotPayable(AppError):
    status_code = 409
    code = "ORDER_NOT_PAYABLE"
    default_message = "Order can no longer be paid"

class OrderNotCancellable(AppError):
    status_code = 409
    code = "ORDER_NOT_CANCELLABLE"
    default_message = "Only pending orders can be cancelled"

class GatewayError(AppError):
    status_code = 502
    code = "GATEWAY_ERROR"
    default_message = "Payment provider request failed"


def _envelope(code: str, message: str, details: Any = None) -> dict:
    return {"ok": False, "error": {"code": code, "message": message, "details": details}}


def install(app: FastAPI, production: bool) -> None:
    """Register the error handlers on ``app``."""

    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=_envelope(exc.code, exc.message, exc.details))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
        return JSONResponse(
            status_code=ValidationError.status_code,
            content=_envelope(ValidationError.code, ValidationError.default_message, details),
        )

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path)
        message = "Internal server error" if production else str(exc)
        return JSONResponse(status_code=500, content=_envelope("INTERNAL_ERROR", message))
