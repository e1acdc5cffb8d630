"""
Global exception handlers for the JSON API routes.

The webhook route answers with its own bodies and does not rely on these.
"""
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
import logging

from billing_webhooks.core.responses import error_response, BusinessException, ExternalServiceException
from billing_webhooks.services.paypal_client import PayPalAPIError

logger = logging.getLogger(__name__)


def _route(request: Request) -> str:
    return f"{request.method} {request.url.path}"


async def business_exception_handler(request: Request, exc: BusinessException):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"[API] {_route(request)} -> {exc.status_code} {exc.error_code}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            message=exc.message,
            error_code=exc.error_code
        ).model_dump()
    )


async def paypal_exception_handler(request: Request, exc: PayPalAPIError):
    """Provider failures surface as 502 with PayPal's error name and debug id"""
    logger.error(
        f"[PAYPAL] {_route(request)} provider error: status={exc.status_code} "
        f"code={exc.code} debug_id={exc.debug_id}"
    )
    mapped = ExternalServiceException("PayPal", str(exc))

    return JSONResponse(
        status_code=mapped.status_code,
        content=error_response(
            message=mapped.message,
            error_code=mapped.error_code,
            data={"provider_code": exc.code, "debug_id": exc.debug_id},
        ).model_dump()
    )


async def http_exception_handler_custom(request: Request, exc: HTTPException):
    logger.warning(f"[API] {_route(request)} -> {exc.status_code}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            message=exc.detail,
            error_code="HTTP_ERROR"
        ).model_dump()
    )


async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"[API] {_route(request)} unhandled exception: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content=error_response(
            message="Internal server error",
            error_code="INTERNAL_SERVER_ERROR"
        ).model_dump()
    )


def setup_exception_handlers(app):
    app.add_exception_handler(BusinessException, business_exception_handler)
    app.add_exception_handler(PayPalAPIError, paypal_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler_custom)
    app.add_exception_handler(Exception, general_exception_handler)
