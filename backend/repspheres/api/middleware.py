"""Middleware and exception handlers for the FastAPI application.

Domain exceptions are mapped to status codes here so endpoints stay free of
try/except blocks. Provider and configuration faults are logged in full
but reach the client only as generic messages.
"""

import time
import traceback
import uuid

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from repspheres.core.config import settings
from repspheres.core.exceptions import (
    AuthenticationException,
    ConfigurationError,
    ExternalServiceError,
    InvalidStateError,
    NotFoundException,
    PaymentRequiredException,
    RepspheresException,
    unpack_validation_error,
)
from repspheres.core.logging import logger
from repspheres.domains.billing.exceptions import PaymentGatewayError

GENERIC_PROVIDER_ERROR = "Payment provider request failed"
GENERIC_SERVER_ERROR = "Internal Server Error"


async def add_request_id(request: Request, call_next) -> Response:
    """Generate a request id for tracing and echo it in ``X-Request-ID``."""
    request.state.request_id = str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request.state.request_id
    return response


async def log_requests(request: Request, call_next) -> Response:
    """Log each request with its duration and status code."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    logger.with_context(request_id=getattr(request.state, "request_id", None)).info(
        f"Handled request {request.method} {request.url.path} in {duration:.2f} seconds. "
        f"Response code: {response.status_code}"
    )
    return response


async def exception_logging_middleware(request: Request, call_next) -> Response:
    """Log unhandled exceptions and turn them into a 500."""
    try:
        return await call_next(request)
    except Exception as exc:
        logger.with_context(request_id=getattr(request.state, "request_id", None)).error(
            f"Unhandled exception: {exc}\n{traceback.format_exc()}"
        )
        content = {"detail": GENERIC_SERVER_ERROR}
        if settings.DEBUG:
            content["trace"] = traceback.format_exc()
        return JSONResponse(status_code=500, content=content)


# Exception handlers
async def validation_exception_handler(
    request: Request, exc: RequestValidationError | ValidationError
) -> JSONResponse:
    """422 with one ``{location: message}`` entry per validation error."""
    error_messages = unpack_validation_error(exc)
    logger.warning(f"Validation error: {error_messages}")
    return JSONResponse(status_code=422, content=error_messages)


async def not_found_exception_handler(request: Request, exc: NotFoundException) -> JSONResponse:
    """404 with the exception message."""
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def invalid_state_exception_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
    """400 with the exception message."""
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def authentication_exception_handler(
    request: Request, exc: AuthenticationException
) -> JSONResponse:
    """401 with a bearer challenge."""
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def payment_required_exception_handler(
    request: Request, exc: PaymentRequiredException
) -> JSONResponse:
    """402 ``{error}`` so the client can route the user to the pricing page."""
    return JSONResponse(status_code=402, content={"error": str(exc)})


async def external_service_exception_handler(
    request: Request, exc: ExternalServiceError
) -> JSONResponse:
    """Provider failures: 500 for the payment gateway, 502 for anything else.

    The provider's own message is logged, never returned.
    """
    logger.with_context(request_id=getattr(request.state, "request_id", None)).error(
        f"External service failure ({exc.service_name}): {exc.message}"
    )
    status_code = 500 if isinstance(exc, PaymentGatewayError) else 502
    return JSONResponse(status_code=status_code, content={"error": GENERIC_PROVIDER_ERROR})


async def repspheres_exception_handler(
    request: Request, exc: RepspheresException
) -> JSONResponse:
    """Fallback for RepspheresException subclasses without a dedicated handler.

    Configuration faults are logged at error level; the message stays server-side.
    """
    if isinstance(exc, ConfigurationError):
        logger.error(f"Configuration fault: {exc}")
    else:
        logger.error(f"Unmapped application error: {exc.__class__.__name__}: {exc}")
    return JSONResponse(status_code=500, content={"detail": GENERIC_SERVER_ERROR})
