"""Main module of the FastAPI application.

This module sets up the FastAPI application, the middleware that logs
requests and unhandled exceptions, and the lifespan that wires the DI
container and runs the usage reconciler in the background.
"""

import os
import subprocess
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from repspheres.api.middleware import (
    add_request_id,
    authentication_exception_handler,
    exception_logging_middleware,
    external_service_exception_handler,
    invalid_state_exception_handler,
    log_requests,
    not_found_exception_handler,
    payment_required_exception_handler,
    repspheres_exception_handler,
    validation_exception_handler,
)
from repspheres.api.v1.api import api_router
from repspheres.core.config import settings
from repspheres.core.config.enums import Environment
from repspheres.core.exceptions import (
    AuthenticationException,
    ExternalServiceError,
    InvalidStateError,
    NotFoundException,
    PaymentRequiredException,
    RepspheresException,
)
from repspheres.core.logging import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events.

    Initializes the DI container, optionally runs alembic migrations, and
    starts the usage reconciler loop; stops it again on shutdown.
    """
    from repspheres.core import container as container_mod
    from repspheres.core.container import initialize_container

    if container_mod.container is None:
        logger.info("Initializing dependency injection container...")
        initialize_container(settings)
        logger.info("Container initialized successfully")
    container = container_mod.container

    if settings.RUN_ALEMBIC_MIGRATIONS:
        logger.info("Running alembic migrations...")
        env = os.environ.copy()
        backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        env["PYTHONPATH"] = backend_dir
        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            cwd=backend_dir,
            env=env,
        )

    container.usage_reconciler.start()
    try:
        yield
    finally:
        await container.usage_reconciler.stop()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.include_router(api_router)

# Order matters: first registered = innermost middleware
app.middleware("http")(exception_logging_middleware)
app.middleware("http")(log_requests)
app.middleware("http")(add_request_id)

# Register exception handlers
app.exception_handler(RequestValidationError)(validation_exception_handler)
app.exception_handler(ValidationError)(validation_exception_handler)
app.exception_handler(NotFoundException)(not_found_exception_handler)
app.exception_handler(InvalidStateError)(invalid_state_exception_handler)
app.exception_handler(AuthenticationException)(authentication_exception_handler)
app.exception_handler(PaymentRequiredException)(payment_required_exception_handler)
app.exception_handler(ExternalServiceError)(external_service_exception_handler)
app.exception_handler(RepspheresException)(repspheres_exception_handler)

CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "https://repspheres.com",
    "https://www.repspheres.com",
]

if settings.ADDITIONAL_CORS_ORIGINS:
    if settings.ENVIRONMENT == Environment.LOCAL:
        CORS_ORIGINS.append("*")  # Allow all origins in local environment
    else:
        CORS_ORIGINS.extend(o.strip() for o in settings.ADDITIONAL_CORS_ORIGINS.split(","))

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
