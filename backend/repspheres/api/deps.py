"""Dependencies that are used in the API endpoints."""

import uuid
from typing import Optional, get_type_hints
from uuid import UUID

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from repspheres import schemas
from repspheres.api.context import ApiContext
from repspheres.core import container as container_mod
from repspheres.core.config import settings
from repspheres.core.container import Container
from repspheres.core.exceptions import AuthenticationException
from repspheres.core.logging import logger
from repspheres.db.session import get_db

__all__ = ["Inject", "get_container", "get_context", "get_current_user", "get_db"]

_bearer = HTTPBearer(auto_error=False)


def _user_from_token(token: str) -> schemas.User:
    """Verify a Supabase access token and turn its claims into a User.

    Raises:
        AuthenticationException: if the token is expired, forged, meant for
            another audience, or lacks a UUID ``sub`` claim.
    """
    try:
        claims = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except jwt.PyJWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise AuthenticationException() from e

    try:
        user_id = UUID(str(claims.get("sub")))
    except ValueError as e:
        raise AuthenticationException("Token subject is not a user id") from e
    return schemas.User(id=user_id, email=claims.get("email") or "")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> schemas.User:
    """Authenticated user of the request.

    With ``AUTH_ENABLED=false`` every request runs as the configured local user.
    """
    if not settings.AUTH_ENABLED:
        return schemas.User(id=UUID(settings.LOCAL_USER_ID), email=settings.LOCAL_USER_EMAIL)
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationException("No valid authentication provided")
    return _user_from_token(credentials.credentials)


async def get_context(
    request: Request,
    user: schemas.User = Depends(get_current_user),
) -> ApiContext:
    """Create the API context for the request.

    Provides the request id set by middleware, the authenticated user and a
    logger carrying both as dimensions.
    """
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    ctx = ApiContext(
        request_id=request_id,
        user=user,
        logger=logger.with_context(request_id=request_id, user_id=str(user.id)),
    )
    request.state.api_context = ctx
    return ctx


# ---------------------------------------------------------------------------
# DI Container
# ---------------------------------------------------------------------------


def get_container() -> Container:
    """Get the DI container. Initialized at startup."""
    c = container_mod.container
    if c is None:
        raise RuntimeError("Container not initialized. Call initialize_container() first.")
    return c


# ---------------------------------------------------------------------------
# Protocol Injection
# ---------------------------------------------------------------------------

# Cache of protocol_type -> Container field name, built once at first call.
_INJECT_CACHE: dict[type, str] = {}


def _resolve_field_name(protocol_type: type) -> str:
    """Find which Container field matches the given protocol type."""
    if not _INJECT_CACHE:
        for name, hint in get_type_hints(Container).items():
            _INJECT_CACHE[hint] = name

    field_name = _INJECT_CACHE.get(protocol_type)
    if field_name is None:
        available = list(_INJECT_CACHE.values())
        raise TypeError(
            f"No binding for {protocol_type.__name__} in Container. Available fields: {available}"
        )
    return field_name


def Inject(protocol_type: type):  # noqa: N802 - uppercase to match FastAPI convention
    """Resolve a protocol implementation from the DI container.

    Works like ``Depends()`` but looks up the implementation by protocol type::

        @router.get("/status")
        async def status(
            evaluator: EntitlementEvaluatorProtocol = Inject(EntitlementEvaluatorProtocol),
        ): ...
    """
    field_name = _resolve_field_name(protocol_type)

    def _resolve(c: Container = Depends(get_container)):
        return getattr(c, field_name)

    return Depends(_resolve)
