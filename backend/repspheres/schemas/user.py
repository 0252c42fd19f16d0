"""User schema.

Users live in the identity provider; the backend only sees the claims of a
verified bearer token.
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """Authenticated user derived from token claims."""

    id: UUID
    email: str

    model_config = ConfigDict(frozen=True)
