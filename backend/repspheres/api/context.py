"""HTTP API request context.

Only the API layer creates these via deps.get_context().
"""

from dataclasses import dataclass
from uuid import UUID

from repspheres import schemas
from repspheres.core.logging import ContextualLogger


@dataclass
class ApiContext:
    """Per-request context: the authenticated user, request id and a logger.

    Created by deps.get_context() and injected into endpoints via Depends().
    """

    request_id: str
    user: schemas.User
    logger: ContextualLogger

    @property
    def user_id(self) -> UUID:
        """ID of the authenticated user."""
        return self.user.id
