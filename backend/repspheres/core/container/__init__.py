"""Dependency Injection Container Module.

Usage:
------
    # Initialize at startup (call once from main.py or a job entrypoint)
    from repspheres.core.container import initialize_container
    from repspheres.core.config import settings
    initialize_container(settings)

    # In FastAPI deps.py
    def get_container() -> Container:
        return container

    # In tests (construct directly with fakes, don't use global)
    from repspheres.core.container import Container
    test_container = Container(
        payment_gateway=FakePaymentGateway(),
        notifier=FakeSubscriptionNotifier(),
        ...
    )

Module structure:
-----------------
    container/
    ├── __init__.py      # This file - exports public API
    ├── container.py     # Container dataclass (serves)
    └── factory.py       # create_container() (builds)
"""

from typing import TYPE_CHECKING, Optional

from repspheres.core.container.container import Container
from repspheres.core.container.factory import create_container

if TYPE_CHECKING:
    from repspheres.core.config import Settings

__all__ = [
    "Container",
    "container",
    "create_container",
    "initialize_container",
    "reset_container",
]


# ---------------------------------------------------------------------------
# Global container instance
# ---------------------------------------------------------------------------

container: Optional[Container] = None
"""Global container instance.

Initialized via `initialize_container()` at application startup.

Do NOT import this in domain code. Domains receive dependencies
via constructor parameters, never by importing the container directly.
"""


def initialize_container(settings: "Settings") -> Container:
    """Initialize the global container. Call once at startup.

    Raises:
        RuntimeError: If called more than once (container already initialized)
    """
    global container

    if container is not None:
        raise RuntimeError(
            "Container already initialized. "
            "initialize_container() should only be called once at startup."
        )

    container = create_container(settings)
    return container


def reset_container() -> None:
    """Reset the global container to None. For testing only."""
    global container
    container = None
