"""CRUD singletons for the RepSpheres backend."""

from .crud_subscription import user_subscription
from .crud_team_seat import team_seat
from .crud_usage_event import usage_event
from .crud_webhook_event import processed_webhook_event

__all__ = ["processed_webhook_event", "team_seat", "usage_event", "user_subscription"]
