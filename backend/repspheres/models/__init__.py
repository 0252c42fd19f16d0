"""Models for the application."""

from ._base import Base
from .processed_webhook_event import ProcessedWebhookEvent
from .subscription import UserSubscription
from .team_seat import TeamSeat
from .usage_event import UsageEvent

__all__ = ["Base", "ProcessedWebhookEvent", "TeamSeat", "UsageEvent", "UserSubscription"]
