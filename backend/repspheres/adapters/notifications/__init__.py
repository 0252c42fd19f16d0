"""Subscription notifier adapters."""

from repspheres.adapters.notifications.fake import FakeSubscriptionNotifier
from repspheres.adapters.notifications.http import HttpSubscriptionNotifier
from repspheres.adapters.notifications.logging import LoggingSubscriptionNotifier

__all__ = ["FakeSubscriptionNotifier", "HttpSubscriptionNotifier", "LoggingSubscriptionNotifier"]
