"""Core protocols for dependency injection.

Infrastructure-level protocols shared across domains.
"""

from repspheres.core.protocols.notifier import SubscriptionNotifierProtocol
from repspheres.core.protocols.payment import PaymentGatewayProtocol

__all__ = ["PaymentGatewayProtocol", "SubscriptionNotifierProtocol"]
