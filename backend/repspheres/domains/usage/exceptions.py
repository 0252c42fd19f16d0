"""Usage domain exceptions."""

from typing import Optional

from repspheres.core.exceptions import InvalidStateError, PaymentRequiredException


class NoActiveSubscriptionError(PaymentRequiredException):
    """Raised when usage is recorded for a user without an entitled subscription."""

    def __init__(self, status: Optional[str] = None) -> None:
        """Initialize with the user's current subscription status."""
        self.status = status
        super().__init__("An active subscription is required to use this feature")


class InvalidUsageQuantityError(InvalidStateError):
    """Raised when a usage quantity is not a positive integer."""

    def __init__(self, quantity: int) -> None:
        """Initialize with the rejected quantity."""
        self.quantity = quantity
        super().__init__(f"Usage quantity must be a positive integer, got {quantity}")
