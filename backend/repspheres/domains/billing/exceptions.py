"""Billing domain exceptions."""

import functools

from repspheres.core.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    InvalidStateError,
    NotFoundException,
)


class UnknownPlanError(ConfigurationError):
    """Raised when a plan id is not in the catalog."""

    def __init__(self, plan_id: str):
        """Initialize with the offending plan id."""
        self.plan_id = plan_id
        super().__init__(f"Unknown plan: {plan_id}")


class PriceNotConfiguredError(ConfigurationError):
    """Raised when a plan has no provider price id configured."""

    def __init__(self, plan_id: str):
        """Initialize with the plan lacking a price."""
        self.plan_id = plan_id
        super().__init__(f"No provider price configured for plan: {plan_id}")


class SubscriptionNotFoundError(NotFoundException):
    """Raised when a user has no subscription record."""

    def __init__(self, message: str = "Subscription not found"):
        """Initialize with default message."""
        super().__init__(message)


class BillingStateError(InvalidStateError):
    """Raised when a billing operation is invalid for the current state."""

    def __init__(self, message: str = "Invalid billing state"):
        """Initialize with default message."""
        super().__init__(message)


class BillingNotAvailableError(InvalidStateError):
    """Raised by NullPaymentGateway when billing is not enabled."""

    def __init__(self, message: str = "Billing is not enabled for this instance"):
        """Initialize with default message."""
        super().__init__(message)


class PaymentGatewayError(ExternalServiceError):
    """Wraps ExternalServiceError from the payment adapter at the domain boundary."""

    def __init__(self, message: str = "Payment gateway error"):
        """Initialize with default message."""
        super().__init__(service_name="PaymentGateway", message=message)


def wrap_gateway_errors(fn):
    """Decorator: catch ExternalServiceError from payment gateway, wrap as PaymentGatewayError."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except PaymentGatewayError:
            raise
        except ExternalServiceError as e:
            raise PaymentGatewayError(message=e.message) from e

    return wrapper
