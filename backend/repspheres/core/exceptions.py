"""Shared exceptions module."""

from typing import Optional

from pydantic import ValidationError


class RepspheresException(Exception):
    """Base exception for RepSpheres services."""

    pass


class NotFoundException(RepspheresException):
    """Exception raised when an object is not found."""

    def __init__(self, message: Optional[str] = "Object not found"):
        """Create a new NotFoundException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class ConfigurationError(RepspheresException):
    """Exception raised when the deployment is misconfigured.

    Not recoverable by the user (unknown plan id, missing provider price id).
    Always surfaced as a 500 and logged.
    """

    def __init__(self, message: Optional[str] = "Service is misconfigured"):
        """Create a new ConfigurationError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class PaymentRequiredException(RepspheresException):
    """Exception raised when an action needs an active paid subscription."""

    def __init__(self, message: Optional[str] = "An active subscription is required"):
        """Create a new PaymentRequiredException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class ExternalServiceError(Exception):
    """Exception raised when an external service fails."""

    def __init__(self, service_name: str, message: Optional[str] = "External service failed"):
        """Create a new ExternalServiceError instance.

        Args:
        ----
            service_name (str): The name of the external service.
            message (str, optional): The error message. Has default message.

        """
        self.service_name = service_name
        self.message = message
        super().__init__(f"{service_name}: {message}")


class InvalidStateError(Exception):
    """Exception raised when an object is in an invalid state.

    Used when the request conflicts with the current state of a record,
    e.g. asking for a checkout with a price the catalog does not sell.
    """

    def __init__(self, message: Optional[str] = "Object is in an invalid state"):
        """Create a new InvalidStateError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class AuthenticationException(RepspheresException):
    """Exception raised when a bearer token is missing or invalid."""

    def __init__(self, message: Optional[str] = "Could not validate credentials"):
        """Create a new AuthenticationException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


def unpack_validation_error(exc: ValidationError) -> dict:
    """Unpack a Pydantic validation error into a dictionary.

    Args:
    ----
        exc (ValidationError): The Pydantic validation error.

    Returns:
    -------
        dict: The dictionary representation of the validation error.

    """
    error_messages = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        message = error["msg"]
        error_messages.append({field: message})

    return {"errors": error_messages}
