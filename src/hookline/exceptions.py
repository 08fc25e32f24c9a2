"""Hookline exception hierarchy.

All exceptions inherit from HooklineError so API handlers can map the
whole family to JSON error bodies with a single registration.
"""

from __future__ import annotations


class HooklineError(Exception):
    """Base exception for all Hookline errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookline_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HooklineError):
    """Invalid subscription configuration.

    Raised at create/update time for malformed URLs, invalid retry
    policies or out-of-range timeouts. Never raised from delivery code.

    Attributes:
        field: The field that failed validation.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(HooklineError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource ("subscription", "delivery").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(HooklineError):
    """Storage operation failed."""

    code: str = "storage_error"


class ConfigurationError(HooklineError):
    """Required configuration is missing or invalid."""

    code: str = "configuration_error"


class AuthenticationError(HooklineError):
    """Internal API credentials are invalid or missing."""

    code: str = "authentication_error"


class DeliveryStateError(HooklineError):
    """A delivery transition was requested from a terminal state.

    Attributes:
        delivery_id: ID of the delivery.
        status: The delivery's current (terminal) status.
    """

    code: str = "delivery_state_error"

    def __init__(self, delivery_id: str, status: str) -> None:
        self.delivery_id = delivery_id
        self.status = status
        super().__init__(f"delivery {delivery_id} is already {status}")
