"""Hookline: signed outbound webhooks you can audit.

Notifies external HTTP endpoints when domain events happen, with
HMAC-SHA256 signatures, backoff-scheduled retries and a per-delivery
attempt history.

Quick Start:
    from hookline.service import WebhookService

    async with WebhookService.create() as hooks:
        created = await hooks.create_subscription(
            name="CRM sync",
            url="https://crm.example.com/hooks",
            events=["ticket.created", "ticket.resolved"],
        )

        # Fire-and-forget from business code; never raises
        await hooks.trigger("ticket.created", {"ticket_id": "t_123"})

Receivers verify requests with:
    from hookline import verify_signature

    verify_signature(raw_body, request.headers["X-Webhook-Signature"], secret)
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    DeliveryStateError,
    HooklineError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    Delivery,
    DeliveryAttempt,
    DeliveryStats,
    ProbeResult,
    RetryPolicy,
    Subscription,
    WebhookPayload,
)

# Signing
from .webhooks.signing import sign, verify_signature

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "HooklineError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ConfigurationError",
    "AuthenticationError",
    "DeliveryStateError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "Delivery",
    "DeliveryAttempt",
    "DeliveryStats",
    "ProbeResult",
    "RetryPolicy",
    "Subscription",
    "WebhookPayload",
    # Signing
    "sign",
    "verify_signature",
]
