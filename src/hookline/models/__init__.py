"""Data models for Hookline.

Subscriptions:
    - Subscription: registered destination and delivery policy
    - RetryPolicy: backoff schedule for failed attempts

Delivery ledger:
    - Delivery: one event's attempts to one subscription
    - DeliveryAttempt: a single HTTP try
    - DeliveryOutcome: terminal outcome counted toward subscription totals
    - WebhookPayload: envelope sent to subscribers

Reporting:
    - DeliveryStats, StatusStats: trailing-window statistics
    - ProbeResult: connectivity probe result
"""

from .base import generate_id, utcnow
from .delivery import (
    TERMINAL_STATUSES,
    Delivery,
    DeliveryAttempt,
    DeliveryOutcome,
    DeliveryStats,
    DeliveryStatus,
    ProbeResult,
    StatusStats,
    WebhookPayload,
)
from .subscription import (
    KNOWN_EVENT_TYPES,
    MAX_RETRY_DELAY_MS,
    MAX_TIMEOUT_MS,
    MIN_SECRET_LENGTH,
    MIN_TIMEOUT_MS,
    RetryPolicy,
    Subscription,
)

__all__ = [
    "generate_id",
    "utcnow",
    # Subscriptions
    "KNOWN_EVENT_TYPES",
    "MAX_RETRY_DELAY_MS",
    "MAX_TIMEOUT_MS",
    "MIN_SECRET_LENGTH",
    "MIN_TIMEOUT_MS",
    "RetryPolicy",
    "Subscription",
    # Delivery ledger
    "TERMINAL_STATUSES",
    "Delivery",
    "DeliveryAttempt",
    "DeliveryOutcome",
    "DeliveryStatus",
    "WebhookPayload",
    # Reporting
    "DeliveryStats",
    "ProbeResult",
    "StatusStats",
]
