"""Webhook subscription models.

A subscription is a registered destination URL plus the policy used when
delivering events to it: which event types it wants, extra headers, the
retry policy, the per-attempt timeout and the shared signing secret.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, SecretStr, field_validator

from .base import generate_id, utcnow

# Event types emitted by the helpdesk application. The set is open: any
# non-empty event string can be subscribed to and triggered.
KNOWN_EVENT_TYPES: tuple[str, ...] = (
    "ticket.created",
    "ticket.updated",
    "ticket.status_changed",
    "ticket.assigned",
    "ticket.priority_changed",
    "ticket.resolved",
    "ticket.closed",
    "ticket.reopened",
    "ticket.comment_added",
    "ticket.escalated",
    "ticket.sla_breached",
    "user.created",
    "user.updated",
    "team.created",
    "team.updated",
)

MIN_SECRET_LENGTH = 16
MIN_TIMEOUT_MS = 1_000
MAX_TIMEOUT_MS = 300_000
# Scheduled retry delays are clamped to one day.
MAX_RETRY_DELAY_MS = 86_400_000


class RetryPolicy(BaseModel):
    """Retry policy applied after a failed delivery attempt.

    Attributes:
        max_retries: Retry budget. A retry is scheduled while the attempt
            number is strictly below this value, so at most ``max_retries``
            attempts are made (one attempt when it is 0 or 1).
        retry_delay: Delay before the second attempt, in milliseconds.
        backoff_multiplier: Growth factor applied for each further attempt.
    """

    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0, le=10, description="Retry budget")
    retry_delay: int = Field(default=1000, ge=100, description="Initial retry delay (ms)")
    backoff_multiplier: float = Field(default=2.0, ge=1.0, description="Delay growth factor")

    def should_retry(self, attempt_number: int) -> bool:
        """Whether a failed attempt ``attempt_number`` gets another try."""
        return attempt_number < self.max_retries

    def delay_after(self, attempt_number: int) -> timedelta:
        """Delay between failed attempt ``attempt_number`` and the next one.

        retry_delay * backoff_multiplier ** (attempt_number - 1), capped at
        ``MAX_RETRY_DELAY_MS``.
        """
        delay = float(min(self.retry_delay, MAX_RETRY_DELAY_MS))
        for _ in range(attempt_number - 1):
            delay = min(delay * self.backoff_multiplier, MAX_RETRY_DELAY_MS)
        return timedelta(milliseconds=delay)


class Subscription(BaseModel):
    """A registered webhook destination.

    The running counters are not stored on the record; storage fills them
    from per-delivery outcome records when the subscription is read.

    Attributes:
        id: Unique identifier ("sub_" prefix).
        name: Human-readable label.
        url: Absolute http(s) endpoint receiving deliveries.
        events: Event types this subscription wants.
        headers: Extra static headers sent with every delivery.
        secret: Shared HMAC-SHA256 signing secret. Masked on serialization.
        retry_policy: Retry policy for failed attempts.
        timeout: Hard bound on a single HTTP attempt, in milliseconds.
        is_active: Inactive subscriptions are skipped by fan-out.
        total_deliveries: Deliveries that reached a terminal state.
        successful_deliveries: Deliveries that ended in success.
        failed_deliveries: Deliveries that ended in failure.
        last_triggered: When a delivery to this subscription last terminated.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("sub"))
    name: str = Field(min_length=1, description="Human-readable label")
    url: HttpUrl = Field(description="Endpoint receiving deliveries")
    events: list[str] = Field(min_length=1, description="Subscribed event types")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra static headers")
    secret: SecretStr = Field(description="Shared secret for HMAC-SHA256 signatures")
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    timeout: int = Field(
        default=30_000,
        ge=MIN_TIMEOUT_MS,
        le=MAX_TIMEOUT_MS,
        description="Per-attempt timeout (ms)",
    )
    is_active: bool = Field(default=True, description="Whether fan-out includes this subscription")
    total_deliveries: int = Field(default=0, ge=0)
    successful_deliveries: int = Field(default=0, ge=0)
    failed_deliveries: int = Field(default=0, ge=0)
    last_triggered: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("events")
    @classmethod
    def _normalize_events(cls, value: list[str]) -> list[str]:
        events: list[str] = []
        for event in value:
            event = event.strip()
            if not event:
                raise ValueError("event types must be non-empty strings")
            if event not in events:
                events.append(event)
        return events

    @field_validator("headers")
    @classmethod
    def _check_headers(cls, value: dict[str, str]) -> dict[str, str]:
        for name, header_value in value.items():
            if not name.strip() or not name.isascii() or any(ch in name for ch in ":\r\n "):
                raise ValueError(f"invalid header name: {name!r}")
            # Header values go on the wire as ASCII
            if not header_value.isascii() or any(ch in header_value for ch in "\r\n\0"):
                raise ValueError(f"invalid value for header {name!r}")
        return value

    @field_validator("secret")
    @classmethod
    def _check_secret_length(cls, value: SecretStr) -> SecretStr:
        if len(value.get_secret_value()) < MIN_SECRET_LENGTH:
            raise ValueError(f"secret must be at least {MIN_SECRET_LENGTH} characters")
        return value

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this subscription is active and wants the event type."""
        return self.is_active and event_type in self.events

    @property
    def timeout_seconds(self) -> float:
        """Per-attempt timeout in seconds."""
        return self.timeout / 1000

    @property
    def success_rate(self) -> float:
        """Percentage of terminal deliveries that succeeded (0 when none)."""
        if self.total_deliveries == 0:
            return 0.0
        return self.successful_deliveries / self.total_deliveries * 100


__all__ = [
    "KNOWN_EVENT_TYPES",
    "MAX_RETRY_DELAY_MS",
    "MAX_TIMEOUT_MS",
    "MIN_SECRET_LENGTH",
    "MIN_TIMEOUT_MS",
    "RetryPolicy",
    "Subscription",
]
