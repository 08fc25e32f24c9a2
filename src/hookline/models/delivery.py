"""Delivery ledger models.

A Delivery records one triggered event's notification attempts to one
subscription. Its status follows a small state machine:

    pending  -> success | retrying | failed
    retrying -> success | retrying | failed

``success`` and ``failed`` are terminal.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hookline.exceptions import DeliveryStateError

from .base import generate_id, utcnow

DeliveryStatus = Literal["pending", "success", "retrying", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"success", "failed"})


class WebhookPayload(BaseModel):
    """Envelope sent to subscribers.

    The timestamp is kept as an ISO-8601 string so the envelope serializes
    to the same bytes every time it is rendered.
    """

    model_config = ConfigDict(extra="forbid")

    event: str = Field(min_length=1, description="Event type")
    timestamp: str = Field(description="ISO-8601 time the event was triggered")
    data: dict[str, Any] = Field(default_factory=dict, description="Event data")
    metadata: dict[str, Any] | None = Field(default=None, description="Optional metadata")

    @classmethod
    def build(
        cls,
        event: str,
        data: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> WebhookPayload:
        """Create an envelope stamped with the current (or given) time."""
        moment = timestamp or utcnow()
        return cls(
            event=event,
            timestamp=moment.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            data=data or {},
            metadata=metadata,
        )

    def to_document(self) -> dict[str, Any]:
        """JSON-compatible dict; metadata is omitted when absent."""
        document = self.model_dump(mode="json")
        if document["metadata"] is None:
            del document["metadata"]
        return document


class DeliveryAttempt(BaseModel):
    """One HTTP try within a delivery.

    Attributes:
        attempt_number: 1-based position in the delivery's history.
        timestamp: When the attempt started.
        response_status: HTTP status, when a response arrived.
        response_time: Elapsed milliseconds.
        error_message: Failure reason; absent on success.
    """

    model_config = ConfigDict(extra="forbid")

    attempt_number: int = Field(ge=1)
    timestamp: datetime
    response_status: int | None = None
    response_time: int = Field(default=0, ge=0, description="Elapsed time (ms)")
    error_message: str | None = None


class Delivery(BaseModel):
    """Record of one event's delivery to one subscription.

    ``payload`` is the envelope exactly as sent and never changes after
    creation. ``headers`` is the outgoing request shape snapshotted at
    creation time.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    subscription_id: str = Field(description="Owning subscription")
    event: str = Field(description="Event type")
    payload: dict[str, Any] = Field(description="Serialized envelope")
    url: str = Field(description="Destination URL at creation time")
    http_method: Literal["POST"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    status: DeliveryStatus = "pending"
    attempts: list[DeliveryAttempt] = Field(default_factory=list)
    response_status: int | None = None
    response_headers: dict[str, str] | None = None
    response_body: str | None = None
    error_message: str | None = None
    next_retry_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        """True once the delivery is ``success`` or ``failed``."""
        return self.status in TERMINAL_STATUSES

    @property
    def next_attempt_number(self) -> int:
        return len(self.attempts) + 1

    @property
    def last_attempt(self) -> DeliveryAttempt | None:
        return self.attempts[-1] if self.attempts else None

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise DeliveryStateError(self.id, self.status)

    def record_attempt(self, attempt: DeliveryAttempt) -> Delivery:
        """Append an attempt; attempt numbers must be contiguous from 1."""
        self._ensure_open()
        if attempt.attempt_number != self.next_attempt_number:
            raise ValueError(
                f"attempt {attempt.attempt_number} out of order, "
                f"expected {self.next_attempt_number}"
            )
        self.attempts.append(attempt)
        self.updated_at = utcnow()
        return self

    def record_response(
        self,
        status_code: int | None,
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> Delivery:
        """Store the response of the most recent attempt (None when none arrived)."""
        self.response_status = status_code
        self.response_headers = headers
        self.response_body = body
        return self

    def mark_success(self, delivered_at: datetime | None = None) -> Delivery:
        """Transition to ``success``."""
        self._ensure_open()
        self.status = "success"
        self.delivered_at = delivered_at or utcnow()
        self.next_retry_at = None
        self.updated_at = utcnow()
        return self

    def mark_retrying(self, next_retry_at: datetime, error: str) -> Delivery:
        """Schedule another attempt at ``next_retry_at``."""
        self._ensure_open()
        self.status = "retrying"
        self.error_message = error
        self.next_retry_at = next_retry_at
        self.updated_at = utcnow()
        return self

    def mark_failed(self, error: str) -> Delivery:
        """Transition to ``failed`` (no more retries)."""
        self._ensure_open()
        self.status = "failed"
        self.error_message = error
        self.next_retry_at = None
        self.updated_at = utcnow()
        return self


class DeliveryOutcome(BaseModel):
    """Terminal outcome of one delivery, counted toward subscription totals.

    Exactly one outcome exists per delivery; writing it again for the
    same delivery replaces the record instead of adding a second one.
    """

    model_config = ConfigDict(extra="forbid")

    delivery_id: str
    subscription_id: str
    success: bool
    recorded_at: datetime = Field(default_factory=utcnow)


class StatusStats(BaseModel):
    """Delivery count and mean final-attempt response time for one status."""

    model_config = ConfigDict(extra="forbid")

    status: DeliveryStatus
    count: int = Field(ge=0)
    avg_response_time: float | None = Field(
        default=None, description="Mean response time of each delivery's last attempt (ms)"
    )


class DeliveryStats(BaseModel):
    """Statistics over a subscription's deliveries in a trailing window."""

    model_config = ConfigDict(extra="forbid")

    subscription_id: str
    days: int = Field(ge=1)
    since: datetime
    by_status: list[StatusStats] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(bucket.count for bucket in self.by_status)

    def for_status(self, status: str) -> StatusStats | None:
        return next((b for b in self.by_status if b.status == status), None)


class ProbeResult(BaseModel):
    """Result of a connectivity probe; advisory only."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    message: str
    response_time_ms: int = Field(ge=0)


__all__ = [
    "Delivery",
    "DeliveryAttempt",
    "DeliveryOutcome",
    "DeliveryStats",
    "DeliveryStatus",
    "ProbeResult",
    "StatusStats",
    "TERMINAL_STATUSES",
    "WebhookPayload",
]
