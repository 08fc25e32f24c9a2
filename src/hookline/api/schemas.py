"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from hookline.models import (
    MAX_TIMEOUT_MS,
    MIN_TIMEOUT_MS,
    Delivery,
    DeliveryStats,
    ProbeResult,
    RetryPolicy,
    Subscription,
)


class CreateSubscriptionRequest(BaseModel):
    """Request body for registering a webhook subscription.

    Attributes:
        name: Human-readable label.
        url: Absolute http(s) endpoint.
        events: Event types to subscribe to.
        headers: Extra static headers sent with every delivery.
        retry_policy: Retry policy (defaults: 3 / 1000ms / x2).
        timeout: Per-attempt timeout in milliseconds.
        is_active: Whether fan-out includes the subscription.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, description="Human-readable label")
    url: HttpUrl = Field(description="Endpoint receiving deliveries")
    events: list[str] = Field(min_length=1, description="Subscribed event types")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra static headers")
    retry_policy: RetryPolicy | None = Field(default=None, description="Retry policy")
    timeout: int | None = Field(
        default=None,
        ge=MIN_TIMEOUT_MS,
        le=MAX_TIMEOUT_MS,
        description="Per-attempt timeout (ms)",
    )
    is_active: bool = Field(default=True)


class UpdateSubscriptionRequest(BaseModel):
    """Partial update of a subscription. Omitted fields are left unchanged."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1)
    url: HttpUrl | None = None
    events: list[str] | None = Field(default=None, min_length=1)
    headers: dict[str, str] | None = None
    retry_policy: RetryPolicy | None = None
    timeout: int | None = Field(default=None, ge=MIN_TIMEOUT_MS, le=MAX_TIMEOUT_MS)
    is_active: bool | None = None

    def updates(self) -> dict[str, Any]:
        """Fields that were explicitly provided, ready for the service."""
        data = self.model_dump(exclude_unset=True)
        if self.url is not None:
            data["url"] = str(self.url)
        return data


class SubscriptionResponse(BaseModel):
    """A subscription as shown to administrators. The secret is never included."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    url: str
    events: list[str]
    headers: dict[str, str]
    retry_policy: RetryPolicy
    timeout: int
    is_active: bool
    total_deliveries: int
    successful_deliveries: int
    failed_deliveries: int
    success_rate: float
    last_triggered: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> SubscriptionResponse:
        data = subscription.model_dump(exclude={"secret"})
        data["url"] = str(subscription.url)
        data["success_rate"] = round(subscription.success_rate, 2)
        return cls.model_validate(data)


class CreateSubscriptionResponse(BaseModel):
    """Response for subscription creation; the only response carrying the secret."""

    model_config = ConfigDict(extra="forbid")

    subscription: SubscriptionResponse
    secret: str = Field(description="Signing secret. Store it now; it is not shown again.")
    test_result: ProbeResult


class SubscriptionListResponse(BaseModel):
    """Response for listing subscriptions."""

    model_config = ConfigDict(extra="forbid")

    subscriptions: list[SubscriptionResponse]
    count: int


class SubscriptionDetailResponse(BaseModel):
    """Subscription with trailing-window stats and its latest deliveries."""

    model_config = ConfigDict(extra="forbid")

    subscription: SubscriptionResponse
    stats: DeliveryStats
    recent_deliveries: list[Delivery]


class DeliveryListResponse(BaseModel):
    """Response for a subscription's delivery history (newest first)."""

    model_config = ConfigDict(extra="forbid")

    deliveries: list[Delivery]
    count: int


class TriggerEventRequest(BaseModel):
    """Request body for triggering an event.

    Attributes:
        event: Event type, e.g. "ticket.created".
        data: Event data.
        metadata: Optional metadata included in the envelope.
    """

    model_config = ConfigDict(extra="forbid")

    event: str = Field(min_length=1, description="Event type")
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] | None = None


class TriggerEventResponse(BaseModel):
    """Deliveries created by a trigger."""

    model_config = ConfigDict(extra="forbid")

    delivery_ids: list[str]
    count: int


class RetryQueueResponse(BaseModel):
    """Result of one retry queue pass."""

    model_config = ConfigDict(extra="forbid")

    processed: int = Field(ge=0, description="Deliveries attempted")


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, unhealthy).
        version: API version.
        storage_connected: Whether storage is connected.
        sweeper_running: Whether the retry sweeper loop is running.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_connected: bool
    sweeper_running: bool = False
