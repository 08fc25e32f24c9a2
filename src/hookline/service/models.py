"""Service layer models for Hookline.

- CreateSubscriptionResult: result of registering a subscription
- SubscriptionDetail: administrator view of one subscription
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from hookline.models import Delivery, DeliveryStats, ProbeResult, Subscription


class CreateSubscriptionResult(BaseModel):
    """Result of creating a subscription.

    This is the only place the signing secret is ever returned.

    Attributes:
        subscription: The stored subscription.
        secret: The generated signing secret, in plain text.
        test_result: Advisory connectivity probe result.
    """

    model_config = ConfigDict(extra="forbid")

    subscription: Subscription
    secret: str
    test_result: ProbeResult


class SubscriptionDetail(BaseModel):
    """A subscription with its recent statistics and deliveries."""

    model_config = ConfigDict(extra="forbid")

    subscription: Subscription
    stats: DeliveryStats
    recent_deliveries: list[Delivery] = Field(default_factory=list)
