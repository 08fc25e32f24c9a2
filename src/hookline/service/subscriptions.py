"""Subscription management operations for WebhookService."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Any

import pydantic

from hookline.exceptions import NotFoundError, ValidationError
from hookline.logging import get_logger
from hookline.models import ProbeResult, RetryPolicy, Subscription, utcnow

from .models import CreateSubscriptionResult, SubscriptionDetail

if TYPE_CHECKING:
    from hookline.config import Settings
    from hookline.storage import HooklineStorage
    from hookline.webhooks import WebhookSender

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"name", "url", "events", "headers", "retry_policy", "timeout", "is_active"}
)
RECENT_DELIVERIES = 10


def _to_validation_error(exc: pydantic.ValidationError) -> ValidationError:
    """First pydantic error as a Hookline ValidationError."""
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"]) or "subscription"
    return ValidationError(field, error["msg"])


class SubscriptionOpsMixin:
    """Mixin providing subscription CRUD and probing for WebhookService.

    This mixin expects the following attributes from the service:
    - storage: HooklineStorage
    - sender: WebhookSender
    - settings: Settings
    """

    storage: HooklineStorage
    sender: WebhookSender
    settings: Settings
    get_delivery_stats: Any

    async def create_subscription(
        self,
        name: str,
        url: str,
        events: list[str],
        headers: dict[str, str] | None = None,
        retry_policy: RetryPolicy | dict[str, Any] | None = None,
        timeout: int | None = None,
        is_active: bool = True,
    ) -> CreateSubscriptionResult:
        """Register a subscription and probe it once.

        A fresh secret is generated and returned in the result; it is
        never exposed again. The probe is advisory: a failed probe does
        not prevent creation.

        Raises:
            ValidationError: If the URL, events, retry policy or timeout are invalid.
        """
        secret = secrets.token_hex(self.settings.secret_bytes)
        fields: dict[str, Any] = {
            "name": name,
            "url": url,
            "events": events,
            "headers": headers or {},
            "secret": secret,
            "is_active": is_active,
        }
        if retry_policy is not None:
            fields["retry_policy"] = retry_policy
        if timeout is not None:
            fields["timeout"] = timeout

        try:
            subscription = Subscription.model_validate(fields)
        except pydantic.ValidationError as e:
            raise _to_validation_error(e) from e

        await self.storage.save_subscription(subscription)
        logger.info(
            "Subscription created",
            subscription_id=subscription.id,
            url=str(subscription.url),
            events=subscription.events,
        )

        test_result = await self.sender.probe(subscription)
        return CreateSubscriptionResult(
            subscription=subscription,
            secret=secret,
            test_result=test_result,
        )

    async def get_subscription(self, subscription_id: str) -> Subscription:
        """Get a subscription with its counters.

        Raises:
            NotFoundError: If no such subscription exists.
        """
        subscription = await self.storage.get_subscription(subscription_id)
        if subscription is None:
            raise NotFoundError("subscription", subscription_id)
        return subscription

    async def list_subscriptions(self, active_only: bool = False) -> list[Subscription]:
        """List subscriptions, newest first."""
        subscriptions: list[Subscription] = await self.storage.list_subscriptions(
            active_only=active_only
        )
        return subscriptions

    async def update_subscription(self, subscription_id: str, **updates: Any) -> Subscription:
        """Apply a validated partial update.

        Only name, url, events, headers, retry_policy, timeout and
        is_active can change; the secret and the counters cannot.

        Raises:
            NotFoundError: If no such subscription exists.
            ValidationError: For unknown fields or invalid values.
        """
        for field in updates:
            if field not in UPDATABLE_FIELDS:
                raise ValidationError(field, "field cannot be updated")

        current = await self.get_subscription(subscription_id)
        if not updates:
            return current

        merged = current.model_dump()
        policy = updates.get("retry_policy")
        if isinstance(policy, dict):
            # Partial policy updates keep the other knobs
            updates = {**updates, "retry_policy": {**merged["retry_policy"], **policy}}
        merged.update(updates)
        merged["updated_at"] = utcnow()
        try:
            subscription = Subscription.model_validate(merged)
        except pydantic.ValidationError as e:
            raise _to_validation_error(e) from e

        await self.storage.update_subscription_record(subscription)
        logger.info(
            "Subscription updated",
            subscription_id=subscription_id,
            fields=sorted(updates),
        )
        return subscription

    async def delete_subscription(self, subscription_id: str) -> None:
        """Delete a subscription and its whole delivery history.

        Raises:
            NotFoundError: If no such subscription exists.
        """
        if not await self.storage.delete_subscription(subscription_id):
            raise NotFoundError("subscription", subscription_id)
        logger.info("Subscription deleted", subscription_id=subscription_id)

    async def test_subscription(self, subscription_id: str) -> ProbeResult:
        """Send one unrecorded probe request to the subscription's URL.

        Raises:
            NotFoundError: If no such subscription exists.
        """
        subscription = await self.get_subscription(subscription_id)
        return await self.sender.probe(subscription)

    async def subscription_detail(self, subscription_id: str) -> SubscriptionDetail:
        """Subscription plus trailing-window stats and its latest deliveries.

        Raises:
            NotFoundError: If no such subscription exists.
        """
        subscription = await self.get_subscription(subscription_id)
        stats = await self.get_delivery_stats(subscription_id)
        recent = await self.storage.list_deliveries(subscription_id, limit=RECENT_DELIVERIES)
        return SubscriptionDetail(
            subscription=subscription,
            stats=stats,
            recent_deliveries=recent,
        )
