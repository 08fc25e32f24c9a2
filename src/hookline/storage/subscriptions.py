"""Subscription registry storage operations.

Running counters are never stored on the subscription record. Every
terminal delivery writes one outcome record keyed by its delivery id, and
the counters are exact counts over those records, so concurrent senders
never read-modify-write a shared value and a replayed outcome cannot be
counted twice.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from hookline.storage.base import match, to_ts
from hookline.storage.retry import qdrant_retry

if TYPE_CHECKING:
    from hookline.models import DeliveryOutcome, Subscription

# Subscription fields filled from outcome records on read
COUNTER_FIELDS = frozenset({"total_deliveries", "successful_deliveries", "failed_deliveries"})


class SubscriptionMixin:
    """Mixin providing subscription operations for HooklineStorage.

    This mixin expects the following attributes/methods from the base class:
    - _collection_name(kind) -> str
    - _point_id(kind, record_id) -> str
    - _upsert(kind, record_id, payload)
    - _retrieve(kind, record_id) -> dict | None
    - _scroll_all(kind, filter, with_payload) -> AsyncIterator[dict]
    - _count(kind, filter) -> int
    - _payload_to_record(payload, record_class) -> RecordT
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _point_id: Any
    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _count: Any
    _payload_to_record: Any
    client: Any

    @staticmethod
    def _subscription_payload(subscription: Subscription) -> dict[str, Any]:
        payload = subscription.model_dump(mode="json", exclude=set(COUNTER_FIELDS))
        # model_dump masks SecretStr; the store keeps the real value
        payload["secret"] = subscription.secret.get_secret_value()
        payload["created_ts"] = to_ts(subscription.created_at)
        return payload

    @qdrant_retry
    async def save_subscription(self, subscription: Subscription) -> str:
        """Insert or replace a subscription record.

        Returns:
            The subscription ID.
        """
        await self._upsert(
            "subscriptions", subscription.id, self._subscription_payload(subscription)
        )
        return subscription.id

    @qdrant_retry
    async def update_subscription_record(self, subscription: Subscription) -> None:
        """Overwrite the editable fields of an existing subscription.

        ``last_triggered`` is left alone, since outcome recording advances it
        independently. A subscription deleted meanwhile stays deleted.
        """
        payload = self._subscription_payload(subscription)
        payload.pop("last_triggered", None)
        await self.client.set_payload(
            collection_name=self._collection_name("subscriptions"),
            payload=payload,
            points=self._subscription_selector(subscription.id),
        )

    @qdrant_retry
    async def get_subscription(self, subscription_id: str) -> Subscription | None:
        """Get a subscription by ID, with its counters filled in."""
        from hookline.models import Subscription

        payload = await self._retrieve("subscriptions", subscription_id)
        if payload is None:
            return None
        payload.update(await self._delivery_counters(subscription_id))
        subscription: Subscription = self._payload_to_record(payload, Subscription)
        return subscription

    @qdrant_retry
    async def list_subscriptions(
        self,
        active_only: bool = False,
        event_type: str | None = None,
    ) -> list[Subscription]:
        """List subscriptions, newest first.

        Args:
            active_only: Only return subscriptions with ``is_active``.
            event_type: Only return subscriptions whose events include this type.
        """
        from hookline.models import Subscription

        conditions: list[models.Condition] = []
        if active_only:
            conditions.append(match("is_active", True))
        if event_type is not None:
            # Array payloads match when any element equals the value
            conditions.append(match("events", event_type))

        scroll_filter = models.Filter(must=conditions) if conditions else None
        subscriptions: list[Subscription] = []
        async for payload in self._scroll_all("subscriptions", scroll_filter):
            subscription_id = payload["id"]
            payload.update(await self._delivery_counters(subscription_id))
            subscriptions.append(self._payload_to_record(payload, Subscription))

        subscriptions.sort(key=lambda s: s.created_at, reverse=True)
        return subscriptions

    async def get_subscriptions_for_event(self, event_type: str) -> list[Subscription]:
        """Active subscriptions whose event set contains ``event_type``."""
        subscriptions = await self.list_subscriptions(active_only=True, event_type=event_type)
        return [s for s in subscriptions if s.subscribes_to(event_type)]

    @qdrant_retry
    async def delete_subscription_record(self, subscription_id: str) -> bool:
        """Delete only the subscription record.

        Returns:
            True if a record was deleted, False if it did not exist.
        """
        if await self._retrieve("subscriptions", subscription_id) is None:
            return False
        await self.client.delete(
            collection_name=self._collection_name("subscriptions"),
            points_selector=models.PointIdsList(
                points=[self._point_id("subscriptions", subscription_id)],
            ),
        )
        return True

    @qdrant_retry
    async def record_outcome(self, outcome: DeliveryOutcome) -> None:
        """Count a terminal delivery toward its subscription's totals.

        Idempotent per delivery. Also advances ``last_triggered`` on the
        subscription record when it still exists.
        """
        await self._upsert("outcomes", outcome.delivery_id, outcome.model_dump(mode="json"))
        await self._touch_last_triggered(outcome.subscription_id, outcome.recorded_at)

    async def _touch_last_triggered(self, subscription_id: str, moment: datetime) -> None:
        await self.client.set_payload(
            collection_name=self._collection_name("subscriptions"),
            payload={"last_triggered": moment.isoformat()},
            points=self._subscription_selector(subscription_id),
        )

    def _subscription_selector(self, subscription_id: str) -> models.FilterSelector:
        # Filter selector, so a missing subscription is a no-op
        return models.FilterSelector(
            filter=models.Filter(
                must=[
                    models.HasIdCondition(
                        has_id=[self._point_id("subscriptions", subscription_id)]
                    )
                ]
            )
        )

    async def _delivery_counters(self, subscription_id: str) -> dict[str, int]:
        owned = match("subscription_id", subscription_id)
        total = await self._count("outcomes", models.Filter(must=[owned]))
        successful = 0
        if total:
            successful = await self._count(
                "outcomes", models.Filter(must=[owned, match("success", True)])
            )
        return {
            "total_deliveries": total,
            "successful_deliveries": successful,
            "failed_deliveries": total - successful,
        }
