"""Event triggering and delivery history operations for WebhookService."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any

from hookline.exceptions import NotFoundError, ValidationError
from hookline.models import Delivery, DeliveryStats, utcnow
from hookline.webhooks import signing

if TYPE_CHECKING:
    from hookline.config import Settings
    from hookline.storage import HooklineStorage
    from hookline.webhooks import RetrySweeper, WebhookDispatcher

MAX_DELIVERY_PAGE = 500


class DeliveryOpsMixin:
    """Mixin providing triggering and ledger reads for WebhookService.

    This mixin expects the following attributes from the service:
    - storage: HooklineStorage
    - dispatcher: WebhookDispatcher
    - sweeper: RetrySweeper
    - settings: Settings
    - get_subscription(subscription_id) -> Subscription
    """

    storage: HooklineStorage
    dispatcher: WebhookDispatcher
    sweeper: RetrySweeper
    settings: Settings
    get_subscription: Any

    async def trigger(
        self,
        event_type: str,
        data: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[str]:
        """Fan an event out to subscribers. Never raises.

        Returns:
            IDs of the deliveries created.
        """
        return await self.dispatcher.trigger(event_type, data, metadata)

    @staticmethod
    def verify_signature(raw_body: bytes | str, signature: str, secret: str) -> bool:
        """Constant-time check of a signature over the raw body received."""
        return signing.verify_signature(raw_body, signature, secret)

    async def list_deliveries(self, subscription_id: str, limit: int = 50) -> list[Delivery]:
        """A subscription's deliveries, newest first.

        Raises:
            NotFoundError: If no such subscription exists.
            ValidationError: If limit is out of range.
        """
        if not 1 <= limit <= MAX_DELIVERY_PAGE:
            raise ValidationError("limit", f"must be between 1 and {MAX_DELIVERY_PAGE}")
        await self.get_subscription(subscription_id)
        deliveries: list[Delivery] = await self.storage.list_deliveries(
            subscription_id, limit=limit
        )
        return deliveries

    async def get_delivery(self, delivery_id: str) -> Delivery:
        """Get a delivery with its attempt history.

        Raises:
            NotFoundError: If no such delivery exists.
        """
        delivery = await self.storage.get_delivery(delivery_id)
        if delivery is None:
            raise NotFoundError("delivery", delivery_id)
        return delivery

    async def get_delivery_stats(
        self, subscription_id: str, days: int | None = None
    ) -> DeliveryStats:
        """Count and mean response time per status over the last ``days``.

        Args:
            subscription_id: Subscription to aggregate.
            days: Trailing window. Defaults to settings.stats_window_days.

        Raises:
            NotFoundError: If no such subscription exists.
            ValidationError: If days is below 1.
        """
        window = days if days is not None else self.settings.stats_window_days
        if window < 1:
            raise ValidationError("days", "must be at least 1")
        await self.get_subscription(subscription_id)
        since = utcnow() - timedelta(days=window)
        stats: DeliveryStats = await self.storage.get_delivery_stats(
            subscription_id, since=since, days=window
        )
        return stats

    async def process_retry_queue(self, batch_size: int | None = None) -> int:
        """Run one retry sweeper pass.

        Returns:
            Number of deliveries attempted.
        """
        return await self.sweeper.sweep(batch_size=batch_size)
