"""Qdrant storage client for Hookline.

This module provides the main HooklineStorage class that combines
all storage operations through mixins.

Example:
    ```python
    from hookline.storage import HooklineStorage

    async with HooklineStorage() as storage:
        await storage.save_subscription(subscription)
        deliveries = await storage.list_deliveries(subscription.id, limit=10)
    ```
"""

from __future__ import annotations

from typing import Any

from .base import COLLECTION_NAMES, StorageBase
from .deliveries import DeliveryMixin
from .subscriptions import SubscriptionMixin


class HooklineStorage(SubscriptionMixin, DeliveryMixin, StorageBase):
    """Async Qdrant storage for subscriptions and the delivery ledger.

    This class combines functionality from multiple mixins:
    - SubscriptionMixin: save/get/list subscriptions, outcome counters
    - DeliveryMixin: save/get/list deliveries, due retries, stats, purge

    Example:
        ```python
        storage = HooklineStorage(client=AsyncQdrantClient(location=":memory:"))
        await storage.initialize()
        due = await storage.get_due_retries(utcnow(), limit=100)
        ```
    """

    async def __aenter__(self) -> HooklineStorage:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def delete_subscription(self, subscription_id: str) -> bool:
        """Delete a subscription along with its deliveries and outcome records.

        Returns:
            True if the subscription existed.
        """
        existed = await self.delete_subscription_record(subscription_id)
        if existed:
            await self.delete_deliveries_for_subscription(subscription_id)
        return existed


__all__ = ["COLLECTION_NAMES", "HooklineStorage"]
