"""Storage backends for Hookline.

Subscriptions, deliveries and delivery outcomes are persisted as
payload-only records in Qdrant.

Example:
    ```python
    from hookline.storage import HooklineStorage

    async with HooklineStorage() as storage:
        await storage.save_delivery(delivery)
    ```
"""

from .base import COLLECTION_NAMES
from .client import HooklineStorage
from .retry import qdrant_retry

__all__ = [
    "COLLECTION_NAMES",
    "HooklineStorage",
    "qdrant_retry",
]
