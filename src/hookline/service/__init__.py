"""Hookline service layer.

Provides the high-level WebhookService for managing subscriptions,
triggering events and reading delivery history.

Example:
    ```python
    from hookline.service import WebhookService

    async with WebhookService.create() as hooks:
        await hooks.trigger("ticket.created", {"ticket_id": "t_123"})
        stats = await hooks.get_delivery_stats("sub_abc123", days=7)
    ```
"""

from .base import WebhookService
from .models import CreateSubscriptionResult, SubscriptionDetail

__all__ = [
    "CreateSubscriptionResult",
    "SubscriptionDetail",
    "WebhookService",
]
