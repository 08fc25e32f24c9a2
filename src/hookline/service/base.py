"""Core Hookline service layer.

This module provides the WebhookService that wires storage, the sender,
the dispatcher and the retry sweeper behind one administrative interface.

Example:
    ```python
    from hookline.service import WebhookService

    async with WebhookService.create() as hooks:
        created = await hooks.create_subscription(
            name="CRM sync",
            url="https://crm.example.com/hooks",
            events=["ticket.created"],
        )
        print(f"Store this secret now: {created.secret}")

        await hooks.trigger("ticket.created", {"ticket_id": "t_123"})
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from qdrant_client import AsyncQdrantClient

from hookline.config import Settings
from hookline.logging import get_logger
from hookline.storage import HooklineStorage
from hookline.webhooks import RetrySweeper, WebhookDispatcher, WebhookSender

from .deliveries import DeliveryOpsMixin
from .subscriptions import SubscriptionOpsMixin

logger = get_logger(__name__)


@dataclass
class WebhookService(SubscriptionOpsMixin, DeliveryOpsMixin):
    """High-level webhook service.

    This service provides:
    - Subscription management: create, read, update, delete, probe
    - trigger(): fan an event out to subscribers (never raises)
    - Delivery history and statistics reads
    - process_retry_queue(): one retry sweeper pass
    - start_background()/stop_background(): the periodic sweeper loop

    Uses dependency injection for every collaborator, making it easy to
    test and configure.

    Attributes:
        storage: Qdrant-backed subscription registry and delivery ledger.
        sender: Performs single HTTP attempts.
        dispatcher: Fan-out entry point.
        sweeper: Re-drives due retries.
        settings: Configuration settings.
    """

    storage: HooklineStorage
    sender: WebhookSender
    dispatcher: WebhookDispatcher
    sweeper: RetrySweeper
    settings: Settings

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        qdrant_client: AsyncQdrantClient | None = None,
    ) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            transport: Optional httpx transport for outbound requests.
            qdrant_client: Optional pre-built Qdrant client.

        Example:
            ```python
            # In-memory storage, e.g. for local experiments
            service = WebhookService.create(
                qdrant_client=AsyncQdrantClient(location=":memory:"),
            )
            ```
        """
        if settings is None:
            settings = Settings()

        storage = HooklineStorage(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
            scroll_limit=settings.storage_max_scroll_limit,
            client=qdrant_client,
        )
        sender = WebhookSender(
            storage,
            user_agent=settings.user_agent,
            max_concurrent=settings.max_concurrent_deliveries,
            response_body_max_chars=settings.response_body_max_chars,
            probe_event=settings.probe_event,
            transport=transport,
        )
        return cls(
            storage=storage,
            sender=sender,
            dispatcher=WebhookDispatcher(storage, sender),
            sweeper=RetrySweeper(
                storage,
                sender,
                batch_size=settings.sweep_batch_size,
                interval_seconds=settings.sweep_interval_seconds,
                retention_days=settings.delivery_retention_days,
                purge_interval_seconds=settings.purge_interval_seconds,
            ),
            settings=settings,
        )

    async def initialize(self) -> None:
        """Initialize the service (storage collections, etc.)."""
        await self.storage.initialize()

    async def close(self) -> None:
        """Stop the sweeper loop and release HTTP and storage clients."""
        await self.stop_background()
        await self.sender.close()
        await self.storage.close()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def start_background(self) -> None:
        """Run the retry sweeper loop in the background."""
        await self.sweeper.start()

    async def stop_background(self) -> None:
        """Stop the retry sweeper loop if it is running."""
        await self.sweeper.stop()
