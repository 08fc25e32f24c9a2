"""Event fan-out to subscribed webhooks.

``WebhookDispatcher.trigger`` is the entry point business code calls
when something happens. It is fire-and-forget: every failure is logged
and recorded in the delivery ledger, and nothing is raised back to the
caller.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from hookline.logging import get_logger
from hookline.models import Delivery, Subscription, WebhookPayload

from .signing import build_headers, serialize_payload

if TYPE_CHECKING:
    from hookline.storage import HooklineStorage

    from .sender import WebhookSender

logger = get_logger(__name__)


class WebhookDispatcher:
    """Creates one delivery per matching subscription and sends it.

    Example:
        ```python
        dispatcher = WebhookDispatcher(storage, sender)
        delivery_ids = await dispatcher.trigger(
            "ticket.created",
            {"ticket_id": "t_123", "priority": "high"},
        )
        ```
    """

    def __init__(self, storage: HooklineStorage, sender: WebhookSender) -> None:
        self._storage = storage
        self._sender = sender

    async def trigger(
        self,
        event_type: str,
        data: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[str]:
        """Fan an event out to every active subscription that wants it.

        The envelope is built once and shared byte-for-byte by every
        delivery; only the signatures differ. Each delivery gets its first
        attempt immediately, concurrently with the others.

        Args:
            event_type: Event type, e.g. "ticket.created".
            data: Event data.
            metadata: Optional metadata included in the envelope.

        Returns:
            IDs of the deliveries created (empty when nothing matched or
            the registry could not be read). Never raises.
        """
        try:
            return await self._trigger(event_type, data or {}, metadata)
        except Exception:
            logger.exception("Event trigger failed", event_type=event_type)
            return []

    async def _trigger(
        self,
        event_type: str,
        data: dict[str, Any],
        metadata: dict[str, Any] | None,
    ) -> list[str]:
        subscriptions = await self._storage.get_subscriptions_for_event(event_type)
        if not subscriptions:
            logger.debug("No subscriptions for event", event_type=event_type)
            return []

        payload = WebhookPayload.build(event_type, data, metadata)
        document = payload.to_document()
        body = serialize_payload(document)

        created = await asyncio.gather(
            *(self._create_delivery(sub, payload, document, body) for sub in subscriptions),
            return_exceptions=True,
        )
        deliveries: list[Delivery] = []
        for subscription, result in zip(subscriptions, created, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to create delivery",
                    subscription_id=subscription.id,
                    event_type=event_type,
                    exc_info=result,
                )
            else:
                deliveries.append(result)

        attempted = await asyncio.gather(
            *(self._sender.attempt(delivery) for delivery in deliveries),
            return_exceptions=True,
        )
        for delivery, outcome in zip(deliveries, attempted, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(
                    "First delivery attempt errored",
                    delivery_id=delivery.id,
                    subscription_id=delivery.subscription_id,
                    exc_info=outcome,
                )

        logger.info(
            "Event dispatched",
            event_type=event_type,
            subscriptions=len(subscriptions),
            deliveries=len(deliveries),
        )
        return [delivery.id for delivery in deliveries]

    async def _create_delivery(
        self,
        subscription: Subscription,
        payload: WebhookPayload,
        document: dict[str, Any],
        body: bytes,
    ) -> Delivery:
        headers = build_headers(
            body,
            secret=subscription.secret.get_secret_value(),
            event=payload.event,
            timestamp=payload.timestamp,
            user_agent=self._sender.user_agent,
            custom_headers=subscription.headers,
        )
        delivery = Delivery(
            subscription_id=subscription.id,
            event=payload.event,
            payload=document,
            url=str(subscription.url),
            headers=headers,
        )
        await self._storage.save_delivery(delivery)
        return delivery
