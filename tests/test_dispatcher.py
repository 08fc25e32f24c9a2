"""Tests for event fan-out."""

from __future__ import annotations

from unittest.mock import AsyncMock

from hookline.models import RetryPolicy
from hookline.webhooks import WebhookDispatcher
from hookline.webhooks.signing import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_signature

from factories import make_subscription


class TestTrigger:
    async def test_one_delivery_per_matching_subscription(
        self, storage, dispatcher, subscriber
    ):
        first = make_subscription(name="first", secret="first-secret-0123456789")
        second = make_subscription(name="second", secret="second-secret-0123456789")
        await storage.save_subscription(first)
        await storage.save_subscription(second)

        delivery_ids = await dispatcher.trigger("ticket.created", {"ticket_id": "t_1"})

        assert len(delivery_ids) == 2
        assert len(subscriber.requests) == 2
        deliveries = [await storage.get_delivery(i) for i in delivery_ids]
        assert {d.subscription_id for d in deliveries} == {first.id, second.id}
        assert all(d.status == "success" for d in deliveries)

    async def test_shared_body_distinct_signatures(self, storage, dispatcher, subscriber):
        secrets = ["first-secret-0123456789", "second-secret-0123456789"]
        for secret in secrets:
            await storage.save_subscription(make_subscription(secret=secret))

        await dispatcher.trigger("ticket.created", {"ticket_id": "t_1"}, {"actor": "u_9"})

        first, second = subscriber.requests
        assert first.content == second.content
        assert first.headers[TIMESTAMP_HEADER] == second.headers[TIMESTAMP_HEADER]
        assert first.headers[SIGNATURE_HEADER] != second.headers[SIGNATURE_HEADER]
        for request in (first, second):
            signature = request.headers[SIGNATURE_HEADER]
            assert any(verify_signature(request.content, signature, s) for s in secrets)

    async def test_envelope(self, storage, dispatcher, subscriber):
        await storage.save_subscription(make_subscription())

        await dispatcher.trigger("ticket.created", {"ticket_id": "t_1"}, {"actor": "u_9"})

        body = subscriber.bodies[0]
        assert body["event"] == "ticket.created"
        assert body["data"] == {"ticket_id": "t_1"}
        assert body["metadata"] == {"actor": "u_9"}
        assert body["timestamp"].endswith("Z")

    async def test_inactive_and_unsubscribed_excluded(self, storage, dispatcher, subscriber):
        wanted = make_subscription()
        await storage.save_subscription(wanted)
        await storage.save_subscription(make_subscription(is_active=False))
        await storage.save_subscription(make_subscription(events=["ticket.closed"]))

        delivery_ids = await dispatcher.trigger("ticket.created", {})

        assert len(delivery_ids) == 1
        delivery = await storage.get_delivery(delivery_ids[0])
        assert delivery.subscription_id == wanted.id

    async def test_no_subscribers_returns_empty(self, dispatcher, subscriber):
        assert await dispatcher.trigger("ticket.created", {"ticket_id": "t_1"}) == []
        assert subscriber.requests == []

    async def test_failed_first_attempt_still_recorded(self, storage, dispatcher, subscriber):
        subscriber.always(500)
        subscription = make_subscription(retry_policy=RetryPolicy(max_retries=2))
        await storage.save_subscription(subscription)

        delivery_ids = await dispatcher.trigger("ticket.created", {})

        delivery = await storage.get_delivery(delivery_ids[0])
        assert delivery.status == "retrying"
        assert len(delivery.attempts) == 1

    async def test_one_bad_endpoint_does_not_block_others(self, storage, dispatcher, subscriber):
        subscriber.reply(500)
        await storage.save_subscription(make_subscription(name="a"))
        await storage.save_subscription(make_subscription(name="b"))

        delivery_ids = await dispatcher.trigger("ticket.created", {})

        statuses = sorted([(await storage.get_delivery(i)).status for i in delivery_ids])
        assert statuses == ["retrying", "success"]


class TestTriggerNeverRaises:
    async def test_registry_error_is_swallowed(self, sender):
        storage = AsyncMock()
        storage.get_subscriptions_for_event.side_effect = RuntimeError("qdrant down")
        dispatcher = WebhookDispatcher(storage, sender)

        assert await dispatcher.trigger("ticket.created", {}) == []

    async def test_failed_save_skips_that_delivery(self, storage, sender, subscriber):
        broken = AsyncMock()
        broken.get_subscriptions_for_event.return_value = [make_subscription()]
        broken.save_delivery.side_effect = RuntimeError("write failed")
        dispatcher = WebhookDispatcher(broken, sender)

        assert await dispatcher.trigger("ticket.created", {}) == []
        assert subscriber.requests == []

    async def test_attempt_error_keeps_delivery_id(self, storage, subscriber):
        await storage.save_subscription(make_subscription())
        sender = AsyncMock()
        sender.user_agent = "Hookline-Webhook/1.0"
        sender.attempt.side_effect = RuntimeError("boom")
        dispatcher = WebhookDispatcher(storage, sender)

        delivery_ids = await dispatcher.trigger("ticket.created", {})

        assert len(delivery_ids) == 1
        delivery = await storage.get_delivery(delivery_ids[0])
        assert delivery.status == "pending"
