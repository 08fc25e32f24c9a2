"""Tests for the retry sweeper."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

from hookline.models import Delivery, utcnow
from hookline.webhooks import RetrySweeper

from factories import make_subscription


def retrying_delivery(subscription_id: str, due_in: timedelta, **overrides) -> Delivery:
    fields = {
        "subscription_id": subscription_id,
        "event": "ticket.created",
        "payload": {"event": "ticket.created", "timestamp": "2024-01-01T00:00:00.000Z", "data": {}},
        "url": "https://hooks.example.com/receive",
        "status": "retrying",
        "next_retry_at": utcnow() + due_in,
    }
    fields.update(overrides)
    return Delivery(**fields)


class TestSweep:
    async def test_attempts_only_due_deliveries(self, storage, sweeper, subscriber):
        subscription = make_subscription()
        await storage.save_subscription(subscription)
        due = retrying_delivery(subscription.id, timedelta(seconds=-5))
        later = retrying_delivery(subscription.id, timedelta(minutes=5))
        await storage.save_delivery(due)
        await storage.save_delivery(later)

        attempted = await sweeper.sweep()

        assert attempted == 1
        assert len(subscriber.requests) == 1
        assert (await storage.get_delivery(due.id)).status == "success"
        assert (await storage.get_delivery(later.id)).status == "retrying"

    async def test_nothing_due(self, sweeper, subscriber):
        assert await sweeper.sweep() == 0
        assert subscriber.requests == []

    async def test_batch_size_caps_pass(self, storage, sweeper, subscriber):
        subscription = make_subscription()
        await storage.save_subscription(subscription)
        for i in range(5):
            await storage.save_delivery(
                retrying_delivery(subscription.id, timedelta(seconds=-10 + i))
            )

        assert await sweeper.sweep(batch_size=2) == 2
        assert len(subscriber.requests) == 2
        assert await sweeper.sweep() == 3

    async def test_explicit_now(self, storage, sweeper, subscriber):
        subscription = make_subscription()
        await storage.save_subscription(subscription)
        await storage.save_delivery(retrying_delivery(subscription.id, timedelta(minutes=5)))

        assert await sweeper.sweep(now=utcnow() + timedelta(minutes=10)) == 1

    async def test_retry_keeps_attempt_numbering(self, storage, sweeper, subscriber):
        subscription = make_subscription()
        await storage.save_subscription(subscription)
        subscriber.always(500)
        delivery = retrying_delivery(subscription.id, timedelta(seconds=-1))
        await storage.save_delivery(delivery)

        await sweeper.sweep()

        stored = await storage.get_delivery(delivery.id)
        assert [a.attempt_number for a in stored.attempts] == [1]
        assert stored.status == "retrying"

    async def test_retry_to_deleted_subscription_fails(self, storage, sweeper, subscriber):
        delivery = retrying_delivery("sub_deleted", timedelta(seconds=-1))
        await storage.save_delivery(delivery)

        assert await sweeper.sweep() == 1

        stored = await storage.get_delivery(delivery.id)
        assert stored.status == "failed"
        assert stored.error_message == "Subscription not found"
        assert subscriber.requests == []

    async def test_storage_error_is_swallowed(self, sender):
        storage = AsyncMock()
        storage.get_due_retries.side_effect = RuntimeError("qdrant down")
        sweeper = RetrySweeper(storage, sender)

        assert await sweeper.sweep() == 0

    async def test_attempt_error_not_counted(self, storage):
        subscription = make_subscription()
        await storage.save_subscription(subscription)
        await storage.save_delivery(retrying_delivery(subscription.id, timedelta(seconds=-1)))
        sender = AsyncMock()
        sender.attempt.side_effect = RuntimeError("boom")

        assert await RetrySweeper(storage, sender).sweep() == 0


class TestPurge:
    async def test_purges_terminal_beyond_retention(self, storage, sweeper):
        now = utcnow()
        old = retrying_delivery(
            "sub_1",
            timedelta(0),
            status="success",
            next_retry_at=None,
            created_at=now - timedelta(days=31),
        )
        recent = retrying_delivery(
            "sub_1", timedelta(0), status="failed", next_retry_at=None, created_at=now
        )
        await storage.save_delivery(old)
        await storage.save_delivery(recent)

        assert await sweeper.purge_expired(now) == 1
        assert await storage.get_delivery(old.id) is None
        assert await storage.get_delivery(recent.id) is not None

    async def test_purge_interval(self, sweeper):
        now = utcnow()
        assert sweeper._purge_due(now)
        await sweeper.purge_expired(now)
        assert not sweeper._purge_due(now + timedelta(minutes=1))
        assert sweeper._purge_due(now + timedelta(hours=1))


class TestBackgroundLoop:
    async def test_start_and_stop(self, sweeper):
        await sweeper.start()
        assert sweeper.running
        await sweeper.stop()
        assert not sweeper.running

    async def test_start_is_idempotent(self, sweeper):
        await sweeper.start()
        task = sweeper._task
        await sweeper.start()
        assert sweeper._task is task
        await sweeper.stop()

    async def test_stop_without_start(self, sweeper):
        await sweeper.stop()
        assert not sweeper.running

    async def test_loop_drives_due_retries(self, storage, sweeper, subscriber):
        subscription = make_subscription()
        await storage.save_subscription(subscription)
        delivery = retrying_delivery(subscription.id, timedelta(seconds=-1))
        await storage.save_delivery(delivery)

        await sweeper.start()
        try:
            for _ in range(200):
                stored = await storage.get_delivery(delivery.id)
                if stored.status == "success":
                    break
                await asyncio.sleep(0.01)
        finally:
            await sweeper.stop()

        assert stored.status == "success"
        assert len(subscriber.requests) == 1
