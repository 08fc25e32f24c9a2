"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from qdrant_client import AsyncQdrantClient

# Add tests directory to path so factories can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from factories import INTERNAL_KEY, FakeSubscriber  # noqa: E402

from hookline.config import Settings  # noqa: E402
from hookline.storage import HooklineStorage  # noqa: E402
from hookline.webhooks import RetrySweeper, WebhookDispatcher, WebhookSender  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        env="test",
        collection_prefix="test",
        internal_api_key=INTERNAL_KEY,
        sweep_enabled=False,
    )


@pytest.fixture
async def storage():
    """In-memory storage using qdrant-client's local mode.

    No external Qdrant server is required.
    """
    store = HooklineStorage(prefix="test", client=AsyncQdrantClient(location=":memory:"))
    await store.initialize()

    yield store

    await store.close()


@pytest.fixture
def subscriber() -> FakeSubscriber:
    return FakeSubscriber()


@pytest.fixture
async def sender(storage: HooklineStorage, subscriber: FakeSubscriber):
    webhook_sender = WebhookSender(storage, transport=subscriber.transport)

    yield webhook_sender

    await webhook_sender.close()


@pytest.fixture
def dispatcher(storage: HooklineStorage, sender: WebhookSender) -> WebhookDispatcher:
    return WebhookDispatcher(storage, sender)


@pytest.fixture
def sweeper(storage: HooklineStorage, sender: WebhookSender) -> RetrySweeper:
    return RetrySweeper(storage, sender, batch_size=100, interval_seconds=0.01)
