"""Outbound webhook delivery engine.

Provides HMAC-signed event fan-out, single-attempt sending with
backoff-scheduled retries, and the sweeper that re-drives them.

Example:
    ```python
    from hookline.webhooks import RetrySweeper, WebhookDispatcher, WebhookSender

    sender = WebhookSender(storage)
    dispatcher = WebhookDispatcher(storage, sender)
    await dispatcher.trigger("ticket.created", {"ticket_id": "t_123"})

    sweeper = RetrySweeper(storage, sender)
    await sweeper.sweep()
    ```
"""

from .dispatcher import WebhookDispatcher
from .sender import HttpResult, WebhookSender
from .signing import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    build_headers,
    compute_signature,
    serialize_payload,
    sign,
    verify_signature,
)
from .sweeper import RetrySweeper

__all__ = [
    "EVENT_HEADER",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "HttpResult",
    "RetrySweeper",
    "WebhookDispatcher",
    "WebhookSender",
    "build_headers",
    "compute_signature",
    "serialize_payload",
    "sign",
    "verify_signature",
]
