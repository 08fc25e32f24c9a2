"""Single-attempt webhook sender.

``WebhookSender.attempt`` performs exactly one HTTP POST for a delivery,
appends the attempt to its history, moves the delivery through its state
machine and persists it. It never retries internally: a retryable failure
only schedules ``next_retry_at`` and the retry sweeper picks it up later.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from hookline.logging import delivery_context, get_logger
from hookline.models import (
    Delivery,
    DeliveryAttempt,
    DeliveryOutcome,
    ProbeResult,
    Subscription,
    WebhookPayload,
    utcnow,
)

from .signing import (
    SIGNATURE_HEADER,
    build_headers,
    compute_signature,
    overrides_header,
    serialize_payload,
)

if TYPE_CHECKING:
    from hookline.storage import HooklineStorage

logger = get_logger(__name__)

SUBSCRIPTION_NOT_FOUND = "Subscription not found"
PROBE_EVENT_HEADER = "test"
PROBE_DATA = {"test": True, "message": "This is a test webhook delivery"}


@dataclass
class HttpResult:
    """Outcome of one HTTP POST.

    Exactly one of ``status_code`` and ``error`` describes what happened:
    a response arrived, or the transport failed before one did.
    """

    elapsed_ms: int
    status_code: int | None = None
    reason: str = ""
    headers: dict[str, str] | None = None
    body: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    @property
    def error_message(self) -> str | None:
        """Failure text recorded on the attempt; None on success."""
        if self.ok:
            return None
        if self.status_code is not None:
            return f"HTTP {self.status_code}: {self.reason}"
        return self.error or "Request failed"


class WebhookSender:
    """Performs HTTP attempts for deliveries and connectivity probes.

    Concurrent attempts are bounded by a semaphore. A delivery that is
    already being attempted in this process is skipped, so the first
    attempt made by the dispatcher and a sweeper pass never overlap on
    the same delivery.

    Example:
        ```python
        sender = WebhookSender(storage)
        delivery = await sender.attempt(delivery)
        print(delivery.status, len(delivery.attempts))
        await sender.close()
        ```
    """

    def __init__(
        self,
        storage: HooklineStorage,
        user_agent: str = "Hookline-Webhook/1.0",
        max_concurrent: int = 10,
        response_body_max_chars: int = 10_000,
        probe_event: str = "ticket.created",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the sender.

        Args:
            storage: Storage for subscriptions and the delivery ledger.
            user_agent: User-Agent header sent with every request.
            max_concurrent: Maximum HTTP attempts in flight at once.
            response_body_max_chars: Stored response bodies are cut to this length.
            probe_event: Event type carried by connectivity probe payloads.
            transport: Optional httpx transport (e.g. ``httpx.MockTransport`` in tests).
        """
        self._storage = storage
        self._user_agent = user_agent
        self._body_limit = response_body_max_chars
        self._probe_event = probe_event
        self._transport = transport
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._in_flight: set[str] = set()
        self._client: httpx.AsyncClient | None = None

    @property
    def user_agent(self) -> str:
        return self._user_agent

    def is_in_flight(self, delivery_id: str) -> bool:
        return delivery_id in self._in_flight

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, follow_redirects=False)
        return self._client

    async def close(self) -> None:
        """Close the pooled HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def attempt(self, delivery: Delivery) -> Delivery:
        """Make one HTTP attempt for ``delivery`` and persist the result.

        Terminal deliveries, and deliveries already being attempted in
        this process, are returned unchanged.

        Returns:
            The delivery in its new state.
        """
        if delivery.is_terminal:
            logger.debug(
                "Delivery already terminal", delivery_id=delivery.id, status=delivery.status
            )
            return delivery
        if delivery.id in self._in_flight:
            logger.debug("Delivery attempt already in flight", delivery_id=delivery.id)
            return delivery

        self._in_flight.add(delivery.id)
        try:
            with delivery_context(delivery.id, delivery.subscription_id):
                return await self._attempt(delivery)
        finally:
            self._in_flight.discard(delivery.id)

    async def _attempt(self, delivery: Delivery) -> Delivery:
        attempt_number = delivery.next_attempt_number
        started_at = utcnow()

        subscription = await self._storage.get_subscription(delivery.subscription_id)
        if subscription is None:
            # Nothing left to consult or count against
            delivery.record_attempt(
                DeliveryAttempt(
                    attempt_number=attempt_number,
                    timestamp=started_at,
                    error_message=SUBSCRIPTION_NOT_FOUND,
                )
            )
            delivery.mark_failed(SUBSCRIPTION_NOT_FOUND)
            await self._storage.save_delivery(delivery)
            logger.warning("Subscription vanished; delivery failed", attempt=attempt_number)
            return delivery

        body = serialize_payload(delivery.payload)
        headers = self._request_headers(delivery, subscription, body)
        result = await self._post(delivery.url, body, headers, subscription.timeout)

        delivery.record_attempt(
            DeliveryAttempt(
                attempt_number=attempt_number,
                timestamp=started_at,
                response_status=result.status_code,
                response_time=result.elapsed_ms,
                error_message=result.error_message,
            )
        )
        delivery.record_response(result.status_code, result.headers, result.body)

        policy = subscription.retry_policy
        if result.ok:
            delivery.mark_success()
            logger.info(
                "Webhook delivered",
                event_type=delivery.event,
                attempt=attempt_number,
                status_code=result.status_code,
                response_time_ms=result.elapsed_ms,
            )
        elif policy.should_retry(attempt_number):
            next_retry_at = utcnow() + policy.delay_after(attempt_number)
            delivery.mark_retrying(next_retry_at, result.error_message or "")
            logger.warning(
                "Webhook attempt failed; retry scheduled",
                event_type=delivery.event,
                attempt=attempt_number,
                error=result.error_message,
                next_retry_at=next_retry_at.isoformat(),
            )
        else:
            delivery.mark_failed(result.error_message or "")
            logger.warning(
                "Webhook delivery failed; retries exhausted",
                event_type=delivery.event,
                attempt=attempt_number,
                error=result.error_message,
            )

        await self._storage.save_delivery(delivery)
        if delivery.is_terminal:
            await self._storage.record_outcome(
                DeliveryOutcome(
                    delivery_id=delivery.id,
                    subscription_id=subscription.id,
                    success=delivery.status == "success",
                )
            )
        return delivery

    def _request_headers(
        self, delivery: Delivery, subscription: Subscription, body: bytes
    ) -> dict[str, str]:
        headers = dict(delivery.headers)
        if not overrides_header(subscription.headers, SIGNATURE_HEADER):
            headers[SIGNATURE_HEADER] = compute_signature(
                body, subscription.secret.get_secret_value()
            )
        return headers

    async def _post(
        self,
        url: str,
        body: bytes,
        headers: dict[str, str],
        timeout_ms: int,
    ) -> HttpResult:
        """POST ``body`` under a hard timeout; never raises for transport or request errors."""
        timeout_s = timeout_ms / 1000
        async with self._semaphore:
            start = time.perf_counter()
            try:
                response = await asyncio.wait_for(
                    self._http().post(url, content=body, headers=headers, timeout=timeout_s),
                    timeout=timeout_s,
                )
            except (TimeoutError, httpx.TimeoutException):
                return HttpResult(
                    elapsed_ms=_elapsed_ms(start),
                    error=f"Request timed out after {timeout_ms}ms",
                )
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                return HttpResult(
                    elapsed_ms=_elapsed_ms(start),
                    error=str(e) or type(e).__name__,
                )
            except ValueError as e:
                # Raised while building the request, e.g. a header httpx cannot encode
                return HttpResult(
                    elapsed_ms=_elapsed_ms(start),
                    error=f"Invalid request: {e}",
                )

        return HttpResult(
            elapsed_ms=_elapsed_ms(start),
            status_code=response.status_code,
            reason=response.reason_phrase,
            headers=dict(response.headers),
            body=response.text[: self._body_limit],
        )

    async def probe(self, subscription: Subscription) -> ProbeResult:
        """Send one synthetic, unrecorded POST to check connectivity.

        Touches neither the delivery ledger nor the subscription counters.
        """
        payload = WebhookPayload.build(self._probe_event, dict(PROBE_DATA))
        body = serialize_payload(payload.to_document())
        headers = build_headers(
            body,
            secret=subscription.secret.get_secret_value(),
            event=PROBE_EVENT_HEADER,
            timestamp=payload.timestamp,
            user_agent=self._user_agent,
            custom_headers=subscription.headers,
        )
        result = await self._post(str(subscription.url), body, headers, subscription.timeout)

        if result.ok:
            message = f"Test successful ({result.status_code})"
        else:
            message = result.error_message or "Request failed"
        logger.info(
            "Connectivity probe finished",
            subscription_id=subscription.id,
            success=result.ok,
            status_code=result.status_code,
            response_time_ms=result.elapsed_ms,
        )
        return ProbeResult(success=result.ok, message=message, response_time_ms=result.elapsed_ms)


def _elapsed_ms(start: float) -> int:
    return max(int((time.perf_counter() - start) * 1000), 0)
