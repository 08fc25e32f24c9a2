"""Delivery ledger storage operations.

Provides methods to save, read and scan deliveries, plus the
aggregations used for statistics and retention.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from hookline.storage.base import match, to_ts
from hookline.storage.retry import qdrant_retry

if TYPE_CHECKING:
    from hookline.models import Delivery, DeliveryStats


class DeliveryMixin:
    """Mixin providing delivery ledger operations for HooklineStorage.

    This mixin expects the following attributes/methods from the base class:
    - _upsert(kind, record_id, payload)
    - _retrieve(kind, record_id) -> dict | None
    - _scroll_all(kind, filter, with_payload) -> AsyncIterator[dict]
    - _scroll_ordered(kind, filter, order_key, limit, descending) -> list[dict]
    - _delete_where(kind, filter) -> int
    - _record_to_payload(record, **derived) -> dict
    - _payload_to_record(payload, record_class) -> RecordT
    """

    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _scroll_ordered: Any
    _delete_where: Any
    _record_to_payload: Any
    _payload_to_record: Any

    @qdrant_retry
    async def save_delivery(self, delivery: Delivery) -> str:
        """Insert or replace a delivery record.

        Returns:
            The delivery ID.
        """
        payload = self._record_to_payload(
            delivery,
            created_ts=to_ts(delivery.created_at),
            next_retry_ts=to_ts(delivery.next_retry_at),
        )
        await self._upsert("deliveries", delivery.id, payload)
        return delivery.id

    @qdrant_retry
    async def get_delivery(self, delivery_id: str) -> Delivery | None:
        """Get a delivery by ID."""
        from hookline.models import Delivery

        payload = await self._retrieve("deliveries", delivery_id)
        if payload is None:
            return None
        delivery: Delivery = self._payload_to_record(payload, Delivery)
        return delivery

    @qdrant_retry
    async def list_deliveries(
        self,
        subscription_id: str,
        limit: int = 50,
        since: datetime | None = None,
    ) -> list[Delivery]:
        """List a subscription's deliveries, newest first.

        Args:
            subscription_id: Owning subscription.
            limit: Maximum deliveries to return.
            since: Only deliveries created at or after this time.
        """
        from hookline.models import Delivery

        conditions: list[models.Condition] = [match("subscription_id", subscription_id)]
        if since is not None:
            conditions.append(
                models.FieldCondition(key="created_ts", range=models.Range(gte=to_ts(since)))
            )

        payloads = await self._scroll_ordered(
            "deliveries",
            models.Filter(must=conditions),
            order_key="created_ts",
            limit=limit,
            descending=True,
        )
        return [self._payload_to_record(payload, Delivery) for payload in payloads]

    @qdrant_retry
    async def get_due_retries(self, now: datetime, limit: int = 100) -> list[Delivery]:
        """Deliveries in ``retrying`` whose ``next_retry_at <= now``.

        Ordered oldest due first and capped at ``limit``.
        """
        from hookline.models import Delivery

        due_filter = models.Filter(
            must=[
                match("status", "retrying"),
                models.FieldCondition(key="next_retry_ts", range=models.Range(lte=to_ts(now))),
            ]
        )
        payloads = await self._scroll_ordered(
            "deliveries", due_filter, order_key="next_retry_ts", limit=limit
        )
        return [self._payload_to_record(payload, Delivery) for payload in payloads]

    @qdrant_retry
    async def delete_deliveries_for_subscription(self, subscription_id: str) -> int:
        """Delete a subscription's deliveries and outcome records.

        Returns:
            Number of deliveries deleted.
        """
        owned = models.Filter(must=[match("subscription_id", subscription_id)])
        deleted: int = await self._delete_where("deliveries", owned)
        await self._delete_where("outcomes", owned)
        return deleted

    @qdrant_retry
    async def purge_deliveries(self, created_before: datetime) -> int:
        """Delete terminal deliveries created before ``created_before``.

        Outcome records are kept, so subscription counters are unaffected.

        Returns:
            Number of deliveries deleted.
        """
        expired = models.Filter(
            must=[
                models.FieldCondition(
                    key="status", match=models.MatchAny(any=["success", "failed"])
                ),
                models.FieldCondition(
                    key="created_ts", range=models.Range(lt=to_ts(created_before))
                ),
            ]
        )
        purged: int = await self._delete_where("deliveries", expired)
        return purged

    @qdrant_retry
    async def get_delivery_stats(
        self,
        subscription_id: str,
        since: datetime,
        days: int,
    ) -> DeliveryStats:
        """Count and mean last-attempt response time per status.

        Only deliveries created at or after ``since`` are included.
        Statuses with no deliveries are omitted.
        """
        from hookline.models import DeliveryStats, StatusStats

        window = models.Filter(
            must=[
                match("subscription_id", subscription_id),
                models.FieldCondition(key="created_ts", range=models.Range(gte=to_ts(since))),
            ]
        )

        counts: dict[str, int] = defaultdict(int)
        response_times: dict[str, list[int]] = defaultdict(list)
        async for payload in self._scroll_all(
            "deliveries", window, with_payload=["status", "attempts"]
        ):
            status = payload["status"]
            counts[status] += 1
            attempts = payload.get("attempts") or []
            if attempts:
                response_times[status].append(attempts[-1].get("response_time", 0))

        by_status = [
            StatusStats(
                status=status,  # type: ignore[arg-type]
                count=count,
                avg_response_time=(
                    sum(response_times[status]) / len(response_times[status])
                    if response_times[status]
                    else None
                ),
            )
            for status, count in sorted(counts.items())
        ]
        return DeliveryStats(
            subscription_id=subscription_id,
            days=days,
            since=since,
            by_status=by_status,
        )
