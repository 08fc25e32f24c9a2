"""Base storage class and helpers.

Holds the Qdrant client lifecycle, collection bootstrap and the
record <-> payload conversions shared by the storage mixins.
"""

from __future__ import annotations

import hashlib
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from hookline.config import settings
from hookline.exceptions import StorageError

RecordT = TypeVar("RecordT", bound=BaseModel)

# Logical collection -> collection suffix
COLLECTION_NAMES = {
    "subscriptions": "subscriptions",
    "deliveries": "deliveries",
    "outcomes": "delivery_outcomes",
}

# Payload fields that get an index, per logical collection
PAYLOAD_INDEXES: dict[str, dict[str, models.PayloadSchemaType]] = {
    "subscriptions": {
        "is_active": models.PayloadSchemaType.BOOL,
        "events": models.PayloadSchemaType.KEYWORD,
        "created_ts": models.PayloadSchemaType.FLOAT,
    },
    "deliveries": {
        "subscription_id": models.PayloadSchemaType.KEYWORD,
        "status": models.PayloadSchemaType.KEYWORD,
        "next_retry_ts": models.PayloadSchemaType.FLOAT,
        "created_ts": models.PayloadSchemaType.FLOAT,
    },
    "outcomes": {
        "subscription_id": models.PayloadSchemaType.KEYWORD,
        "success": models.PayloadSchemaType.BOOL,
    },
}

# Records are looked up by id or payload filter only, never by similarity.
PLACEHOLDER_VECTOR = [0.0]

# Derived payload fields used for range filters; stripped before validation
DERIVED_FIELDS = ("created_ts", "next_retry_ts")


def to_ts(value: datetime | None) -> float | None:
    """Datetime as a POSIX timestamp, for range filters."""
    return value.timestamp() if value is not None else None


class StorageBase:
    """Base class for Hookline storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Key building and point ID conversion
    - Payload serialization/deserialization
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        scroll_limit: int | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            scroll_limit: Page size for scans. Defaults to settings.storage_max_scroll_limit.
            client: Pre-built client (e.g. ``AsyncQdrantClient(location=":memory:")``).
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._scroll_limit = scroll_limit or settings.storage_max_scroll_limit
        self._client: AsyncQdrantClient | None = client
        self._collections_initialized = False

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise StorageError("Storage not initialized. Call initialize() first.")
        return self._client

    @property
    def is_initialized(self) -> bool:
        return self._collections_initialized

    async def initialize(self) -> None:
        """Connect (unless a client was injected) and ensure collections exist."""
        if self._client is None:
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        await self._ensure_collections()
        self._collections_initialized = True

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    def _collection_name(self, kind: str) -> str:
        """Get full collection name with prefix."""
        suffix = COLLECTION_NAMES.get(kind, kind)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _build_key(kind: str, record_id: str) -> str:
        """Storage key for a record: ``{kind}/{record_id}``."""
        return f"{kind}/{record_id}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a storage key to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers, so the
        key is hashed into a deterministic UUID-format string.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    def _point_id(self, kind: str, record_id: str) -> str:
        return self._key_to_point_id(self._build_key(kind, record_id))

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist with their payload indexes."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            collection_name = self._collection_name(kind)
            if collection_name in existing:
                continue
            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            for field_name, schema in PAYLOAD_INDEXES[kind].items():
                await self.client.create_payload_index(
                    collection_name=collection_name,
                    field_name=field_name,
                    field_schema=schema,
                )

    async def _upsert(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._point_id(kind, record_id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=payload,
                )
            ],
        )

    async def _retrieve(self, kind: str, record_id: str) -> dict[str, Any] | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._point_id(kind, record_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return dict(results[0].payload)

    async def _scroll_all(
        self,
        kind: str,
        scroll_filter: models.Filter | None = None,
        with_payload: bool | list[str] = True,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield every matching payload, one page at a time."""
        offset: Any = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self._collection_name(kind),
                scroll_filter=scroll_filter,
                limit=self._scroll_limit,
                offset=offset,
                with_payload=with_payload,
                with_vectors=False,
            )
            for point in points:
                if point.payload is not None:
                    yield dict(point.payload)
            if offset is None:
                break

    async def _scroll_ordered(
        self,
        kind: str,
        scroll_filter: models.Filter,
        order_key: str,
        limit: int,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """Return up to ``limit`` matching payloads ordered by an indexed float field."""
        points, _ = await self.client.scroll(
            collection_name=self._collection_name(kind),
            scroll_filter=scroll_filter,
            limit=limit,
            order_by=models.OrderBy(
                key=order_key,
                direction=models.Direction.DESC if descending else models.Direction.ASC,
            ),
            with_payload=True,
            with_vectors=False,
        )
        return [dict(point.payload) for point in points if point.payload is not None]

    async def _count(self, kind: str, count_filter: models.Filter | None = None) -> int:
        result = await self.client.count(
            collection_name=self._collection_name(kind),
            count_filter=count_filter,
            exact=True,
        )
        return int(result.count)

    async def _delete_where(self, kind: str, selector: models.Filter) -> int:
        """Delete every point matching ``selector``; returns how many matched."""
        matched = await self._count(kind, selector)
        if matched:
            await self.client.delete(
                collection_name=self._collection_name(kind),
                points_selector=models.FilterSelector(filter=selector),
            )
        return matched

    @staticmethod
    def _record_to_payload(record: BaseModel, **derived: Any) -> dict[str, Any]:
        """Convert a model to a Qdrant payload, adding derived filter fields.

        Derived fields that are None are left out so range filters never
        see them.
        """
        data = record.model_dump(mode="json")
        data.update({key: value for key, value in derived.items() if value is not None})
        return data

    @staticmethod
    def _payload_to_record(payload: dict[str, Any], record_class: type[RecordT]) -> RecordT:
        """Convert Qdrant payload back to a model."""
        for field_name in DERIVED_FIELDS:
            payload.pop(field_name, None)
        return record_class.model_validate(payload)


def match(key: str, value: Any) -> models.FieldCondition:
    """Exact-match condition on a payload field."""
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))
