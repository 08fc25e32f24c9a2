"""FastAPI router for Hookline API endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.security import HTTPAuthorizationCredentials

from hookline import __version__
from hookline.logging import get_logger
from hookline.models import Delivery, DeliveryStats, ProbeResult
from hookline.service import WebhookService

from .auth import check_internal_key, security
from .schemas import (
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    DeliveryListResponse,
    HealthResponse,
    RetryQueueResponse,
    SubscriptionDetailResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
    TriggerEventRequest,
    TriggerEventResponse,
    UpdateSubscriptionRequest,
)

logger = get_logger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]


async def require_internal_key(
    service: ServiceDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> None:
    """Dependency guarding machine-to-machine endpoints."""
    check_internal_key(service.settings.internal_api_key, credentials)


InternalAuth = Depends(require_internal_key)


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)
    return HealthResponse(
        status="healthy",
        version=__version__,
        storage_connected=True,
        sweeper_running=_service.sweeper.running,
    )


@router.get("/webhooks", response_model=SubscriptionListResponse, tags=["webhooks"])
async def list_webhooks(
    service: ServiceDep,
    active_only: bool = Query(default=False),
) -> SubscriptionListResponse:
    """List subscriptions, newest first. Secrets are never included."""
    subscriptions = await service.list_subscriptions(active_only=active_only)
    return SubscriptionListResponse(
        subscriptions=[SubscriptionResponse.from_subscription(s) for s in subscriptions],
        count=len(subscriptions),
    )


@router.post(
    "/webhooks",
    response_model=CreateSubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(
    request: CreateSubscriptionRequest,
    service: ServiceDep,
) -> CreateSubscriptionResponse:
    """Register a subscription.

    The response carries the signing secret and the result of a one-off
    connectivity probe. The secret is not returned by any other endpoint.
    """
    result = await service.create_subscription(
        name=request.name,
        url=str(request.url),
        events=request.events,
        headers=request.headers,
        retry_policy=request.retry_policy,
        timeout=request.timeout,
        is_active=request.is_active,
    )
    return CreateSubscriptionResponse(
        subscription=SubscriptionResponse.from_subscription(result.subscription),
        secret=result.secret,
        test_result=result.test_result,
    )


@router.post(
    "/webhooks/retry",
    response_model=RetryQueueResponse,
    tags=["internal"],
    dependencies=[InternalAuth],
)
async def process_retry_queue(
    service: ServiceDep,
    batch_size: int | None = Query(default=None, ge=1, le=10000),
) -> RetryQueueResponse:
    """Run one retry sweeper pass over due deliveries."""
    processed = await service.process_retry_queue(batch_size=batch_size)
    return RetryQueueResponse(processed=processed)


@router.get(
    "/webhooks/{subscription_id}",
    response_model=SubscriptionDetailResponse,
    tags=["webhooks"],
)
async def get_webhook(subscription_id: str, service: ServiceDep) -> SubscriptionDetailResponse:
    """Subscription detail with stats and its 10 most recent deliveries."""
    detail = await service.subscription_detail(subscription_id)
    return SubscriptionDetailResponse(
        subscription=SubscriptionResponse.from_subscription(detail.subscription),
        stats=detail.stats,
        recent_deliveries=detail.recent_deliveries,
    )


@router.patch(
    "/webhooks/{subscription_id}",
    response_model=SubscriptionResponse,
    tags=["webhooks"],
)
async def update_webhook(
    subscription_id: str,
    request: UpdateSubscriptionRequest,
    service: ServiceDep,
) -> SubscriptionResponse:
    """Partially update a subscription. The secret cannot be changed."""
    subscription = await service.update_subscription(subscription_id, **request.updates())
    return SubscriptionResponse.from_subscription(subscription)


@router.delete(
    "/webhooks/{subscription_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["webhooks"],
)
async def delete_webhook(subscription_id: str, service: ServiceDep) -> Response:
    """Delete a subscription and its whole delivery history."""
    await service.delete_subscription(subscription_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/webhooks/{subscription_id}/test",
    response_model=ProbeResult,
    tags=["webhooks"],
)
async def test_webhook(subscription_id: str, service: ServiceDep) -> ProbeResult:
    """Send one unrecorded probe request to the subscription's URL."""
    return await service.test_subscription(subscription_id)


@router.get(
    "/webhooks/{subscription_id}/deliveries",
    response_model=DeliveryListResponse,
    tags=["webhooks"],
)
async def list_webhook_deliveries(
    subscription_id: str,
    service: ServiceDep,
    limit: int = Query(default=50, ge=1, le=500),
) -> DeliveryListResponse:
    """A subscription's deliveries with attempt histories, newest first."""
    deliveries = await service.list_deliveries(subscription_id, limit=limit)
    return DeliveryListResponse(deliveries=deliveries, count=len(deliveries))


@router.get(
    "/webhooks/{subscription_id}/stats",
    response_model=DeliveryStats,
    tags=["webhooks"],
)
async def get_webhook_stats(
    subscription_id: str,
    service: ServiceDep,
    days: int | None = Query(default=None, ge=1, le=3650),
) -> DeliveryStats:
    """Delivery count and mean response time per status over a trailing window."""
    return await service.get_delivery_stats(subscription_id, days=days)


@router.get("/deliveries/{delivery_id}", response_model=Delivery, tags=["webhooks"])
async def get_delivery(delivery_id: str, service: ServiceDep) -> Delivery:
    """One delivery with its full attempt history."""
    return await service.get_delivery(delivery_id)


@router.post(
    "/events",
    response_model=TriggerEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["internal"],
    dependencies=[InternalAuth],
)
async def trigger_event(
    request: TriggerEventRequest,
    service: ServiceDep,
) -> TriggerEventResponse:
    """Fan an event out to its subscribers.

    Delivery failures never surface here; they are recorded in the ledger.
    """
    delivery_ids = await service.trigger(request.event, request.data, request.metadata)
    logger.info("Event accepted", event_type=request.event, deliveries=len(delivery_ids))
    return TriggerEventResponse(delivery_ids=delivery_ids, count=len(delivery_ids))
