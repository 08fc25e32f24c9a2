"""Unit tests for Hookline data models."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from hookline.exceptions import DeliveryStateError
from hookline.models import (
    MAX_RETRY_DELAY_MS,
    Delivery,
    DeliveryAttempt,
    DeliveryStats,
    RetryPolicy,
    StatusStats,
    Subscription,
    WebhookPayload,
    generate_id,
)

from factories import TEST_SECRET, make_subscription


def make_delivery(**overrides) -> Delivery:
    fields = {
        "subscription_id": "sub_abc",
        "event": "ticket.created",
        "payload": {
            "event": "ticket.created",
            "timestamp": "2024-01-01T00:00:00.000Z",
            "data": {},
        },
        "url": "https://hooks.example.com/receive",
    }
    fields.update(overrides)
    return Delivery(**fields)


def attempt(n: int, error: str | None = None) -> DeliveryAttempt:
    return DeliveryAttempt(
        attempt_number=n,
        timestamp=datetime.now(UTC),
        response_time=12,
        error_message=error,
    )


class TestGenerateId:
    def test_prefix_and_length(self):
        value = generate_id("sub")
        assert value.startswith("sub_")
        assert len(value) == len("sub_") + 12

    def test_unique(self):
        assert generate_id("dlv") != generate_id("dlv")


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.retry_delay == 1000
        assert policy.backoff_multiplier == 2.0

    @pytest.mark.parametrize(
        ("attempt_number", "expected"),
        [(1, True), (2, True), (3, False), (4, False)],
    )
    def test_retry_condition_is_attempt_below_max(self, attempt_number, expected):
        assert RetryPolicy(max_retries=3).should_retry(attempt_number) is expected

    def test_zero_max_retries_never_retries(self):
        assert not RetryPolicy(max_retries=0).should_retry(1)

    def test_backoff_delays(self):
        policy = RetryPolicy(retry_delay=1000, backoff_multiplier=2.0)
        assert policy.delay_after(1) == timedelta(milliseconds=1000)
        assert policy.delay_after(2) == timedelta(milliseconds=2000)
        assert policy.delay_after(3) == timedelta(milliseconds=4000)

    def test_multiplier_of_one_is_constant(self):
        policy = RetryPolicy(retry_delay=500, backoff_multiplier=1.0)
        assert policy.delay_after(5) == timedelta(milliseconds=500)

    @pytest.mark.parametrize(
        "policy",
        [
            RetryPolicy(max_retries=10, retry_delay=1000, backoff_multiplier=30),
            RetryPolicy(max_retries=10, retry_delay=10**15, backoff_multiplier=1.0),
            RetryPolicy(max_retries=10, retry_delay=1000, backoff_multiplier=1e300),
        ],
    )
    def test_delay_is_capped(self, policy):
        for attempt_number in range(1, 11):
            assert policy.delay_after(attempt_number) <= timedelta(
                milliseconds=MAX_RETRY_DELAY_MS
            )
        assert policy.delay_after(10) == timedelta(milliseconds=MAX_RETRY_DELAY_MS)

    @pytest.mark.parametrize(
        "fields",
        [
            {"max_retries": -1},
            {"max_retries": 11},
            {"retry_delay": 99},
            {"backoff_multiplier": 0.5},
        ],
    )
    def test_bounds(self, fields):
        with pytest.raises(ValidationError):
            RetryPolicy(**fields)


class TestSubscription:
    def test_defaults(self):
        subscription = make_subscription(retry_policy=RetryPolicy(), timeout=30000)
        assert subscription.id.startswith("sub_")
        assert subscription.is_active is True
        assert subscription.total_deliveries == 0
        assert subscription.last_triggered is None
        assert subscription.timeout_seconds == 30.0

    def test_secret_is_masked(self):
        subscription = make_subscription()
        assert TEST_SECRET not in repr(subscription)
        assert TEST_SECRET not in subscription.model_dump_json()
        assert subscription.secret.get_secret_value() == TEST_SECRET

    def test_short_secret_rejected(self):
        with pytest.raises(ValidationError):
            make_subscription(secret="too-short")

    @pytest.mark.parametrize("url", ["not a url", "ftp://example.com/hook", "/relative/path"])
    def test_url_must_be_absolute_http(self, url):
        with pytest.raises(ValidationError):
            make_subscription(url=url)

    @pytest.mark.parametrize("timeout", [999, 300_001])
    def test_timeout_bounds(self, timeout):
        with pytest.raises(ValidationError):
            make_subscription(timeout=timeout)

    def test_events_required_and_normalized(self):
        with pytest.raises(ValidationError):
            make_subscription(events=[])
        with pytest.raises(ValidationError):
            make_subscription(events=["  "])

        subscription = make_subscription(
            events=[" ticket.created", "ticket.created", "custom.thing"]
        )
        assert subscription.events == ["ticket.created", "custom.thing"]

    def test_invalid_header_names_rejected(self):
        with pytest.raises(ValidationError):
            make_subscription(headers={"Bad Header": "x"})
        with pytest.raises(ValidationError):
            make_subscription(headers={"X-Inject\r\n": "x"})

    @pytest.mark.parametrize(
        "value", ["\u00c9quipe", "a\r\nX-Injected: 1", "nul\0byte"]
    )
    def test_invalid_header_values_rejected(self, value):
        with pytest.raises(ValidationError, match="invalid value for header"):
            make_subscription(headers={"X-Team": value})

    def test_ascii_header_values_accepted(self):
        subscription = make_subscription(headers={"X-Team": "Equipe 7; region=eu"})
        assert subscription.headers == {"X-Team": "Equipe 7; region=eu"}

    def test_subscribes_to(self):
        subscription = make_subscription(events=["ticket.created", "ticket.closed"])
        assert subscription.subscribes_to("ticket.closed")
        assert not subscription.subscribes_to("ticket.updated")

        inactive = make_subscription(is_active=False)
        assert not inactive.subscribes_to("ticket.created")

    def test_success_rate(self):
        assert make_subscription().success_rate == 0.0
        subscription = make_subscription(
            total_deliveries=4, successful_deliveries=3, failed_deliveries=1
        )
        assert subscription.success_rate == 75.0

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            Subscription(
                name="x",
                url="https://example.com",
                events=["a"],
                secret=TEST_SECRET,
                unknown=True,
            )


class TestWebhookPayload:
    def test_build_stamps_iso_timestamp(self):
        moment = datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=UTC)
        payload = WebhookPayload.build("ticket.created", {"id": 1}, timestamp=moment)
        assert payload.timestamp == "2024-05-01T12:30:15.123Z"

    def test_document_omits_missing_metadata(self):
        payload = WebhookPayload.build("ticket.created", {"id": 1})
        assert set(payload.to_document()) == {"event", "timestamp", "data"}

    def test_document_keeps_metadata(self):
        payload = WebhookPayload.build("ticket.created", {"id": 1}, metadata={"actor": "u_1"})
        assert payload.to_document()["metadata"] == {"actor": "u_1"}

    def test_event_required(self):
        with pytest.raises(ValidationError):
            WebhookPayload.build("", {})


class TestDeliveryStateMachine:
    def test_new_delivery_is_pending(self):
        delivery = make_delivery()
        assert delivery.id.startswith("dlv_")
        assert delivery.status == "pending"
        assert delivery.attempts == []
        assert delivery.http_method == "POST"
        assert delivery.next_attempt_number == 1

    def test_success(self):
        delivery = make_delivery()
        delivery.record_attempt(attempt(1)).mark_success()
        assert delivery.status == "success"
        assert delivery.delivered_at is not None
        assert delivery.next_retry_at is None
        assert delivery.is_terminal

    def test_retrying_then_failed(self):
        delivery = make_delivery()
        retry_at = datetime.now(UTC) + timedelta(seconds=1)
        delivery.record_attempt(attempt(1, "HTTP 500: Internal Server Error"))
        delivery.mark_retrying(retry_at, "HTTP 500: Internal Server Error")
        assert delivery.status == "retrying"
        assert delivery.next_retry_at == retry_at
        assert not delivery.is_terminal

        delivery.record_attempt(attempt(2, "boom")).mark_failed("boom")
        assert delivery.status == "failed"
        assert delivery.error_message == "boom"
        assert delivery.next_retry_at is None
        assert [a.attempt_number for a in delivery.attempts] == [1, 2]

    @pytest.mark.parametrize("terminal", ["success", "failed"])
    def test_terminal_states_reject_transitions(self, terminal):
        delivery = make_delivery(status=terminal)
        with pytest.raises(DeliveryStateError):
            delivery.mark_success()
        with pytest.raises(DeliveryStateError):
            delivery.mark_retrying(datetime.now(UTC), "x")
        with pytest.raises(DeliveryStateError):
            delivery.mark_failed("x")
        with pytest.raises(DeliveryStateError):
            delivery.record_attempt(attempt(1))

    def test_attempt_numbers_must_be_contiguous(self):
        delivery = make_delivery()
        with pytest.raises(ValueError):
            delivery.record_attempt(attempt(2))

    def test_record_response(self):
        delivery = make_delivery()
        delivery.record_response(201, {"x-id": "1"}, "created")
        assert delivery.response_status == 201
        delivery.record_response(None)
        assert delivery.response_status is None
        assert delivery.response_body is None


class TestDeliveryStats:
    def test_total_and_lookup(self):
        stats = DeliveryStats(
            subscription_id="sub_1",
            days=30,
            since=datetime.now(UTC),
            by_status=[
                StatusStats(status="success", count=3, avg_response_time=20.0),
                StatusStats(status="failed", count=1, avg_response_time=5000.0),
            ],
        )
        assert stats.total == 4
        assert stats.for_status("failed").count == 1
        assert stats.for_status("retrying") is None
