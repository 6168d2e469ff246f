"""Tests for the outbound event bus (Redis Streams pipeline mocked)."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
import redis

from catalog_sync.bus import (
    STREAM_PRODUCT_EVENTS,
    EventBus,
    InMemoryEventBus,
    OutboundEvent,
    RedisStreamBus,
)


def _event(**detail):
    return OutboundEvent(source="catalog-sync.shopify", detail_type="products/update", detail=detail)


@pytest.fixture()
def from_url():
    with patch("catalog_sync.bus.redis.from_url", return_value=MagicMock()) as from_url:
        yield from_url


@pytest.fixture()
def mock_redis(from_url):
    return from_url.return_value


class TestOutboundEvent:
    def test_to_fields_are_flat_strings(self):
        event = _event(id=1, nested={"a": [1, 2]})
        fields = event.to_fields()
        assert set(fields) == {"event_id", "source", "detail_type", "ts", "detail"}
        assert all(isinstance(v, str) for v in fields.values())
        assert json.loads(fields["detail"]) == {"id": 1, "nested": {"a": [1, 2]}}

    def test_to_dict(self):
        event = _event(id=1)
        assert event.to_dict() == {
            "event_id": event.event_id,
            "source": "catalog-sync.shopify",
            "detail_type": "products/update",
            "detail": {"id": 1},
        }


class TestRedisStreamBus:
    def test_publish_batches_in_one_pipeline(self, mock_redis):
        pipe = mock_redis.pipeline.return_value
        pipe.execute.return_value = ["1-0", "1-1"]

        result = RedisStreamBus().publish([_event(id=1), _event(id=2)])

        assert result.failed_count == 0
        assert result.entry_ids == ["1-0", "1-1"]
        assert pipe.xadd.call_count == 2
        assert pipe.xadd.call_args.args[0] == STREAM_PRODUCT_EVENTS
        mock_redis.pipeline.assert_called_once_with(transaction=False)
        pipe.execute.assert_called_once_with(raise_on_error=False)

    def test_in_band_errors_are_counted(self, mock_redis):
        pipe = mock_redis.pipeline.return_value
        pipe.execute.return_value = ["1-0", redis.ResponseError("OOM")]

        result = RedisStreamBus(stream="test:stream").publish([_event(id=1), _event(id=2)])

        assert result.failed_count == 1
        assert result.entry_ids == ["1-0"]

    def test_connection_failure_raises(self, mock_redis):
        mock_redis.pipeline.return_value.execute.side_effect = redis.ConnectionError("refused")
        with pytest.raises(redis.ConnectionError):
            RedisStreamBus().publish([_event(id=1)])

    def test_client_is_created_once(self, mock_redis, from_url):
        mock_redis.pipeline.return_value.execute.return_value = ["1-0"]
        bus = RedisStreamBus(redis_url="redis://cache:6379/2")
        bus.publish([_event(id=1)])
        bus.publish([_event(id=2)])
        from_url.assert_called_once_with("redis://cache:6379/2", decode_responses=True)


class TestInMemoryEventBus:
    def test_collects_events(self):
        bus = InMemoryEventBus()
        event = _event(id=1)
        result = bus.publish([event])
        assert bus.events == [event]
        assert result.entry_ids == [event.event_id]

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryEventBus(), EventBus)
        assert isinstance(RedisStreamBus(), EventBus)
