"""Outbound event bus: canonical product events published to a Redis Stream.

publish() takes a batch and reports how many entries the bus rejected.
Unlike a fire-and-forget notifier, transport failures are raised so the
dispatcher can count the attempt as failed and retry it.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import redis

logger = logging.getLogger(__name__)

_REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

# ---------------------------------------------------------------------------
# Stream names
# ---------------------------------------------------------------------------

STREAM_PRODUCT_EVENTS = os.environ.get("CATALOG_EVENT_STREAM", "catalog:product:events")

# Approximate MAXLEN for XADD
_STREAM_MAXLEN = 10000


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass
class OutboundEvent:
    """Canonical event derived from a storefront webhook."""

    source: str  # e.g. catalog-sync.shopify
    detail_type: str  # platform topic, e.g. products/update
    detail: dict[str, Any]
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "source": self.source,
            "detail_type": self.detail_type,
            "detail": self.detail,
        }

    def to_fields(self) -> dict[str, str]:
        """Flat string fields for XADD."""
        return {
            "event_id": self.event_id,
            "source": self.source,
            "detail_type": self.detail_type,
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S+00:00", time.gmtime()),
            "detail": json.dumps(self.detail, default=str),
        }


@dataclass
class PublishResult:
    failed_count: int = 0
    entry_ids: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------

@runtime_checkable
class EventBus(Protocol):
    def publish(self, events: list[OutboundEvent]) -> PublishResult:
        ...


class RedisStreamBus:
    """XADD every event of a batch in one non-transactional pipeline."""

    def __init__(self, stream: str = STREAM_PRODUCT_EVENTS, redis_url: str | None = None):
        self.stream = stream
        self._redis_url = redis_url or _REDIS_URL
        self._client: redis.Redis | None = None

    def _get_redis(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def publish(self, events: list[OutboundEvent]) -> PublishResult:
        """XADD a batch of events to the stream.

        Args:
            events: Events to publish, in order

        Returns:
            PublishResult with the entry IDs Redis accepted and the count it rejected

        Raises:
            redis.RedisError: The connection failed before any result came back
        """
        pipe = self._get_redis().pipeline(transaction=False)
        for event in events:
            pipe.xadd(self.stream, event.to_fields(), maxlen=_STREAM_MAXLEN, approximate=True)
        # Connection-level failures raise here; per-entry failures come back in-band.
        results = pipe.execute(raise_on_error=False)
        failed = [r for r in results if isinstance(r, Exception)]
        for err in failed:
            logger.warning("Bus rejected entry on %s: %s", self.stream, err)
        return PublishResult(
            failed_count=len(failed),
            entry_ids=[r for r in results if not isinstance(r, Exception)],
        )


# ---------------------------------------------------------------------------
# In-memory bus
# ---------------------------------------------------------------------------

class InMemoryEventBus:
    """Collects published events; used for local runs and tests."""

    def __init__(self) -> None:
        self.events: list[OutboundEvent] = []
        self._lock = threading.Lock()

    def publish(self, events: list[OutboundEvent]) -> PublishResult:
        with self._lock:
            self.events.extend(events)
        return PublishResult(failed_count=0, entry_ids=[e.event_id for e in events])
