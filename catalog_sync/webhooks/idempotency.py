"""Webhook delivery dedup, Redis-based.

- Tracks delivery IDs in Redis with 24h TTL
- Key pattern: webhook:seen:{source}:{delivery_id}
- Duplicates get 200 (providers retry on errors)
- If Redis is down, deliveries are allowed through (fail-open); the cache's
  conditional writes make a repeated event harmless downstream
- A delivery whose dispatch failed is cleared so the provider's retry is accepted
"""

from __future__ import annotations

import logging
import os

import redis

logger = logging.getLogger(__name__)

_DEDUP_TTL_SECONDS = 86400

_KEY_PREFIX = "webhook:seen"

_REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")


# ---------------------------------------------------------------------------
# Redis access
# ---------------------------------------------------------------------------

def _get_redis() -> redis.Redis:
    return redis.from_url(_REDIS_URL, decode_responses=True)


def _key(source: str, delivery_id: str) -> str:
    return f"{_KEY_PREFIX}:{source}:{delivery_id}"


# ---------------------------------------------------------------------------
# Dedup
# ---------------------------------------------------------------------------

def is_duplicate(source: str, delivery_id: str) -> bool:
    """Atomic check-and-mark via SET NX.

    Args:
        source: Webhook source name, part of the dedup key
        delivery_id: Provider delivery ID; empty means no dedup

    Returns:
        True if this delivery was already seen. Redis being unavailable
        counts as unseen (fail-open)
    """
    if not delivery_id:
        return False  # nothing to dedup on

    try:
        was_set = _get_redis().set(_key(source, delivery_id), "1", nx=True, ex=_DEDUP_TTL_SECONDS)
    except redis.RedisError:
        logger.warning(
            "Redis unavailable for webhook dedup, allowing %s/%s",
            source,
            delivery_id,
            exc_info=True,
        )
        return False
    if not was_set:
        logger.info("Duplicate webhook rejected: %s/%s", source, delivery_id)
        return True
    return False


def clear_seen(source: str, delivery_id: str) -> None:
    if not delivery_id:
        return
    try:
        _get_redis().delete(_key(source, delivery_id))
    except redis.RedisError:
        logger.warning("Failed to clear webhook dedup key: %s/%s", source, delivery_id)
