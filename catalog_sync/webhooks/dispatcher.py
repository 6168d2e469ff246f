"""Event dispatcher: publishes canonical events with a fixed attempt budget.

Retry contract:
- Up to DISPATCH_MAX_ATTEMPTS attempts (default 5)
- An attempt fails if the bus raises or reports failed_count > 0
- No delay between attempts unless a backoff callable is supplied
- Exhausting the budget logs the full payload and raises DispatchExhausted
- The caller blocks for the whole loop; there is no built-in deadline
"""

from __future__ import annotations

import json
import logging
import os
import random
import time
from dataclasses import dataclass
from typing import Callable

from catalog_sync.bus import EventBus, OutboundEvent, PublishResult
from catalog_sync.errors import DispatchExhausted
from catalog_sync.webhooks.classifier import WebhookEnvelope, classify_webhook
from catalog_sync.webhooks.mappers import map_webhook

logger = logging.getLogger(__name__)

MAX_DISPATCH_ATTEMPTS = int(os.environ.get("DISPATCH_MAX_ATTEMPTS", "5"))

Backoff = Callable[[int], float]


# ---------------------------------------------------------------------------
# Retry budget
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryState:
    """Explicit retry budget threaded through run_with_retry()."""

    attempts_remaining: int
    attempts_made: int = 0
    last_error: BaseException | None = None

    def after_attempt(self, error: BaseException | None = None) -> RetryState:
        return RetryState(
            attempts_remaining=self.attempts_remaining - 1,
            attempts_made=self.attempts_made + 1,
            last_error=error if error is not None else self.last_error,
        )


@dataclass
class DispatchResult:
    attempts: int
    publish_result: PublishResult


def exponential_backoff(
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: float = 0.3,
) -> Backoff:
    """Delay = base * 2^(attempt-1), capped, +/- jitter fraction."""

    def _delay(attempts_made: int) -> float:
        delay = min(base_delay * (2 ** max(attempts_made - 1, 0)), max_delay)
        jitter_amount = delay * jitter
        delay += random.uniform(-jitter_amount, jitter_amount)
        return max(0.0, delay)

    return _delay


def run_with_retry(
    attempt: Callable[[], PublishResult],
    state: RetryState,
    *,
    backoff: Backoff | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[PublishResult | None, RetryState]:
    """Call ``attempt`` until it succeeds or the budget in ``state`` runs out.

    Returns (result, final_state); result is None when the budget is exhausted.
    """
    while state.attempts_remaining > 0:
        try:
            result = attempt()
        except Exception as exc:
            logger.error("Dispatch attempt %d failed", state.attempts_made + 1, exc_info=True)
            state = state.after_attempt(exc)
        else:
            state = state.after_attempt()
            if result.failed_count == 0:
                return result, state
            logger.warning(
                "Dispatch attempt %d: bus rejected %d entr%s",
                state.attempts_made,
                result.failed_count,
                "y" if result.failed_count == 1 else "ies",
            )
        if state.attempts_remaining > 0 and backoff is not None:
            sleep(backoff(state.attempts_made))
    return None, state


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class EventDispatcher:
    def __init__(
        self,
        bus: EventBus,
        max_attempts: int = MAX_DISPATCH_ATTEMPTS,
        backoff: Backoff | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.bus = bus
        self.max_attempts = max_attempts
        self.backoff = backoff
        self._sleep = sleep

    def dispatch_webhook_event(self, envelope: WebhookEnvelope) -> DispatchResult:
        """Classify, map and publish. UnsupportedWebhookType propagates without any attempt."""
        event = map_webhook(classify_webhook(envelope))
        return self.dispatch([event])

    def dispatch(self, events: list[OutboundEvent]) -> DispatchResult:
        """Publish a batch of events, retrying the whole batch on failure.

        Args:
            events: Canonical events to publish together

        Returns:
            DispatchResult with the attempt count and the successful PublishResult

        Raises:
            DispatchExhausted: Every attempt in the budget failed
        """
        payload = [e.to_dict() for e in events]
        logger.debug("Dispatching %s", json.dumps(payload, indent=2, default=str))

        result, state = run_with_retry(
            lambda: self.bus.publish(events),
            RetryState(attempts_remaining=self.max_attempts),
            backoff=self.backoff,
            sleep=self._sleep,
        )
        if result is None:
            logger.error(
                "Failed to dispatch event after %d attempts, %s",
                state.attempts_made,
                json.dumps(payload, indent=2, default=str),
            )
            raise DispatchExhausted(state.attempts_made, payload, state.last_error)

        logger.info(
            "Dispatched %d event(s) in %d attempt(s): %s",
            len(events),
            state.attempts_made,
            ", ".join(f"{e.source}/{e.detail_type}" for e in events),
        )
        return DispatchResult(attempts=state.attempts_made, publish_result=result)
