"""Tests for the event dispatcher and its fixed attempt budget."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from catalog_sync.bus import InMemoryEventBus, OutboundEvent, PublishResult
from catalog_sync.errors import DispatchExhausted, UnsupportedWebhookType
from catalog_sync.webhooks.classifier import WebhookEnvelope
from catalog_sync.webhooks.dispatcher import (
    MAX_DISPATCH_ATTEMPTS,
    EventDispatcher,
    RetryState,
    exponential_backoff,
    run_with_retry,
)


class ScriptedBus:
    """Plays back a list of outcomes: a PublishResult or an exception per call."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def publish(self, events):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


OK = PublishResult(failed_count=0, entry_ids=["1-0"])
REJECTED = PublishResult(failed_count=1)


def _event():
    return OutboundEvent(source="catalog-sync.shopify", detail_type="products/update", detail={"id": 1})


class TestRetryState:
    def test_after_attempt_is_a_new_state(self):
        state = RetryState(attempts_remaining=5)
        err = RuntimeError("x")
        nxt = state.after_attempt(err)
        assert state.attempts_remaining == 5
        assert (nxt.attempts_remaining, nxt.attempts_made, nxt.last_error) == (4, 1, err)

    def test_success_keeps_previous_error(self):
        err = RuntimeError("x")
        state = RetryState(attempts_remaining=2).after_attempt(err).after_attempt()
        assert state.last_error is err


class TestRunWithRetry:
    def test_first_success(self):
        result, state = run_with_retry(lambda: OK, RetryState(attempts_remaining=5))
        assert result is OK
        assert state.attempts_made == 1

    def test_budget_exhausted_returns_none(self):
        result, state = run_with_retry(lambda: REJECTED, RetryState(attempts_remaining=3))
        assert result is None
        assert state.attempts_made == 3
        assert state.attempts_remaining == 0

    def test_no_sleep_without_backoff(self):
        sleep = MagicMock()
        run_with_retry(lambda: REJECTED, RetryState(attempts_remaining=3), sleep=sleep)
        sleep.assert_not_called()

    def test_backoff_between_attempts_only(self):
        sleep = MagicMock()
        run_with_retry(
            lambda: REJECTED,
            RetryState(attempts_remaining=5),
            backoff=lambda n: 0.5 * n,
            sleep=sleep,
        )
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0, 1.5, 2.0]


class TestExponentialBackoff:
    def test_doubles_and_caps_without_jitter(self):
        backoff = exponential_backoff(base_delay=1.0, max_delay=5.0, jitter=0.0)
        assert [backoff(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_in_range(self):
        backoff = exponential_backoff(base_delay=2.0, max_delay=60.0, jitter=0.3)
        for _ in range(50):
            assert 1.4 <= backoff(1) <= 2.6


class TestEventDispatcher:
    def test_default_budget_is_five(self):
        assert MAX_DISPATCH_ATTEMPTS == 5
        assert EventDispatcher(InMemoryEventBus()).max_attempts == 5

    def test_success_after_four_failures(self):
        bus = ScriptedBus([RuntimeError("a"), REJECTED, ConnectionError("b"), REJECTED, OK])
        result = EventDispatcher(bus).dispatch([_event()])
        assert result.attempts == 5
        assert result.publish_result is OK
        assert bus.calls == 5

    def test_exhausted_after_exactly_five_attempts(self, caplog):
        bus = ScriptedBus([REJECTED, RuntimeError("a"), REJECTED, REJECTED, RuntimeError("last")])
        event = _event()
        with caplog.at_level(logging.ERROR, logger="catalog_sync.webhooks.dispatcher"):
            with pytest.raises(DispatchExhausted) as exc_info:
                EventDispatcher(bus).dispatch([event])
        assert bus.calls == 5
        assert exc_info.value.attempts == 5
        assert exc_info.value.payload == [event.to_dict()]
        assert str(exc_info.value.last_error) == "last"
        assert "Failed to dispatch event after 5 attempts" in caplog.text
        assert event.event_id in caplog.text

    def test_custom_budget(self):
        bus = ScriptedBus([REJECTED, REJECTED])
        with pytest.raises(DispatchExhausted):
            EventDispatcher(bus, max_attempts=2).dispatch([_event()])
        assert bus.calls == 2

    def test_backoff_uses_injected_sleep(self):
        sleep = MagicMock()
        bus = ScriptedBus([REJECTED, OK])
        EventDispatcher(bus, backoff=lambda n: 0.25, sleep=sleep).dispatch([_event()])
        sleep.assert_called_once_with(0.25)

    def test_dispatch_webhook_event_publishes_mapped_event(self):
        bus = InMemoryEventBus()
        envelope = WebhookEnvelope(
            headers={"X-Shopify-Topic": "products/create", "X-Shopify-Shop-Domain": "acme.myshopify.com"},
            body={"id": 42},
        )
        result = EventDispatcher(bus).dispatch_webhook_event(envelope)
        assert result.attempts == 1
        [event] = bus.events
        assert event.detail_type == "products/create"
        assert event.detail["resource_id"] == "42"

    def test_unsupported_webhook_is_never_published(self):
        bus = MagicMock()
        with pytest.raises(UnsupportedWebhookType):
            EventDispatcher(bus).dispatch_webhook_event(WebhookEnvelope(headers={}, body={}))
        bus.publish.assert_not_called()

