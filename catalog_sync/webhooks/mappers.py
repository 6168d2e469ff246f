"""Classified webhook -> canonical OutboundEvent. Pure functions, one per platform."""

from __future__ import annotations

from typing import Any, Callable

from catalog_sync.bus import OutboundEvent
from catalog_sync.errors import UnmappedWebhookSource
from catalog_sync.webhooks.classifier import ClassifiedWebhook, WebhookSource

EVENT_SOURCE_PREFIX = "catalog-sync"


def _canonical(webhook: ClassifiedWebhook, resource_id: Any, extra: dict[str, Any]) -> OutboundEvent:
    detail = {
        "platform": webhook.source.value,
        "topic": webhook.topic,
        "store": webhook.store,
        "delivery_id": webhook.delivery_id,
        "resource_id": str(resource_id) if resource_id is not None else None,
        **extra,
        "payload": webhook.body,
    }
    return OutboundEvent(
        source=f"{EVENT_SOURCE_PREFIX}.{webhook.source.value}",
        detail_type=webhook.topic,
        detail=detail,
    )


def shopify_to_event(webhook: ClassifiedWebhook) -> OutboundEvent:
    body = webhook.body if isinstance(webhook.body, dict) else {}
    return _canonical(
        webhook,
        body.get("id"),
        {
            "api_version": webhook.headers.get("x-shopify-api-version", ""),
            "triggered_at": webhook.headers.get("x-shopify-triggered-at", ""),
        },
    )


def woocommerce_to_event(webhook: ClassifiedWebhook) -> OutboundEvent:
    body = webhook.body if isinstance(webhook.body, dict) else {}
    return _canonical(
        webhook,
        body.get("id"),
        {
            "resource": webhook.headers.get("x-wc-webhook-resource", ""),
            "event": webhook.headers.get("x-wc-webhook-event", ""),
        },
    )


def bigcommerce_to_event(webhook: ClassifiedWebhook) -> OutboundEvent:
    data = webhook.body.get("data") or {}
    return _canonical(
        webhook,
        data.get("id"),
        {
            "producer": webhook.body["producer"],
            "created_at": webhook.body.get("created_at"),
        },
    )


Mapper = Callable[[ClassifiedWebhook], OutboundEvent]

MAPPERS: dict[WebhookSource, Mapper] = {
    WebhookSource.SHOPIFY: shopify_to_event,
    WebhookSource.WOOCOMMERCE: woocommerce_to_event,
    WebhookSource.BIGCOMMERCE: bigcommerce_to_event,
}


def map_webhook(webhook: ClassifiedWebhook, mappers: dict[WebhookSource, Mapper] | None = None) -> OutboundEvent:
    mapper = (MAPPERS if mappers is None else mappers).get(webhook.source)
    if mapper is None:
        raise UnmappedWebhookSource(f"No event mapper registered for {webhook.source.value}")
    return mapper(webhook)
