"""Webhook classification: one function turns {headers, body} into a tagged variant.

Priority order (first match wins):
1. Shopify      headers x-shopify-topic + x-shopify-shop-domain
2. WooCommerce  headers x-wc-webhook-source + x-wc-webhook-topic
3. BigCommerce  body keys producer, scope, hash, store_id
Anything else raises UnsupportedWebhookType.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from catalog_sync.errors import UnsupportedWebhookType


class WebhookSource(str, Enum):
    SHOPIFY = "shopify"
    WOOCOMMERCE = "woocommerce"
    BIGCOMMERCE = "bigcommerce"
    UNSUPPORTED = "unsupported"


_SHOPIFY_HEADERS = ("x-shopify-topic", "x-shopify-shop-domain")
_WOO_HEADERS = ("x-wc-webhook-source", "x-wc-webhook-topic")
_BIGCOMMERCE_BODY_KEYS = ("producer", "scope", "hash", "store_id")


@dataclass(frozen=True)
class WebhookEnvelope:
    """Inbound webhook. Header names are lower-cased on construction."""

    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", {k.lower(): v for k, v in (self.headers or {}).items()})


@dataclass(frozen=True)
class ClassifiedWebhook:
    source: WebhookSource
    envelope: WebhookEnvelope

    @property
    def headers(self) -> dict[str, str]:
        return self.envelope.headers

    @property
    def body(self) -> Any:
        return self.envelope.body

    @property
    def topic(self) -> str:
        if self.source is WebhookSource.SHOPIFY:
            return self.headers["x-shopify-topic"]
        if self.source is WebhookSource.WOOCOMMERCE:
            return self.headers["x-wc-webhook-topic"]
        return str(self.body["scope"])

    @property
    def store(self) -> str:
        if self.source is WebhookSource.SHOPIFY:
            return self.headers["x-shopify-shop-domain"]
        if self.source is WebhookSource.WOOCOMMERCE:
            return self.headers["x-wc-webhook-source"]
        return str(self.body["store_id"])

    @property
    def delivery_id(self) -> str:
        """Provider delivery identifier used for dedup ("" when the provider sends none)."""
        if self.source is WebhookSource.SHOPIFY:
            return self.headers.get("x-shopify-webhook-id") or self.headers.get("x-shopify-event-id", "")
        if self.source is WebhookSource.WOOCOMMERCE:
            return self.headers.get("x-wc-webhook-delivery-id", "")
        return f"{self.body['hash']}:{self.body.get('created_at', '')}"


def identify_source(envelope: WebhookEnvelope) -> WebhookSource:
    headers = envelope.headers
    if all(h in headers for h in _SHOPIFY_HEADERS):
        return WebhookSource.SHOPIFY
    if all(h in headers for h in _WOO_HEADERS):
        return WebhookSource.WOOCOMMERCE
    body = envelope.body
    if isinstance(body, dict) and all(k in body for k in _BIGCOMMERCE_BODY_KEYS):
        return WebhookSource.BIGCOMMERCE
    return WebhookSource.UNSUPPORTED


def classify_webhook(envelope: WebhookEnvelope) -> ClassifiedWebhook:
    source = identify_source(envelope)
    if source is WebhookSource.UNSUPPORTED:
        raise UnsupportedWebhookType(envelope.headers, envelope.body)
    return ClassifiedWebhook(source=source, envelope=envelope)
