"""Webhook signature verification, constant-time for each platform.

Security contract:
- All comparisons use hmac.compare_digest()
- Verification failure -> 401 immediately, no dispatch
- Missing secret env var -> verification always fails (fail-closed)
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os

from catalog_sync.webhooks.classifier import WebhookSource

logger = logging.getLogger(__name__)

_SHOPIFY_WEBHOOK_SECRET = os.environ.get("SHOPIFY_WEBHOOK_SECRET", "")
_WOO_WEBHOOK_SECRET = os.environ.get("WOO_WEBHOOK_SECRET", "")
_BIGCOMMERCE_WEBHOOK_TOKEN = os.environ.get("BIGCOMMERCE_WEBHOOK_TOKEN", "")


# ---------------------------------------------------------------------------
# Per-platform verifiers
# ---------------------------------------------------------------------------

def _b64_hmac_sha256(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_shopify(body: bytes, signature_header: str | None) -> bool:
    """X-Shopify-Hmac-SHA256: base64 HMAC-SHA256 of the raw body."""
    if not _SHOPIFY_WEBHOOK_SECRET:
        logger.warning("SHOPIFY_WEBHOOK_SECRET not set, rejecting webhook")
        return False
    if not signature_header:
        return False
    return hmac.compare_digest(_b64_hmac_sha256(_SHOPIFY_WEBHOOK_SECRET, body), signature_header)


def verify_woocommerce(body: bytes, signature_header: str | None) -> bool:
    """X-WC-Webhook-Signature: base64 HMAC-SHA256 of the raw body."""
    if not _WOO_WEBHOOK_SECRET:
        logger.warning("WOO_WEBHOOK_SECRET not set, rejecting webhook")
        return False
    if not signature_header:
        return False
    return hmac.compare_digest(_b64_hmac_sha256(_WOO_WEBHOOK_SECRET, body), signature_header)


def verify_bigcommerce(body: bytes, token_header: str | None) -> bool:
    """BigCommerce does not sign payloads; the shared token is set as a custom
    header when the webhook is registered."""
    if not _BIGCOMMERCE_WEBHOOK_TOKEN:
        logger.warning("BIGCOMMERCE_WEBHOOK_TOKEN not set, rejecting webhook")
        return False
    if not token_header:
        return False
    return hmac.compare_digest(_BIGCOMMERCE_WEBHOOK_TOKEN, token_header)


# ---------------------------------------------------------------------------
# Dispatch by source
# ---------------------------------------------------------------------------

VERIFIERS = {
    WebhookSource.SHOPIFY: verify_shopify,
    WebhookSource.WOOCOMMERCE: verify_woocommerce,
    WebhookSource.BIGCOMMERCE: verify_bigcommerce,
}

SIGNATURE_HEADERS = {
    WebhookSource.SHOPIFY: "x-shopify-hmac-sha256",
    WebhookSource.WOOCOMMERCE: "x-wc-webhook-signature",
    WebhookSource.BIGCOMMERCE: "x-bigcommerce-webhook-token",
}


def verify_webhook(source: WebhookSource, body: bytes, headers: dict[str, str]) -> bool:
    """Verify the signature for a classified webhook.

    Args:
        source: Platform the webhook was classified as
        body: Raw request body bytes
        headers: Request headers with lower-cased names

    Returns:
        True if the platform's verifier accepts the signature; False for an
        unknown source or a missing header
    """
    verifier = VERIFIERS.get(source)
    if not verifier:
        logger.warning("No verifier for webhook source: %s", source)
        return False
    return verifier(body, headers.get(SIGNATURE_HEADERS[source]))
