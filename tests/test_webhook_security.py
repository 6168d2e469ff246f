"""Tests for webhook signature verification and delivery dedup."""

from __future__ import annotations

import base64
import hashlib
import hmac
from unittest.mock import MagicMock, patch

import redis

from catalog_sync.webhooks.classifier import WebhookSource
from catalog_sync.webhooks.idempotency import clear_seen, is_duplicate
from catalog_sync.webhooks.verification import (
    verify_bigcommerce,
    verify_shopify,
    verify_webhook,
    verify_woocommerce,
)

BODY = b'{"id": 123, "title": "Classic Tee"}'


def _sign(secret: str, body: bytes = BODY) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


class TestShopifyVerification:
    @patch("catalog_sync.webhooks.verification._SHOPIFY_WEBHOOK_SECRET", "shpss_test")
    def test_valid_signature(self):
        assert verify_shopify(BODY, _sign("shpss_test")) is True

    @patch("catalog_sync.webhooks.verification._SHOPIFY_WEBHOOK_SECRET", "shpss_test")
    def test_tampered_body(self):
        assert verify_shopify(BODY + b" ", _sign("shpss_test")) is False

    @patch("catalog_sync.webhooks.verification._SHOPIFY_WEBHOOK_SECRET", "shpss_test")
    def test_missing_header(self):
        assert verify_shopify(BODY, None) is False

    @patch("catalog_sync.webhooks.verification._SHOPIFY_WEBHOOK_SECRET", "")
    def test_missing_secret_fails_closed(self):
        assert verify_shopify(BODY, _sign("")) is False


class TestWooCommerceVerification:
    @patch("catalog_sync.webhooks.verification._WOO_WEBHOOK_SECRET", "woo_secret")
    def test_valid_signature(self):
        assert verify_woocommerce(BODY, _sign("woo_secret")) is True

    @patch("catalog_sync.webhooks.verification._WOO_WEBHOOK_SECRET", "woo_secret")
    def test_wrong_secret(self):
        assert verify_woocommerce(BODY, _sign("other")) is False

    @patch("catalog_sync.webhooks.verification._WOO_WEBHOOK_SECRET", "")
    def test_missing_secret_fails_closed(self):
        assert verify_woocommerce(BODY, _sign("")) is False


class TestBigCommerceVerification:
    @patch("catalog_sync.webhooks.verification._BIGCOMMERCE_WEBHOOK_TOKEN", "bc-token")
    def test_token_match(self):
        assert verify_bigcommerce(BODY, "bc-token") is True

    @patch("catalog_sync.webhooks.verification._BIGCOMMERCE_WEBHOOK_TOKEN", "bc-token")
    def test_token_mismatch(self):
        assert verify_bigcommerce(BODY, "nope") is False

    @patch("catalog_sync.webhooks.verification._BIGCOMMERCE_WEBHOOK_TOKEN", "")
    def test_missing_token_fails_closed(self):
        assert verify_bigcommerce(BODY, "") is False


class TestVerifyWebhook:
    @patch("catalog_sync.webhooks.verification._SHOPIFY_WEBHOOK_SECRET", "shpss_test")
    def test_reads_platform_header(self):
        headers = {"x-shopify-hmac-sha256": _sign("shpss_test")}
        assert verify_webhook(WebhookSource.SHOPIFY, BODY, headers) is True

    def test_unsupported_source_is_rejected(self):
        assert verify_webhook(WebhookSource.UNSUPPORTED, BODY, {}) is False


class TestDeliveryDedup:
    @patch("catalog_sync.webhooks.idempotency._get_redis")
    def test_first_delivery_is_new(self, mock_redis_fn):
        mock_r = MagicMock()
        mock_r.set.return_value = True
        mock_redis_fn.return_value = mock_r

        assert is_duplicate("shopify", "evt_1") is False
        mock_r.set.assert_called_once_with("webhook:seen:shopify:evt_1", "1", nx=True, ex=86400)

    @patch("catalog_sync.webhooks.idempotency._get_redis")
    def test_repeat_delivery_is_duplicate(self, mock_redis_fn):
        mock_r = MagicMock()
        mock_r.set.return_value = None
        mock_redis_fn.return_value = mock_r
        assert is_duplicate("shopify", "evt_1") is True

    @patch("catalog_sync.webhooks.idempotency._get_redis")
    def test_redis_down_fails_open(self, mock_redis_fn):
        mock_redis_fn.return_value.set.side_effect = redis.ConnectionError("refused")
        assert is_duplicate("woocommerce", "812") is False

    @patch("catalog_sync.webhooks.idempotency._get_redis")
    def test_empty_delivery_id_is_never_a_duplicate(self, mock_redis_fn):
        assert is_duplicate("shopify", "") is False
        mock_redis_fn.assert_not_called()

    @patch("catalog_sync.webhooks.idempotency._get_redis")
    def test_clear_seen(self, mock_redis_fn):
        clear_seen("bigcommerce", "abc:1")
        mock_redis_fn.return_value.delete.assert_called_once_with("webhook:seen:bigcommerce:abc:1")

    @patch("catalog_sync.webhooks.idempotency._get_redis")
    def test_clear_seen_tolerates_redis_errors(self, mock_redis_fn):
        mock_redis_fn.return_value.delete.side_effect = redis.ConnectionError("refused")
        clear_seen("shopify", "evt_1")
