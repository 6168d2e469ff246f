"""Webhook HTTP handler: FastAPI route for inbound product webhooks.

Flow:
1. Read raw body (needed for HMAC verification), lower-case headers
2. Classify the platform from headers/body shape
3. Verify the platform-specific signature
4. Map to the canonical event (an unmapped platform is a defect: 500)
5. Dedup on the provider delivery id
6. Dispatch with the retry budget

Responses:
- 202 dispatched, 200 duplicate
- 400 invalid JSON or unsupported webhook shape
- 401 signature failure
- 503 dispatch budget exhausted (provider will redeliver)
Error details are never returned to the caller.
"""

from __future__ import annotations

import json
import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from catalog_sync.errors import DispatchExhausted, UnsupportedWebhookType
from catalog_sync.webhooks.classifier import WebhookEnvelope, classify_webhook
from catalog_sync.webhooks.dispatcher import EventDispatcher
from catalog_sync.webhooks.idempotency import clear_seen, is_duplicate
from catalog_sync.webhooks.mappers import map_webhook
from catalog_sync.webhooks.verification import verify_webhook

logger = logging.getLogger(__name__)

# Receive counters per source/status (in-memory, per process)
_webhook_counts: dict[str, int] = {}


def _log_webhook(source: str, topic: str, delivery_id: str, status: str) -> None:
    counter = f"{source}:{status}"
    _webhook_counts[counter] = _webhook_counts.get(counter, 0) + 1
    logger.info(
        "WEBHOOK_AUDIT source=%s topic=%s id=%s status=%s count=%d",
        source,
        topic,
        delivery_id,
        status,
        _webhook_counts[counter],
    )


async def _handle_product_webhook(request: Request, dispatcher: EventDispatcher) -> JSONResponse:
    start = time.time()
    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        _log_webhook("unknown", "unknown", "", "invalid_json")
        return JSONResponse({"status": "rejected"}, status_code=400)

    try:
        webhook = classify_webhook(WebhookEnvelope(headers=headers, body=payload))
    except UnsupportedWebhookType:
        logger.error(
            "Unsupported Webhook type: %s",
            json.dumps({"headers": headers, "body": payload}, indent=2, default=str),
        )
        _log_webhook("unsupported", "unknown", "", "rejected")
        return JSONResponse({"status": "rejected"}, status_code=400)

    source = webhook.source.value
    if not verify_webhook(webhook.source, body, headers):
        _log_webhook(source, webhook.topic, webhook.delivery_id, "signature_failed")
        return JSONResponse({"status": "unauthorized"}, status_code=401)

    event = map_webhook(webhook)

    if is_duplicate(source, webhook.delivery_id):
        _log_webhook(source, webhook.topic, webhook.delivery_id, "duplicate")
        return JSONResponse({"status": "received"}, status_code=200)

    try:
        await run_in_threadpool(dispatcher.dispatch, [event])
    except DispatchExhausted:
        clear_seen(source, webhook.delivery_id)
        _log_webhook(source, webhook.topic, webhook.delivery_id, "dispatch_failed")
        return JSONResponse({"status": "unavailable"}, status_code=503)

    _log_webhook(source, webhook.topic, webhook.delivery_id, "dispatched")
    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: %s/%s", elapsed_ms, source, webhook.topic)
    return JSONResponse({"status": "received"}, status_code=202)


def register_webhook_routes(app: FastAPI, dispatcher: EventDispatcher) -> None:
    """Register webhook endpoint routes on the FastAPI app."""

    @app.post("/webhooks/products")
    async def product_webhook(request: Request):
        """Receive Shopify / WooCommerce / BigCommerce product webhooks."""
        return await _handle_product_webhook(request, dispatcher)

    @app.get("/webhooks/status")
    async def webhook_status():
        return {"counts": dict(_webhook_counts)}

    logger.info("Webhook routes registered: /webhooks/products")
