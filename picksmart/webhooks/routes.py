"""
HTTP surface for platform webhooks and webhook monitoring.
"""
import json
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from picksmart.config import config
from picksmart.errors import SignatureError
from picksmart.logger import logger
from picksmart.webhooks.security import SIGNATURE_HEADER, verify_signature
from picksmart.webhooks.topics import WebhookTopic

TOPIC_HEADER = "x-shopify-topic"
WEBHOOK_ID_HEADER = "x-shopify-webhook-id"

router = APIRouter()


@router.post("/api/webhooks/shopify")
async def receive_shopify_webhook(request: Request):
    """Verify, classify, apply, then acknowledge."""
    body = await request.body()

    try:
        verify_signature(body, request.headers.get(SIGNATURE_HEADER), config.SHOPIFY_WEBHOOK_SECRET)
    except SignatureError as e:
        logger.warning(f"Rejected webhook: {e}", extra={"extra": {"component": "webhooks"}})
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    raw_topic = request.headers.get(TOPIC_HEADER) or ""
    topic = WebhookTopic.parse(raw_topic)

    monitor = request.app.state.monitor
    dispatcher = request.app.state.dispatcher
    event_id = request.headers.get(WEBHOOK_ID_HEADER)
    topic_name = topic.value if topic is not WebhookTopic.UNRECOGNIZED else (raw_topic or topic.value)

    logger.info(f"Received webhook: {topic_name}", extra={"extra": {"component": "webhooks"}})
    started = time.perf_counter()

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        error = "Invalid JSON body"
    else:
        error = None if isinstance(payload, dict) else "Webhook body must be a JSON object"

    if error:
        elapsed = (time.perf_counter() - started) * 1000
        logger.warning(f"Webhook {topic_name} rejected: {error}", extra={"extra": {"component": "webhooks"}})
        await monitor.record(topic_name, topic.family.value, "failed", elapsed, error, event_id)
        return JSONResponse({"error": error}, status_code=400)

    try:
        outcome = await dispatcher.dispatch(topic, payload)
    except Exception as e:
        elapsed = (time.perf_counter() - started) * 1000
        logger.error(f"Webhook processing failed for {topic_name}: {e}", exc_info=True)
        await monitor.record(topic_name, topic.family.value, "failed", elapsed, str(e), event_id)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    elapsed = (time.perf_counter() - started) * 1000
    await monitor.record(topic_name, topic.family.value, "success", elapsed, event_id=event_id, outcome=outcome)

    return {"success": True, "topic": topic_name, "outcome": outcome}


@router.get("/api/webhooks/shopify")
async def webhook_endpoint_status():
    return {
        "status": "Shopify webhook endpoint is active",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/api/monitoring/webhooks")
async def webhook_monitoring(request: Request, action: str = "stats", limit: int = 50):
    monitor = request.app.state.monitor

    try:
        if action == "stats":
            return {"success": True, "data": monitor.get_stats()}

        if action == "recent":
            return {"success": True, "data": monitor.get_recent(limit)}

        if action == "health":
            health = monitor.check_health()
            return JSONResponse(
                {"success": True, "data": health},
                status_code=200 if health["healthy"] else 503
            )

    except Exception as e:
        logger.error(
            f"Webhook monitoring endpoint failed: {e}",
            extra={"extra": {"component": "monitoring", "action": action}}
        )
        return JSONResponse(
            {"success": False, "error": "Failed to fetch webhook monitoring data"},
            status_code=500
        )

    return JSONResponse(
        {"success": False, "error": "Invalid action. Available actions: stats, recent, health"},
        status_code=400
    )
