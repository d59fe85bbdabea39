"""
Sentry initialization for centralized error tracking.
Observes failures, never controls sync logic.
"""
import logging
from typing import Dict, Any

import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from picksmart.config import config
from picksmart.logger import logger

SYSTEM_NAME = "picksmart-stores"


def initialize_sentry():
    """Initialize Sentry SDK if DSN is configured."""
    if not config.has_sentry:
        logger.info("Sentry not configured, skipping initialization")
        return

    try:
        sentry_sdk.init(
            dsn=config.SENTRY_DSN,
            environment=config.ENVIRONMENT,
            integrations=[
                AsyncioIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,
            before_send=_enrich_sentry_event
        )

        logger.info("Sentry initialized for error tracking")

    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")


def _enrich_sentry_event(event: Dict[str, Any], hint: Dict[str, Any]) -> Dict[str, Any]:
    """Tag events with system context."""
    try:
        event.setdefault("tags", {})
        event["tags"]["system"] = SYSTEM_NAME
        event["tags"]["environment"] = config.ENVIRONMENT

        if hint and "exc_info" in hint:
            exc = hint["exc_info"][1]
            # Per-entity failures group by exception type, not by key
            key = getattr(exc, "key", None)
            if key:
                event.setdefault("extra", {})
                event["extra"]["entity_key"] = key

    except Exception as e:
        logger.error(f"Failed to enrich Sentry event: {e}")

    return event


def capture_webhook_alert(topic: str, failure_count: int, recent_errors: list):
    """Repeated failures for one topic. Operator-facing."""
    if not config.has_sentry:
        return

    with sentry_sdk.new_scope() as scope:
        scope.set_tag("alert_type", "webhook_failure")
        scope.set_tag("topic", topic)
        scope.set_extra("failure_count", failure_count)
        scope.set_extra("recent_errors", recent_errors)
        scope.set_level("fatal")

        sentry_sdk.capture_message(
            f"Webhook failure threshold exceeded for {topic}: {failure_count} failures",
            "fatal"
        )


def capture_health_failure(report: Dict[str, Any]):
    if not config.has_sentry:
        return

    with sentry_sdk.new_scope() as scope:
        scope.set_tag("alert_type", "health_check")
        scope.set_extra("checks", report.get("checks", {}))
        scope.set_level("error")

        sentry_sdk.capture_message(f"System health is {report.get('status')}", "error")


def capture_entity_failure(entity: str, key: str, error: str):
    """One entity failed to upsert during a batch; the batch continued."""
    if not config.has_sentry:
        return

    with sentry_sdk.new_scope() as scope:
        scope.set_tag("error_type", "reconcile")
        scope.set_tag("entity", entity)
        scope.set_extra("key", key)
        scope.set_extra("error", error)
        scope.set_level("warning")

        sentry_sdk.capture_message(f"Failed to upsert {entity} {key}", "warning")
