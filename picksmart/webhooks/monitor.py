"""
Webhook delivery monitoring.
Records every inbound event, tracks failures per topic and raises operator alerts.
"""
import asyncio
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

from picksmart.config import config
from picksmart.logger import logger
from picksmart.sentry import capture_webhook_alert
from picksmart.store.base import BaseStore

MAX_RECENT_EVENTS = 1000
MAX_TOPIC_ERRORS = 10
MIN_SUCCESS_RATE = 95.0
MAX_AVERAGE_PROCESSING_MS = 5000

REPORT_INTERVAL = 15 * 60
CLEANUP_INTERVAL = 60 * 60
RESET_INTERVAL = 24 * 60 * 60
EVENT_MAX_AGE = timedelta(hours=24)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WebhookEvent:
    id: str
    topic: str
    family: str
    status: str
    attempts: int
    timestamp: datetime
    processing_time: Optional[float] = None
    error: Optional[str] = None
    outcome: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "family": self.family,
            "status": self.status,
            "attempts": self.attempts,
            "timestamp": self.timestamp.isoformat(),
            "processing_time": self.processing_time,
            "error": self.error,
            "outcome": self.outcome,
        }


@dataclass
class TopicFailure:
    topic: str
    count: int = 0
    first_failure: datetime = field(default_factory=_now)
    last_failure: datetime = field(default_factory=_now)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "count": self.count,
            "first_failure": self.first_failure.isoformat(),
            "last_failure": self.last_failure.isoformat(),
            "errors": list(self.errors),
        }


class DeliveryLedger:
    """Delivery attempt counter keyed by the platform's webhook id."""

    def __init__(self, redis_url: Optional[str] = None, ttl: Optional[int] = None):
        self.redis_url = redis_url or config.REDIS_URL
        self.ttl = ttl or config.WEBHOOK_ATTEMPT_TTL
        self.redis = None
        self.is_available = False
        self._local: "OrderedDict[str, int]" = OrderedDict()

    async def initialize(self):
        try:
            self.redis = redis.from_url(self.redis_url, decode_responses=True)
            await self.redis.ping()
            self.is_available = True
            logger.info("Delivery ledger initialized")
        except Exception as e:
            logger.warning(f"Delivery ledger redis init failed, counting in-process: {e}")
            self.is_available = False

    async def close(self):
        if self.redis:
            await self.redis.aclose()
            self.redis = None
        self.is_available = False

    def _make_key(self, event_id: str) -> str:
        return f"webhook:attempts:{event_id}"

    async def next_attempt(self, event_id: str) -> int:
        if self.is_available:
            try:
                key = self._make_key(event_id)
                attempts = await self.redis.incr(key)
                if attempts == 1:
                    await self.redis.expire(key, self.ttl)
                return int(attempts)
            except Exception as e:
                logger.warning(f"Delivery ledger redis failed, counting in-process: {e}")

        attempts = self._local.pop(event_id, 0) + 1
        self._local[event_id] = attempts
        while len(self._local) > MAX_RECENT_EVENTS:
            self._local.popitem(last=False)
        return attempts


class WebhookMonitor:
    """Bounded in-memory view of recent deliveries plus persisted event log."""

    def __init__(self, store: Optional[BaseStore] = None, ledger: Optional[DeliveryLedger] = None,
                 alert_threshold: Optional[int] = None, max_events: int = MAX_RECENT_EVENTS):
        self.store = store
        self.ledger = ledger or DeliveryLedger()
        self.alert_threshold = alert_threshold or config.WEBHOOK_FAILURE_THRESHOLD
        self.max_events = max_events
        self.events: "OrderedDict[str, WebhookEvent]" = OrderedDict()
        self.failures: Dict[str, TopicFailure] = {}
        self._tasks: List[asyncio.Task] = []

    async def record(self, topic: str, family: str, status: str,
                     processing_time: Optional[float] = None, error: Optional[str] = None,
                     event_id: Optional[str] = None, outcome: Optional[str] = None) -> WebhookEvent:
        event_id = event_id or f"{topic}_{uuid.uuid4().hex[:12]}"
        attempts = await self.ledger.next_attempt(event_id)

        event = WebhookEvent(
            id=event_id,
            topic=topic,
            family=family,
            status=status,
            attempts=attempts,
            timestamp=_now(),
            processing_time=processing_time,
            error=error,
            outcome=outcome,
        )

        self.events.pop(event_id, None)
        self.events[event_id] = event
        while len(self.events) > self.max_events:
            self.events.popitem(last=False)

        log = logger.info if status == "success" else logger.error
        log(
            f"Webhook {topic} {status}",
            extra={"extra": {
                "component": "webhooks",
                "event_id": event_id,
                "attempts": attempts,
                "processing_time": processing_time,
                "outcome": outcome,
            }}
        )

        if status == "failed":
            self._handle_failure(topic, error or "Unknown error")

        await self._persist(event)
        return event

    def _handle_failure(self, topic: str, error: str):
        failure = self.failures.get(topic)
        if failure is None:
            failure = TopicFailure(topic=topic)
            self.failures[topic] = failure

        failure.count += 1
        failure.last_failure = _now()
        failure.errors.append(error)
        failure.errors = failure.errors[-MAX_TOPIC_ERRORS:]

        if failure.count >= self.alert_threshold:
            self._send_alert(failure)

    def _send_alert(self, failure: TopicFailure):
        logger.error(
            f"Webhook failure alert: {failure.topic} has failed {failure.count} times "
            f"since {failure.first_failure.isoformat()}",
            extra={"extra": {
                "component": "webhook-monitor",
                "topic": failure.topic,
                "failure_count": failure.count,
                "recent_errors": failure.errors[-3:],
            }}
        )
        capture_webhook_alert(failure.topic, failure.count, failure.errors[-3:])

    async def _persist(self, event: WebhookEvent):
        if not self.store or not self.store.is_available:
            return
        try:
            await self.store.record_webhook_event(event.to_dict())
        except Exception as e:
            logger.warning(f"Could not persist webhook event {event.id}: {e}")

    def get_stats(self) -> Dict[str, Any]:
        events = list(self.events.values())
        successes = sum(1 for e in events if e.status == "success")
        total_time = sum(e.processing_time or 0 for e in events)

        topic_stats: Dict[str, Dict[str, int]] = {}
        for event in events:
            stats = topic_stats.setdefault(event.topic, {"total": 0, "success": 0, "failures": 0})
            stats["total"] += 1
            if event.status == "success":
                stats["success"] += 1
            else:
                stats["failures"] += 1

        return {
            "recent_events": len(events),
            "success_rate": (successes / len(events)) * 100 if events else 100.0,
            "failures_by_topic": {t: f.to_dict() for t, f in self.failures.items()},
            "average_processing_time": total_time / len(events) if events else 0.0,
            "topic_stats": topic_stats,
        }

    def get_recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        # Newest first; ties keep reverse arrival order
        events = sorted(reversed(self.events.values()), key=lambda e: e.timestamp, reverse=True)
        return [e.to_dict() for e in events[:max(limit, 0)]]

    def check_health(self) -> Dict[str, Any]:
        stats = self.get_stats()
        issues = []

        if stats["success_rate"] < MIN_SUCCESS_RATE:
            issues.append(f"Low success rate: {stats['success_rate']:.2f}%")

        for topic, failure in self.failures.items():
            if failure.count >= self.alert_threshold:
                issues.append(f"High failure count for {topic}: {failure.count} failures")

        if stats["average_processing_time"] > MAX_AVERAGE_PROCESSING_MS:
            issues.append(f"High average processing time: {stats['average_processing_time']:.0f}ms")

        return {"healthy": not issues, "issues": issues, "stats": stats}

    def cleanup_old_events(self, max_age: timedelta = EVENT_MAX_AGE) -> int:
        cutoff = _now() - max_age
        stale = [event_id for event_id, e in self.events.items() if e.timestamp < cutoff]
        for event_id in stale:
            del self.events[event_id]

        logger.debug(f"Cleaned up {len(stale)} webhook events, {len(self.events)} remaining")
        return len(stale)

    def reset_failure_counters(self):
        self.failures.clear()
        logger.info("Reset webhook failure counters", extra={"extra": {"component": "webhook-monitor"}})

    def report(self) -> Dict[str, Any]:
        stats = self.get_stats()
        logger.info("Webhook monitoring report", extra={"extra": {"component": "webhook-monitor", "stats": stats}})
        return stats

    def start(self):
        """Schedule periodic report, cleanup and counter reset on the running loop."""
        if self._tasks:
            return

        self._tasks = [
            asyncio.create_task(self._every(REPORT_INTERVAL, self.report)),
            asyncio.create_task(self._every(CLEANUP_INTERVAL, self.cleanup_old_events)),
            asyncio.create_task(self._every(RESET_INTERVAL, self.reset_failure_counters)),
        ]
        logger.info("Webhook monitoring started", extra={"extra": {"component": "webhook-monitor"}})

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

    @staticmethod
    async def _every(interval: float, job):
        while True:
            await asyncio.sleep(interval)
            try:
                job()
            except Exception as e:
                logger.error(f"Webhook maintenance job {job.__name__} failed: {e}")
