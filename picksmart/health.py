"""
Health checks for the persisted store, webhook pipeline, external services and process resources.
Failures surface as degraded/unhealthy status, never as exceptions.
"""
import asyncio
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp
import psutil
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from picksmart.config import config
from picksmart.errors import StoreError
from picksmart.logger import logger
from picksmart.sentry import capture_health_failure
from picksmart.store.base import BaseStore
from picksmart.webhooks.monitor import WebhookMonitor

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"

SLOW_DATABASE_MS = 1000
MEMORY_UNHEALTHY_PERCENT = 90
MEMORY_DEGRADED_PERCENT = 80
MAX_RSS_MB = 1024

STRIPE_PROBE_URL = "https://api.stripe.com/v1/payment_methods?limit=1"

SERVICES = ("database", "webhooks", "external_services", "system_resources")


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _result(service: str, status: str, response_time: Optional[float] = None,
            details: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> Dict[str, Any]:
    result = {"service": service, "status": status, "response_time": response_time}
    if details is not None:
        result["details"] = details
    if error is not None:
        result["error"] = error
    return result


def overall_status(statuses: List[str]) -> str:
    if UNHEALTHY in statuses:
        return UNHEALTHY
    if DEGRADED in statuses:
        return DEGRADED
    return HEALTHY


class HealthChecker:
    """Runs the per-subsystem checks against injected collaborators."""

    def __init__(self, store: BaseStore, monitor: WebhookMonitor,
                 http_session: Optional[aiohttp.ClientSession] = None):
        self.store = store
        self.monitor = monitor
        self.http_session = http_session

    async def check(self) -> Dict[str, Any]:
        """Full check across every subsystem."""
        results = await asyncio.gather(*(self.check_service(name) for name in SERVICES))
        checks = {r["service"]: r for r in results}

        report = {
            "status": overall_status([r["status"] for r in results]),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": checks,
        }

        if report["status"] == UNHEALTHY:
            logger.error("System health check failed", extra={"extra": {"component": "health", **report}})
            capture_health_failure(report)
        else:
            logger.info(f"System health: {report['status']}", extra={"extra": {"component": "health"}})

        return report

    async def quick_check(self) -> Dict[str, Any]:
        """Store reachability only, for load balancers."""
        try:
            ok = await self.store.ping()
        except Exception as e:
            logger.warning(f"Quick health check failed: {e}")
            ok = False

        return {
            "status": "ok" if ok else "error",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def check_service(self, name: str) -> Dict[str, Any]:
        checks = {
            "database": self.check_database,
            "webhooks": self.check_webhooks,
            "external_services": self.check_external_services,
            "system_resources": self.check_system_resources,
        }
        check = checks.get(name)
        if check is None:
            return _result(name, UNHEALTHY, error="Unknown service")
        return await check()

    async def check_database(self) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            if not await self.store.ping():
                return _result("database", UNHEALTHY, _elapsed_ms(started), error="Store unreachable")

            counts = await self.store.counts()
            elapsed = _elapsed_ms(started)
            return _result(
                "database",
                DEGRADED if elapsed > SLOW_DATABASE_MS else HEALTHY,
                elapsed,
                details={"products": counts.get("products", 0), "backend": type(self.store).__name__},
            )

        except Exception as e:
            return _result("database", UNHEALTHY, _elapsed_ms(started), error=str(e))

    async def check_webhooks(self) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            health = self.monitor.check_health()
            return _result(
                "webhooks",
                HEALTHY if health["healthy"] else DEGRADED,
                _elapsed_ms(started),
                details={
                    "issues": health["issues"],
                    "success_rate": health["stats"]["success_rate"],
                    "recent_events": health["stats"]["recent_events"],
                },
            )
        except Exception as e:
            return _result("webhooks", UNHEALTHY, _elapsed_ms(started), error=str(e))

    async def check_external_services(self) -> Dict[str, Any]:
        started = time.perf_counter()
        probes = []

        if config.STRIPE_SECRET_KEY:
            probes.append(("stripe", STRIPE_PROBE_URL, {"Authorization": f"Bearer {config.STRIPE_SECRET_KEY}"}))

        if config.SHOPIFY_STORE_URL and config.SHOPIFY_ACCESS_TOKEN:
            probes.append((
                "shopify",
                f"{config.SHOPIFY_STORE_URL.rstrip('/')}/admin/api/{config.SHOPIFY_API_VERSION}/shop.json",
                {"X-Shopify-Access-Token": config.SHOPIFY_ACCESS_TOKEN},
            ))

        try:
            services = await self._probe_all(probes) if probes else []
        except Exception as e:
            return _result("external_services", UNHEALTHY, _elapsed_ms(started), error=str(e))

        degraded = any(s["status"] == UNHEALTHY for s in services)
        return _result(
            "external_services",
            DEGRADED if degraded else HEALTHY,
            _elapsed_ms(started),
            details={"services": services},
        )

    async def _probe_all(self, probes) -> List[Dict[str, Any]]:
        if self.http_session:
            return [await self._probe(self.http_session, *probe) for probe in probes]

        timeout = aiohttp.ClientTimeout(total=config.REQUEST_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return [await self._probe(session, *probe) for probe in probes]

    @staticmethod
    async def _probe(session: aiohttp.ClientSession, name: str, url: str,
                     headers: Dict[str, str]) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            async with session.get(url, headers=headers) as response:
                return {
                    "name": name,
                    "status": HEALTHY if 200 <= response.status < 300 else UNHEALTHY,
                    "response_time": _elapsed_ms(started),
                }
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return {"name": name, "status": UNHEALTHY, "response_time": _elapsed_ms(started), "error": str(e)}

    async def check_system_resources(self) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            rss_mb = psutil.Process().memory_info().rss / 1024 / 1024
            memory_percent = psutil.virtual_memory().percent

            status = HEALTHY
            if memory_percent > MEMORY_UNHEALTHY_PERCENT:
                status = UNHEALTHY
            elif memory_percent > MEMORY_DEGRADED_PERCENT:
                status = DEGRADED
            if rss_mb > MAX_RSS_MB and status == HEALTHY:
                status = DEGRADED

            return _result(
                "system_resources",
                status,
                _elapsed_ms(started),
                details={"rss_mb": round(rss_mb, 2), "memory_percent": memory_percent},
            )
        except psutil.Error as e:
            return _result("system_resources", UNHEALTHY, _elapsed_ms(started), error=str(e))


router = APIRouter()


@router.get("/api/health")
async def api_health(request: Request):
    """Liveness plus store reachability."""
    result = await request.app.state.health.quick_check()

    if result["status"] == "ok":
        return {
            "status": "OK",
            "message": "Picksmart Stores API is running",
            "timestamp": result["timestamp"],
            "database": "Connected",
        }

    return JSONResponse(
        {
            "status": "ERROR",
            "message": "Service unavailable",
            "timestamp": result["timestamp"],
            "database": "Disconnected",
        },
        status_code=503
    )


@router.get("/api/monitoring/health")
async def monitoring_health(request: Request, quick: bool = False, service: Optional[str] = None):
    checker: HealthChecker = request.app.state.health

    try:
        if quick:
            result = await checker.quick_check()
            return JSONResponse(result, status_code=200 if result["status"] == "ok" else 503)

        if service:
            result = await checker.check_service(service)
        else:
            result = await checker.check()

        return JSONResponse(result, status_code=503 if result["status"] == UNHEALTHY else 200)

    except Exception as e:
        logger.error(
            f"Health check endpoint failed: {e}",
            extra={"extra": {"component": "monitoring"}}
        )
        return JSONResponse(
            {
                "status": UNHEALTHY,
                "error": "Health check failed",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            status_code=503
        )


async def run_report() -> int:
    """Print a full report. Returns the process exit code."""
    from picksmart.store import create_store

    store = create_store()
    try:
        await store.open()
    except StoreError as e:
        logger.error(f"Could not open store: {e}")

    try:
        report = await HealthChecker(store, WebhookMonitor(store)).check()
    finally:
        await store.close()

    print(f"\nOverall status: {report['status'].upper()}")
    for name, check in report["checks"].items():
        line = f"  {name}: {check['status'].upper()}"
        if check.get("response_time") is not None:
            line += f" ({check['response_time']}ms)"
        if check.get("error"):
            line += f" - {check['error']}"
        print(line)

    return 1 if report["status"] == UNHEALTHY else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run_report()))
