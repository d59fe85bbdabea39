"""
Test health checks.
External dependencies down must surface as status, never as a crash.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from picksmart.config import config
from picksmart.health import HealthChecker, overall_status
from picksmart.main import create_app
from picksmart.store.memory import MemoryStore
from picksmart.webhooks.monitor import DeliveryLedger, WebhookMonitor


def healthy_memory():
    return SimpleNamespace(percent=40.0)


@pytest_asyncio.fixture
async def store():
    store = MemoryStore()
    await store.open()
    return store


@pytest.fixture
def checker(store):
    return HealthChecker(store, WebhookMonitor(store, DeliveryLedger()))


def test_overall_status_is_worst():
    assert overall_status(["healthy", "healthy"]) == "healthy"
    assert overall_status(["healthy", "degraded"]) == "degraded"
    assert overall_status(["degraded", "unhealthy", "healthy"]) == "unhealthy"


@pytest.mark.asyncio
async def test_full_check_healthy(checker):
    with patch("picksmart.health.psutil.virtual_memory", return_value=healthy_memory()), \
         patch.object(config, "STRIPE_SECRET_KEY", ""), \
         patch.object(config, "SHOPIFY_STORE_URL", ""):
        report = await checker.check()

    assert report["status"] == "healthy"
    assert set(report["checks"]) == {"database", "webhooks", "external_services", "system_resources"}
    assert report["checks"]["database"]["details"]["products"] == 0


@pytest.mark.asyncio
async def test_unreachable_store_is_unhealthy_and_reported(checker, store):
    store.ping = AsyncMock(return_value=False)

    with patch("picksmart.health.capture_health_failure") as mock_capture, \
         patch("picksmart.health.psutil.virtual_memory", return_value=healthy_memory()), \
         patch.object(config, "STRIPE_SECRET_KEY", ""), \
         patch.object(config, "SHOPIFY_STORE_URL", ""):
        report = await checker.check()

    assert report["status"] == "unhealthy"
    assert report["checks"]["database"]["status"] == "unhealthy"
    mock_capture.assert_called_once()


@pytest.mark.asyncio
async def test_store_exception_becomes_status(checker, store):
    store.counts = AsyncMock(side_effect=RuntimeError("connection reset"))

    result = await checker.check_database()

    assert result["status"] == "unhealthy"
    assert result["error"] == "connection reset"


@pytest.mark.asyncio
async def test_failing_webhooks_degrade(checker):
    await checker.monitor.record("products/update", "product", "failed", error="boom")

    result = await checker.check_webhooks()

    assert result["status"] == "degraded"
    assert result["details"]["issues"]


@pytest.mark.asyncio
@pytest.mark.parametrize("percent, expected", [(50.0, "healthy"), (85.0, "degraded"), (95.0, "unhealthy")])
async def test_system_resource_thresholds(checker, percent, expected):
    with patch("picksmart.health.psutil.virtual_memory", return_value=SimpleNamespace(percent=percent)):
        result = await checker.check_system_resources()

    assert result["status"] == expected


@pytest.mark.asyncio
async def test_external_service_failure_degrades(store):
    response = MagicMock(status=401)
    session = MagicMock()
    session.get.return_value.__aenter__.return_value = response

    checker = HealthChecker(store, WebhookMonitor(store, DeliveryLedger()), http_session=session)

    with patch.object(config, "STRIPE_SECRET_KEY", "sk_test_123"), \
         patch.object(config, "SHOPIFY_STORE_URL", ""):
        result = await checker.check_external_services()

    assert result["status"] == "degraded"
    assert result["details"]["services"][0]["name"] == "stripe"
    assert session.get.call_args.kwargs["headers"] == {"Authorization": "Bearer sk_test_123"}


@pytest.mark.asyncio
async def test_external_service_network_error(store):
    session = MagicMock()
    session.get.side_effect = aiohttp.ClientConnectionError("no route")

    checker = HealthChecker(store, WebhookMonitor(store, DeliveryLedger()), http_session=session)

    with patch.object(config, "STRIPE_SECRET_KEY", ""), \
         patch.object(config, "SHOPIFY_STORE_URL", "https://demo.myshopify.com/"), \
         patch.object(config, "SHOPIFY_ACCESS_TOKEN", "shpat_1"):
        result = await checker.check_external_services()

    service = result["details"]["services"][0]
    assert result["status"] == "degraded"
    assert service["name"] == "shopify"
    assert "no route" in service["error"]
    assert session.get.call_args.args[0] == "https://demo.myshopify.com/admin/api/2024-01/shop.json"


@pytest.mark.asyncio
async def test_unknown_service(checker):
    result = await checker.check_service("mainframe")

    assert result["status"] == "unhealthy"
    assert result["error"] == "Unknown service"


@pytest.mark.asyncio
async def test_quick_check(checker, store):
    assert (await checker.quick_check())["status"] == "ok"

    store.ping = AsyncMock(side_effect=OSError("down"))
    assert (await checker.quick_check())["status"] == "error"


def test_health_routes():
    store = MemoryStore()
    ledger = DeliveryLedger()
    ledger.initialize = AsyncMock()

    with patch.object(config, "STRIPE_SECRET_KEY", ""), \
         patch.object(config, "SHOPIFY_STORE_URL", ""), \
         TestClient(create_app(store=store, ledger=ledger)) as client:
        assert client.get("/api/health").json()["database"] == "Connected"
        assert client.get("/api/monitoring/health", params={"quick": "true"}).json()["status"] == "ok"

        with patch("picksmart.health.psutil.virtual_memory", return_value=SimpleNamespace(percent=97.0)):
            response = client.get("/api/monitoring/health")
        assert response.status_code == 503
        assert response.json()["checks"]["system_resources"]["status"] == "unhealthy"

        with patch("picksmart.health.psutil.virtual_memory", return_value=SimpleNamespace(percent=85.0)):
            response = client.get("/api/monitoring/health", params={"service": "system_resources"})
        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

        store.ping = AsyncMock(return_value=False)
        assert client.get("/api/health").status_code == 503
        assert client.get("/api/monitoring/health", params={"quick": "true"}).status_code == 503
