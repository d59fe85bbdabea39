"""
Main application entry point.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI

from picksmart import __version__
from picksmart.config import config
from picksmart.logger import logger
from picksmart.categories import CategoryHierarchyBuilder
from picksmart.health import HealthChecker, router as health_router
from picksmart.reconciler import UpsertMode, UpsertReconciler
from picksmart.sentry import initialize_sentry
from picksmart.store import create_store
from picksmart.store.base import BaseStore
from picksmart.webhooks.dispatcher import WebhookDispatcher
from picksmart.webhooks.monitor import DeliveryLedger, WebhookMonitor
from picksmart.webhooks.routes import router as webhook_router


def create_app(store: Optional[BaseStore] = None, ledger: Optional[DeliveryLedger] = None) -> FastAPI:
    """Build the service around one store handle. Defaults come from config."""
    store = store or create_store()
    ledger = ledger or DeliveryLedger()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Picksmart catalog sync")
        initialize_sentry()

        await store.open()
        await ledger.initialize()

        reconciler = UpsertReconciler(store, CategoryHierarchyBuilder(store), UpsertMode.UPDATE)
        monitor = WebhookMonitor(store, ledger)

        app.state.store = store
        app.state.monitor = monitor
        app.state.dispatcher = WebhookDispatcher(reconciler)
        app.state.health = HealthChecker(store, monitor)

        if config.WEBHOOK_MONITORING_ENABLED:
            monitor.start()

        yield

        logger.info("Shutting down Picksmart catalog sync")
        await monitor.stop()
        await ledger.close()
        await store.close()

    app = FastAPI(
        title="Picksmart Catalog Sync",
        description="Catalog migration and webhook synchronization for Picksmart Stores",
        version=__version__,
        lifespan=lifespan
    )

    @app.get("/")
    async def root():
        return {
            "service": "Picksmart Catalog Sync",
            "version": __version__,
            "status": "operational",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    app.include_router(health_router)
    app.include_router(webhook_router)
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=config.PORT)
