"""
Routes a verified webhook to the reconciler in update-in-place mode.
"""
from typing import Any, Awaitable, Callable, Dict

from picksmart.errors import ConfigError
from picksmart.logger import logger
from picksmart.normalizers.customers import CustomerNormalizer
from picksmart.normalizers.fields import as_id, clean
from picksmart.normalizers.orders import OrderNormalizer
from picksmart.normalizers.payloads import ProductPayloadNormalizer
from picksmart.reconciler import UpsertMode, UpsertReconciler
from picksmart.webhooks.topics import WebhookTopic

Handler = Callable[[Dict[str, Any]], Awaitable[str]]


class WebhookDispatcher:
    """
    One handler per WebhookTopic member, UNRECOGNIZED included.

    The table is checked against the enum at construction, so a topic
    added to WebhookTopic without a handler fails at start-up.
    """

    def __init__(self, reconciler: UpsertReconciler):
        if reconciler.mode is not UpsertMode.UPDATE:
            raise ConfigError("Webhook reconciler must run in update mode")
        self.reconciler = reconciler

        self.handlers: Dict[WebhookTopic, Handler] = {
            WebhookTopic.PRODUCTS_CREATE: self._upsert_product,
            WebhookTopic.PRODUCTS_UPDATE: self._upsert_product,
            WebhookTopic.PRODUCTS_DELETE: self._archive_product,
            WebhookTopic.ORDERS_CREATE: self._upsert_order,
            WebhookTopic.ORDERS_UPDATED: self._upsert_order,
            WebhookTopic.ORDERS_PAID: self._upsert_order,
            WebhookTopic.ORDERS_CANCELLED: self._upsert_order,
            WebhookTopic.ORDERS_FULFILLED: self._upsert_order,
            WebhookTopic.CUSTOMERS_CREATE: self._upsert_customer,
            WebhookTopic.CUSTOMERS_UPDATE: self._upsert_customer,
            WebhookTopic.UNRECOGNIZED: self._ignore,
        }

        missing = [topic.value for topic in WebhookTopic if topic not in self.handlers]
        if missing:
            raise ConfigError(f"No webhook handler for topics: {', '.join(missing)}")

    async def dispatch(self, topic: WebhookTopic, payload: Dict[str, Any]) -> str:
        """Apply one notification. Returns the outcome; errors propagate to the caller."""
        return await self.handlers[topic](payload)

    async def _upsert_product(self, payload: Dict[str, Any]) -> str:
        product = ProductPayloadNormalizer.normalize(payload)
        action = await self.reconciler.upsert_product(product)
        return action.value

    async def _archive_product(self, payload: Dict[str, Any]) -> str:
        archived = await self.reconciler.archive_product(
            shopify_id=as_id(payload.get("id")),
            handle=clean(payload.get("handle")),
        )
        return "archived" if archived else "not_found"

    async def _upsert_order(self, payload: Dict[str, Any]) -> str:
        action = await self.reconciler.upsert_order(OrderNormalizer.from_payload(payload))
        return action.value

    async def _upsert_customer(self, payload: Dict[str, Any]) -> str:
        action = await self.reconciler.upsert_customer(CustomerNormalizer.from_payload(payload))
        return action.value

    async def _ignore(self, payload: Dict[str, Any]) -> str:
        logger.info(
            "Unrecognized webhook topic acknowledged",
            extra={"extra": {"component": "webhooks", "payload_id": payload.get("id")}}
        )
        return "ignored"
