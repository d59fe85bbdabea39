"""
Upsert reconciliation keyed by the platform's stable identifiers.

Every read-decide-write for one entity runs inside one store session, so
concurrent deliveries for the same key serialize and a product's children
are replaced atomically with their parent.
"""
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple, TypeVar

from picksmart.categories import CategoryHierarchyBuilder
from picksmart.errors import EntityReconcileError
from picksmart.logger import logger
from picksmart.models.catalog import Product
from picksmart.models.commerce import Customer, Order
from picksmart.sentry import capture_entity_failure
from picksmart.store.base import BaseStore

T = TypeVar("T")


class UpsertMode(Enum):
    # Bulk import: existing records are authoritative
    SKIP_EXISTING = "skip"
    # Webhooks: incoming payload is authoritative
    UPDATE = "update"


class UpsertAction(Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class MigrationReport:
    """End-of-run tally for one entity type."""
    entity: str
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.created + self.updated + self.skipped + self.failed

    def record(self, action: UpsertAction):
        if action is UpsertAction.CREATED:
            self.created += 1
        elif action is UpsertAction.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1

    def fail(self, key: str, error: str):
        self.failed += 1
        self.failures.append((key, error))

    def to_dict(self) -> dict:
        return {
            "entity": self.entity,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "total": self.total,
        }


class UpsertReconciler:
    """Create, update or skip one entity against persisted state."""

    def __init__(self, store: BaseStore, categories: Optional[CategoryHierarchyBuilder] = None,
                 mode: UpsertMode = UpsertMode.UPDATE):
        self.store = store
        self.categories = categories or CategoryHierarchyBuilder(store)
        self.mode = mode

    async def upsert_product(self, product: Product) -> UpsertAction:
        if self.mode is UpsertMode.SKIP_EXISTING and await self._product_exists(product.handle):
            logger.debug(f"Product {product.handle} exists, skipping")
            return UpsertAction.SKIPPED

        # Category session is released before the product session opens
        category = await self.categories.resolve(product.category_path)

        async with self.store.session("product", product.handle) as repo:
            existing = await repo.get_product(product.handle)
            if existing and self.mode is UpsertMode.SKIP_EXISTING:
                logger.debug(f"Product {product.handle} exists, skipping")
                return UpsertAction.SKIPPED

            incoming = dataclasses.replace(product, id=None, category_id=category.id if category else None)
            if existing:
                if not incoming.category_path:
                    incoming.category_path = existing.category_path
                    incoming.category_id = existing.category_id
                if not incoming.shopify_id:
                    incoming.shopify_id = existing.shopify_id

            product_id = await repo.save_product(incoming)

        action = UpsertAction.UPDATED if existing else UpsertAction.CREATED
        logger.info(
            f"Product {product.handle} {action.value}",
            extra={"extra": {"component": "reconciler", "handle": product.handle, "id": product_id}}
        )
        return action

    async def _product_exists(self, handle: str) -> bool:
        async with self.store.session("product", handle) as repo:
            return await repo.get_product(handle) is not None

    async def archive_product(self, shopify_id: Optional[str] = None, handle: Optional[str] = None) -> bool:
        """Archive, never delete. Returns False when the product is unknown locally."""
        if not handle and shopify_id:
            async with self.store.session("product-id", shopify_id) as repo:
                found = await repo.get_product_by_shopify_id(shopify_id)
            handle = found.handle if found else None

        if not handle:
            logger.warning(f"Delete for unknown product {shopify_id}, nothing to archive")
            return False

        async with self.store.session("product", handle) as repo:
            archived = await repo.set_product_status(handle, "archived")

        if archived:
            logger.info(f"Product {handle} archived")
        return archived

    async def upsert_customer(self, customer: Customer) -> UpsertAction:
        key = customer.shopify_customer_id
        if not key:
            raise EntityReconcileError(customer.email or "<unknown>", "customer has no platform id")

        async with self.store.session("customer", key) as repo:
            existing = await repo.get_customer(key)
            if existing and self.mode is UpsertMode.SKIP_EXISTING:
                return UpsertAction.SKIPPED

            await repo.save_customer(dataclasses.replace(customer, id=None))

        return UpsertAction.UPDATED if existing else UpsertAction.CREATED

    async def upsert_order(self, order: Order) -> UpsertAction:
        key = order.shopify_order_id
        if not key:
            raise EntityReconcileError(order.name or "<unknown>", "order has no platform id")

        async with self.store.session("order", key) as repo:
            existing = await repo.get_order(key)
            if existing and self.mode is UpsertMode.SKIP_EXISTING:
                return UpsertAction.SKIPPED

            user = await repo.get_customer_by_email(order.email) if order.email else None
            user_id = user.id if user else (existing.user_id if existing else None)

            await repo.save_order(dataclasses.replace(order, id=None, user_id=user_id))

        return UpsertAction.UPDATED if existing else UpsertAction.CREATED

    async def reconcile_all(self, entity: str, items: Iterable[T],
                            apply: Callable[[T], Awaitable[UpsertAction]],
                            key: Callable[[T], str]) -> MigrationReport:
        """
        Apply each item in order. A failing item is logged with its key,
        counted, and does not stop the batch.
        """
        report = MigrationReport(entity=entity)

        for item in items:
            item_key = key(item)
            try:
                report.record(await apply(item))
            except Exception as e:
                report.fail(item_key, str(e))
                logger.error(
                    f"Failed to upsert {entity} {item_key}: {e}",
                    extra={"extra": {"component": "reconciler", "entity": entity, "key": item_key}}
                )
                capture_entity_failure(entity, item_key, str(e))

        logger.info(
            f"{entity} reconciled",
            extra={"extra": {"component": "reconciler", **report.to_dict()}}
        )
        return report
