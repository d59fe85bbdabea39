"""
Batch migration from the platform's CSV exports.
Entities are upserted strictly one after another.
"""
from typing import Dict, List

from picksmart.categories import CategoryHierarchyBuilder
from picksmart.logger import logger
from picksmart.models.catalog import Product
from picksmart.normalizers.csv_rows import read_rows
from picksmart.normalizers.customers import CustomerNormalizer
from picksmart.normalizers.fields import as_id, clean
from picksmart.normalizers.orders import OrderNormalizer
from picksmart.normalizers.products import ProductAggregator, collect_category_paths
from picksmart.reconciler import MigrationReport, UpsertAction, UpsertMode, UpsertReconciler
from picksmart.store.base import BaseStore


class CatalogMigrator:
    """
    Runs parse -> aggregate -> categories -> upsert for each export.

    Args:
        store: Opened store handle
        mode: SKIP_EXISTING for idempotent re-runs, UPDATE to overwrite
    """

    def __init__(self, store: BaseStore, mode: UpsertMode = UpsertMode.SKIP_EXISTING):
        self.store = store
        self.categories = CategoryHierarchyBuilder(store)
        self.reconciler = UpsertReconciler(store, self.categories, mode)
        self.aggregator = ProductAggregator()

    async def migrate_products(self, file_path: str) -> MigrationReport:
        """
        Raises:
            FileNotFoundError: If the export does not exist
            InputMalformedError: If the export cannot be parsed
        """
        products = self.aggregator.aggregate(read_rows(file_path))
        logger.info(
            f"Aggregated {len(products)} products",
            extra={"extra": {"component": "migration", "products": len(products)}}
        )

        await self.categories.build(collect_category_paths(products.values()))

        return await self.reconciler.reconcile_all(
            "product", products.values(), self.reconciler.upsert_product, key=lambda p: p.handle
        )

    async def migrate_customers(self, file_path: str) -> MigrationReport:
        rows = read_rows(file_path)

        async def apply(row: Dict[str, str]) -> UpsertAction:
            # Rows without an email are skipped, not failed
            if not CustomerNormalizer.has_email(row):
                return UpsertAction.SKIPPED
            return await self.reconciler.upsert_customer(CustomerNormalizer.from_row(row))

        return await self.reconciler.reconcile_all(
            "customer", rows, apply,
            key=lambda row: as_id(row.get("id")) or clean(row.get("email")) or "<unknown>"
        )

    async def migrate_orders(self, file_path: str) -> MigrationReport:
        orders = OrderNormalizer.group_rows(read_rows(file_path))
        logger.info(f"Grouped {len(orders)} orders", extra={"extra": {"component": "migration"}})

        return await self.reconciler.reconcile_all(
            "order", orders.values(), self.reconciler.upsert_order, key=lambda o: o.shopify_order_id
        )


def preview_products(file_path: str, max_products: int = 5) -> List[Product]:
    """Parse and aggregate without touching the store."""
    products = ProductAggregator().aggregate(read_rows(file_path))
    return list(products.values())[:max(max_products, 0)]
