"""
Persisted store interface.
A store handle is opened once per process and passed to every component.
"""
from typing import Any, AsyncContextManager, Dict, List, Optional

from picksmart.models.catalog import Product, Category
from picksmart.models.commerce import Customer, Order


class CatalogRepository:
    """Data access available inside one store session."""

    # Products
    async def get_product(self, handle: str) -> Optional[Product]:
        raise NotImplementedError

    async def get_product_by_shopify_id(self, shopify_id: str) -> Optional[Product]:
        raise NotImplementedError

    async def save_product(self, product: Product) -> str:
        """Upsert the product by handle and replace all of its children. Returns the local id."""
        raise NotImplementedError

    async def set_product_status(self, handle: str, status: str) -> bool:
        raise NotImplementedError

    async def list_products(self, limit: int = 50) -> List[Product]:
        raise NotImplementedError

    # Categories
    async def get_category_by_path(self, path: str) -> Optional[Category]:
        raise NotImplementedError

    async def get_category_by_name(self, name: str) -> Optional[Category]:
        raise NotImplementedError

    async def get_category_by_slug(self, slug: str) -> Optional[Category]:
        raise NotImplementedError

    async def create_category(self, category: Category) -> Category:
        raise NotImplementedError

    async def list_categories(self) -> List[Category]:
        raise NotImplementedError

    # Customers
    async def get_customer(self, shopify_customer_id: str) -> Optional[Customer]:
        raise NotImplementedError

    async def get_customer_by_email(self, email: str) -> Optional[Customer]:
        raise NotImplementedError

    async def save_customer(self, customer: Customer) -> str:
        raise NotImplementedError

    # Orders
    async def get_order(self, shopify_order_id: str) -> Optional[Order]:
        raise NotImplementedError

    async def save_order(self, order: Order) -> str:
        """Upsert the order by platform id and replace its line items. Returns the local id."""
        raise NotImplementedError


class BaseStore:
    """Lifecycle plus keyed sessions over a CatalogRepository."""

    def __init__(self):
        self.is_available = False

    async def open(self):
        raise NotImplementedError

    async def close(self):
        raise NotImplementedError

    async def ping(self) -> bool:
        raise NotImplementedError

    def session(self, kind: str, key: str) -> AsyncContextManager[CatalogRepository]:
        """
        Exclusive, atomic unit of work for one external key.

        Sessions sharing (kind, key) run one at a time; everything written
        inside a session is committed together or not at all.
        """
        raise NotImplementedError

    async def counts(self) -> Dict[str, int]:
        raise NotImplementedError

    async def record_webhook_event(self, event: Dict[str, Any]):
        raise NotImplementedError

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
