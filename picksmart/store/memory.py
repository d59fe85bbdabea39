"""
In-process store. Backs dry runs and tests.
"""
import asyncio
import copy
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from picksmart.logger import logger
from picksmart.models.catalog import Product, Category
from picksmart.models.commerce import Customer, Order
from picksmart.store.base import BaseStore, CatalogRepository


def _new_id() -> str:
    return str(uuid.uuid4())


class MemoryStore(BaseStore, CatalogRepository):
    """Dict-backed store; each session holds a per-key asyncio.Lock."""

    def __init__(self):
        super().__init__()
        self.products: Dict[str, Product] = {}
        self.categories: Dict[str, Category] = {}
        self.customers: Dict[str, Customer] = {}
        self.orders: Dict[str, Order] = {}
        self.webhook_events: Dict[str, Dict[str, Any]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def open(self):
        self.is_available = True
        logger.info("Memory store opened")

    async def close(self):
        self.is_available = False

    async def ping(self) -> bool:
        return self.is_available

    @asynccontextmanager
    async def session(self, kind: str, key: str):
        lock = self._locks.setdefault(f"{kind}:{key}", asyncio.Lock())
        async with lock:
            yield self

    async def counts(self) -> Dict[str, int]:
        return {
            "products": len(self.products),
            "variants": sum(len(p.variants) for p in self.products.values()),
            "images": sum(len(p.images) for p in self.products.values()),
            "metafields": sum(len(p.metafields) for p in self.products.values()),
            "categories": len(self.categories),
            "customers": len(self.customers),
            "orders": len(self.orders),
            "order_items": sum(len(o.items) for o in self.orders.values()),
        }

    async def record_webhook_event(self, event: Dict[str, Any]):
        self.webhook_events[event["id"]] = dict(event)

    # Products

    async def get_product(self, handle: str) -> Optional[Product]:
        product = self.products.get(handle)
        return copy.deepcopy(product) if product else None

    async def get_product_by_shopify_id(self, shopify_id: str) -> Optional[Product]:
        for product in self.products.values():
            if product.shopify_id == shopify_id:
                return copy.deepcopy(product)
        return None

    async def save_product(self, product: Product) -> str:
        existing = self.products.get(product.handle)
        stored = copy.deepcopy(product)
        stored.id = existing.id if existing else _new_id()
        self.products[product.handle] = stored
        return stored.id

    async def set_product_status(self, handle: str, status: str) -> bool:
        product = self.products.get(handle)
        if not product:
            return False
        product.status = status
        return True

    async def list_products(self, limit: int = 50) -> List[Product]:
        return [copy.deepcopy(p) for p in list(self.products.values())[:limit]]

    # Categories

    async def get_category_by_path(self, path: str) -> Optional[Category]:
        category = self.categories.get(path)
        return copy.copy(category) if category else None

    async def get_category_by_name(self, name: str) -> Optional[Category]:
        for category in self.categories.values():
            if category.name == name:
                return copy.copy(category)
        return None

    async def get_category_by_slug(self, slug: str) -> Optional[Category]:
        for category in self.categories.values():
            if category.slug == slug:
                return copy.copy(category)
        return None

    async def create_category(self, category: Category) -> Category:
        stored = copy.copy(category)
        stored.id = _new_id()
        self.categories[stored.path] = stored
        return copy.copy(stored)

    async def list_categories(self) -> List[Category]:
        return [copy.copy(c) for c in self.categories.values()]

    # Customers

    async def get_customer(self, shopify_customer_id: str) -> Optional[Customer]:
        customer = self.customers.get(shopify_customer_id)
        return copy.copy(customer) if customer else None

    async def get_customer_by_email(self, email: str) -> Optional[Customer]:
        for customer in self.customers.values():
            if customer.email and customer.email.lower() == email.lower():
                return copy.copy(customer)
        return None

    async def save_customer(self, customer: Customer) -> str:
        existing = self.customers.get(customer.shopify_customer_id)
        stored = copy.copy(customer)
        stored.id = existing.id if existing else _new_id()
        self.customers[customer.shopify_customer_id] = stored
        return stored.id

    # Orders

    async def get_order(self, shopify_order_id: str) -> Optional[Order]:
        order = self.orders.get(shopify_order_id)
        return copy.deepcopy(order) if order else None

    async def save_order(self, order: Order) -> str:
        existing = self.orders.get(order.shopify_order_id)
        stored = copy.deepcopy(order)
        stored.id = existing.id if existing else _new_id()
        self.orders[order.shopify_order_id] = stored
        return stored.id
