"""
PostgreSQL-backed store.
Each session is one pooled connection inside one transaction that holds an
advisory lock on the session key, so parent and child writes land together.
"""
import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import asyncpg

from picksmart.config import config
from picksmart.errors import StoreError, RetryExhaustedError
from picksmart.logger import logger
from picksmart.models.catalog import Product, Variant, Image, Metafield, Category
from picksmart.models.commerce import Customer, Order, OrderItem
from picksmart.store.base import BaseStore, CatalogRepository
from picksmart.utils.retry import async_retry

SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    slug TEXT NOT NULL UNIQUE,
    path TEXT NOT NULL UNIQUE,
    parent_id TEXT REFERENCES categories(id),
    level INTEGER NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    handle TEXT NOT NULL UNIQUE,
    shopify_id TEXT,
    title TEXT NOT NULL DEFAULT '',
    body_html TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    vendor TEXT NOT NULL DEFAULT '',
    product_type TEXT NOT NULL DEFAULT '',
    category_path TEXT,
    category_id TEXT REFERENCES categories(id),
    tags TEXT[] NOT NULL DEFAULT '{}',
    published BOOLEAN NOT NULL DEFAULT FALSE,
    status TEXT NOT NULL DEFAULT 'active',
    seo_title TEXT,
    seo_description TEXT,
    price DOUBLE PRECISION NOT NULL DEFAULT 0,
    compare_at_price DOUBLE PRECISION,
    cost_per_item DOUBLE PRECISION,
    stock INTEGER NOT NULL DEFAULT 0,
    image_url TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS products_shopify_id_idx ON products (shopify_id);

CREATE TABLE IF NOT EXISTS product_variants (
    id TEXT PRIMARY KEY,
    product_id TEXT NOT NULL REFERENCES products(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    title TEXT NOT NULL,
    sku TEXT,
    barcode TEXT,
    price DOUBLE PRECISION NOT NULL,
    compare_at_price DOUBLE PRECISION,
    cost_per_item DOUBLE PRECISION,
    inventory_qty INTEGER NOT NULL DEFAULT 0,
    weight DOUBLE PRECISION,
    option1_name TEXT,
    option1_value TEXT,
    option2_name TEXT,
    option2_value TEXT,
    option3_name TEXT,
    option3_value TEXT,
    image_src TEXT
);

CREATE TABLE IF NOT EXISTS product_images (
    id TEXT PRIMARY KEY,
    product_id TEXT NOT NULL REFERENCES products(id) ON DELETE CASCADE,
    src TEXT NOT NULL,
    position INTEGER NOT NULL,
    sort_order INTEGER NOT NULL,
    alt_text TEXT
);

CREATE TABLE IF NOT EXISTS product_metafields (
    id TEXT PRIMARY KEY,
    product_id TEXT NOT NULL REFERENCES products(id) ON DELETE CASCADE,
    namespace TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    type TEXT NOT NULL,
    UNIQUE (product_id, namespace, key)
);

CREATE TABLE IF NOT EXISTS customers (
    id TEXT PRIMARY KEY,
    shopify_customer_id TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL,
    first_name TEXT NOT NULL DEFAULT '',
    last_name TEXT NOT NULL DEFAULT '',
    phone TEXT NOT NULL DEFAULT '',
    accepts_marketing BOOLEAN NOT NULL DEFAULT FALSE,
    total_spent DOUBLE PRECISION NOT NULL DEFAULT 0,
    order_count INTEGER NOT NULL DEFAULT 0,
    tags TEXT NOT NULL DEFAULT '',
    note TEXT NOT NULL DEFAULT '',
    verified_email BOOLEAN NOT NULL DEFAULT FALSE,
    address TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMPTZ,
    updated_at TIMESTAMPTZ
);
CREATE INDEX IF NOT EXISTS customers_email_idx ON customers (lower(email));

CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY,
    shopify_order_id TEXT NOT NULL UNIQUE,
    user_id TEXT REFERENCES customers(id),
    name TEXT NOT NULL DEFAULT '',
    email TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL,
    financial_status TEXT,
    fulfillment_status TEXT,
    currency TEXT NOT NULL DEFAULT 'USD',
    total_amount DOUBLE PRECISION NOT NULL DEFAULT 0,
    subtotal_price DOUBLE PRECISION NOT NULL DEFAULT 0,
    total_tax DOUBLE PRECISION NOT NULL DEFAULT 0,
    shipping_price DOUBLE PRECISION NOT NULL DEFAULT 0,
    total_discounts DOUBLE PRECISION NOT NULL DEFAULT 0,
    tags TEXT NOT NULL DEFAULT '',
    note TEXT NOT NULL DEFAULT '',
    billing_address TEXT NOT NULL DEFAULT '',
    shipping_address TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMPTZ,
    updated_at TIMESTAMPTZ
);

CREATE TABLE IF NOT EXISTS order_items (
    id TEXT PRIMARY KEY,
    order_id TEXT NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    product_name TEXT NOT NULL,
    quantity INTEGER NOT NULL,
    price DOUBLE PRECISION NOT NULL,
    sku TEXT,
    shopify_variant_id TEXT,
    shopify_product_id TEXT
);

CREATE TABLE IF NOT EXISTS webhook_logs (
    id TEXT PRIMARY KEY,
    topic TEXT NOT NULL,
    status TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 1,
    processing_time DOUBLE PRECISION,
    error TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);
"""


def _new_id() -> str:
    return str(uuid.uuid4())


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PostgresSession(CatalogRepository):
    """Repository bound to one connection and its open transaction."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    # Products

    async def get_product(self, handle: str) -> Optional[Product]:
        row = await self.conn.fetchrow("SELECT * FROM products WHERE handle=$1", handle)
        return await self._load_product(row) if row else None

    async def get_product_by_shopify_id(self, shopify_id: str) -> Optional[Product]:
        row = await self.conn.fetchrow("SELECT * FROM products WHERE shopify_id=$1", shopify_id)
        return await self._load_product(row) if row else None

    async def save_product(self, product: Product) -> str:
        product_id = await self.conn.fetchval(
            """
            INSERT INTO products (id, handle, shopify_id, title, body_html, description, vendor,
                product_type, category_path, category_id, tags, published, status, seo_title,
                seo_description, price, compare_at_price, cost_per_item, stock, image_url)
            VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,$13,$14,$15,$16,$17,$18,$19,$20)
            ON CONFLICT (handle) DO UPDATE SET
                shopify_id = COALESCE(EXCLUDED.shopify_id, products.shopify_id),
                title = EXCLUDED.title,
                body_html = EXCLUDED.body_html,
                description = EXCLUDED.description,
                vendor = EXCLUDED.vendor,
                product_type = EXCLUDED.product_type,
                category_path = EXCLUDED.category_path,
                category_id = EXCLUDED.category_id,
                tags = EXCLUDED.tags,
                published = EXCLUDED.published,
                status = EXCLUDED.status,
                seo_title = EXCLUDED.seo_title,
                seo_description = EXCLUDED.seo_description,
                price = EXCLUDED.price,
                compare_at_price = EXCLUDED.compare_at_price,
                cost_per_item = EXCLUDED.cost_per_item,
                stock = EXCLUDED.stock,
                image_url = EXCLUDED.image_url,
                updated_at = NOW()
            RETURNING id
            """,
            _new_id(), product.handle, product.shopify_id, product.title, product.body_html,
            product.description, product.vendor, product.product_type, product.category_path,
            product.category_id, list(product.tags), product.published, product.status,
            product.seo_title, product.seo_description, product.price, product.compare_at_price,
            product.cost_per_item, product.stock, product.image_url
        )

        for table in ("product_variants", "product_images", "product_metafields"):
            await self.conn.execute(f"DELETE FROM {table} WHERE product_id=$1", product_id)

        if product.variants:
            await self.conn.executemany(
                """
                INSERT INTO product_variants (id, product_id, position, title, sku, barcode, price,
                    compare_at_price, cost_per_item, inventory_qty, weight, option1_name, option1_value,
                    option2_name, option2_value, option3_name, option3_value, image_src)
                VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,$13,$14,$15,$16,$17,$18)
                """,
                [
                    (_new_id(), product_id, i, v.title, v.sku, v.barcode, v.price, v.compare_at_price,
                     v.cost_per_item, v.inventory_qty, v.weight, v.option1_name, v.option1_value,
                     v.option2_name, v.option2_value, v.option3_name, v.option3_value, v.image_src)
                    for i, v in enumerate(product.variants)
                ]
            )

        if product.images:
            await self.conn.executemany(
                "INSERT INTO product_images (id, product_id, src, position, sort_order, alt_text) "
                "VALUES ($1,$2,$3,$4,$5,$6)",
                [
                    (_new_id(), product_id, img.src, img.position, i, img.alt_text)
                    for i, img in enumerate(product.images)
                ]
            )

        if product.metafields:
            await self.conn.executemany(
                "INSERT INTO product_metafields (id, product_id, namespace, key, value, type) "
                "VALUES ($1,$2,$3,$4,$5,$6)",
                [
                    (_new_id(), product_id, m.namespace, m.key, m.value, m.type)
                    for m in product.metafields
                ]
            )

        return product_id

    async def set_product_status(self, handle: str, status: str) -> bool:
        result = await self.conn.execute(
            "UPDATE products SET status=$2, updated_at=NOW() WHERE handle=$1", handle, status
        )
        return result.endswith(" 1")

    async def list_products(self, limit: int = 50) -> List[Product]:
        rows = await self.conn.fetch("SELECT * FROM products ORDER BY created_at LIMIT $1", limit)
        return [await self._load_product(row) for row in rows]

    async def _load_product(self, row) -> Product:
        variants = await self.conn.fetch(
            "SELECT * FROM product_variants WHERE product_id=$1 ORDER BY position", row["id"]
        )
        images = await self.conn.fetch(
            "SELECT * FROM product_images WHERE product_id=$1 ORDER BY position, sort_order", row["id"]
        )
        metafields = await self.conn.fetch(
            "SELECT * FROM product_metafields WHERE product_id=$1 ORDER BY namespace, key", row["id"]
        )

        return Product(
            id=row["id"],
            handle=row["handle"],
            shopify_id=row["shopify_id"],
            title=row["title"],
            body_html=row["body_html"],
            vendor=row["vendor"],
            product_type=row["product_type"],
            category_path=row["category_path"],
            category_id=row["category_id"],
            tags=list(row["tags"] or []),
            published=row["published"],
            status=row["status"],
            seo_title=row["seo_title"],
            seo_description=row["seo_description"],
            variants=[
                Variant(
                    title=v["title"], price=v["price"], sku=v["sku"], barcode=v["barcode"],
                    compare_at_price=v["compare_at_price"], cost_per_item=v["cost_per_item"],
                    inventory_qty=v["inventory_qty"], weight=v["weight"],
                    option1_name=v["option1_name"], option1_value=v["option1_value"],
                    option2_name=v["option2_name"], option2_value=v["option2_value"],
                    option3_name=v["option3_name"], option3_value=v["option3_value"],
                    image_src=v["image_src"],
                )
                for v in variants
            ],
            images=[Image(src=i["src"], position=i["position"], alt_text=i["alt_text"]) for i in images],
            metafields=[
                Metafield(namespace=m["namespace"], key=m["key"], value=m["value"], type=m["type"])
                for m in metafields
            ],
        )

    # Categories

    async def get_category_by_path(self, path: str) -> Optional[Category]:
        row = await self.conn.fetchrow("SELECT * FROM categories WHERE path=$1", path)
        return self._category(row) if row else None

    async def get_category_by_name(self, name: str) -> Optional[Category]:
        row = await self.conn.fetchrow("SELECT * FROM categories WHERE name=$1", name)
        return self._category(row) if row else None

    async def get_category_by_slug(self, slug: str) -> Optional[Category]:
        row = await self.conn.fetchrow("SELECT * FROM categories WHERE slug=$1", slug)
        return self._category(row) if row else None

    async def create_category(self, category: Category) -> Category:
        row = await self.conn.fetchrow(
            "INSERT INTO categories (id, name, slug, path, parent_id, level) "
            "VALUES ($1,$2,$3,$4,$5,$6) RETURNING *",
            _new_id(), category.name, category.slug, category.path, category.parent_id, category.level
        )
        return self._category(row)

    async def list_categories(self) -> List[Category]:
        rows = await self.conn.fetch("SELECT * FROM categories ORDER BY level, path")
        return [self._category(row) for row in rows]

    @staticmethod
    def _category(row) -> Category:
        return Category(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            path=row["path"],
            parent_id=row["parent_id"],
            level=row["level"],
        )

    # Customers

    async def get_customer(self, shopify_customer_id: str) -> Optional[Customer]:
        row = await self.conn.fetchrow(
            "SELECT * FROM customers WHERE shopify_customer_id=$1", shopify_customer_id
        )
        return self._customer(row) if row else None

    async def get_customer_by_email(self, email: str) -> Optional[Customer]:
        row = await self.conn.fetchrow(
            "SELECT * FROM customers WHERE lower(email)=lower($1) LIMIT 1", email
        )
        return self._customer(row) if row else None

    async def save_customer(self, customer: Customer) -> str:
        return await self.conn.fetchval(
            """
            INSERT INTO customers (id, shopify_customer_id, email, first_name, last_name, phone,
                accepts_marketing, total_spent, order_count, tags, note, verified_email, address,
                created_at, updated_at)
            VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,$13,$14,$15)
            ON CONFLICT (shopify_customer_id) DO UPDATE SET
                email = EXCLUDED.email,
                first_name = EXCLUDED.first_name,
                last_name = EXCLUDED.last_name,
                phone = EXCLUDED.phone,
                accepts_marketing = EXCLUDED.accepts_marketing,
                total_spent = EXCLUDED.total_spent,
                order_count = EXCLUDED.order_count,
                tags = EXCLUDED.tags,
                note = EXCLUDED.note,
                verified_email = EXCLUDED.verified_email,
                address = EXCLUDED.address,
                updated_at = COALESCE(EXCLUDED.updated_at, NOW())
            RETURNING id
            """,
            _new_id(), customer.shopify_customer_id, customer.email, customer.first_name,
            customer.last_name, customer.phone, customer.accepts_marketing, customer.total_spent,
            customer.order_count, customer.tags, customer.note, customer.verified_email,
            customer.address, _aware(customer.created_at), _aware(customer.updated_at)
        )

    @staticmethod
    def _customer(row) -> Customer:
        return Customer(
            id=row["id"],
            shopify_customer_id=row["shopify_customer_id"],
            email=row["email"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            phone=row["phone"],
            accepts_marketing=row["accepts_marketing"],
            total_spent=row["total_spent"],
            order_count=row["order_count"],
            tags=row["tags"],
            note=row["note"],
            verified_email=row["verified_email"],
            address=row["address"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # Orders

    async def get_order(self, shopify_order_id: str) -> Optional[Order]:
        row = await self.conn.fetchrow("SELECT * FROM orders WHERE shopify_order_id=$1", shopify_order_id)
        if not row:
            return None

        items = await self.conn.fetch(
            "SELECT * FROM order_items WHERE order_id=$1 ORDER BY position", row["id"]
        )
        return Order(
            id=row["id"],
            shopify_order_id=row["shopify_order_id"],
            user_id=row["user_id"],
            name=row["name"],
            email=row["email"],
            status=row["status"],
            financial_status=row["financial_status"],
            fulfillment_status=row["fulfillment_status"],
            currency=row["currency"],
            total_amount=row["total_amount"],
            subtotal_price=row["subtotal_price"],
            total_tax=row["total_tax"],
            shipping_price=row["shipping_price"],
            total_discounts=row["total_discounts"],
            tags=row["tags"],
            note=row["note"],
            billing_address=row["billing_address"],
            shipping_address=row["shipping_address"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            items=[
                OrderItem(
                    product_name=i["product_name"], quantity=i["quantity"], price=i["price"],
                    sku=i["sku"], shopify_variant_id=i["shopify_variant_id"],
                    shopify_product_id=i["shopify_product_id"],
                )
                for i in items
            ],
        )

    async def save_order(self, order: Order) -> str:
        order_id = await self.conn.fetchval(
            """
            INSERT INTO orders (id, shopify_order_id, user_id, name, email, status, financial_status,
                fulfillment_status, currency, total_amount, subtotal_price, total_tax, shipping_price,
                total_discounts, tags, note, billing_address, shipping_address, created_at, updated_at)
            VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,$13,$14,$15,$16,$17,$18,$19,$20)
            ON CONFLICT (shopify_order_id) DO UPDATE SET
                user_id = COALESCE(EXCLUDED.user_id, orders.user_id),
                name = EXCLUDED.name,
                email = EXCLUDED.email,
                status = EXCLUDED.status,
                financial_status = EXCLUDED.financial_status,
                fulfillment_status = EXCLUDED.fulfillment_status,
                currency = EXCLUDED.currency,
                total_amount = EXCLUDED.total_amount,
                subtotal_price = EXCLUDED.subtotal_price,
                total_tax = EXCLUDED.total_tax,
                shipping_price = EXCLUDED.shipping_price,
                total_discounts = EXCLUDED.total_discounts,
                tags = EXCLUDED.tags,
                note = EXCLUDED.note,
                billing_address = EXCLUDED.billing_address,
                shipping_address = EXCLUDED.shipping_address,
                updated_at = COALESCE(EXCLUDED.updated_at, NOW())
            RETURNING id
            """,
            _new_id(), order.shopify_order_id, order.user_id, order.name, order.email, order.status,
            order.financial_status, order.fulfillment_status, order.currency, order.total_amount,
            order.subtotal_price, order.total_tax, order.shipping_price, order.total_discounts,
            order.tags, order.note, order.billing_address, order.shipping_address,
            _aware(order.created_at), _aware(order.updated_at)
        )

        await self.conn.execute("DELETE FROM order_items WHERE order_id=$1", order_id)
        if order.items:
            await self.conn.executemany(
                "INSERT INTO order_items (id, order_id, position, product_name, quantity, price, sku, "
                "shopify_variant_id, shopify_product_id) VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9)",
                [
                    (_new_id(), order_id, i, item.product_name, item.quantity, item.price, item.sku,
                     item.shopify_variant_id, item.shopify_product_id)
                    for i, item in enumerate(order.items)
                ]
            )

        return order_id


class PostgresStore(BaseStore):
    """asyncpg pool plus advisory-locked sessions."""

    def __init__(self, dsn: Optional[str] = None):
        super().__init__()
        self.dsn = dsn or config.DATABASE_URL
        self.pool: Optional[asyncpg.Pool] = None

    @async_retry(exceptions=(OSError, asyncio.TimeoutError, asyncpg.PostgresError))
    async def _create_pool(self) -> asyncpg.Pool:
        return await asyncpg.create_pool(
            self.dsn,
            min_size=config.DB_POOL_MIN_SIZE,
            max_size=config.DB_POOL_MAX_SIZE,
        )

    async def open(self):
        if self.pool:
            return

        try:
            self.pool = await self._create_pool()
        except RetryExhaustedError as e:
            raise StoreError(f"Database unreachable: {e}") from e

        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA)

        self.is_available = True
        logger.info("Postgres store opened", extra={"extra": {"component": "database"}})

    async def close(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
        self.is_available = False

    async def ping(self) -> bool:
        if not self.pool:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    @asynccontextmanager
    async def session(self, kind: str, key: str):
        if not self.pool:
            raise StoreError("Store is not open")

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", f"{kind}:{key}")
                yield PostgresSession(conn)

    async def counts(self) -> Dict[str, int]:
        if not self.pool:
            raise StoreError("Store is not open")

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    (SELECT COUNT(*) FROM products) AS products,
                    (SELECT COUNT(*) FROM product_variants) AS variants,
                    (SELECT COUNT(*) FROM product_images) AS images,
                    (SELECT COUNT(*) FROM product_metafields) AS metafields,
                    (SELECT COUNT(*) FROM categories) AS categories,
                    (SELECT COUNT(*) FROM customers) AS customers,
                    (SELECT COUNT(*) FROM orders) AS orders,
                    (SELECT COUNT(*) FROM order_items) AS order_items
                """
            )
        return {k: int(v) for k, v in dict(row).items()}

    async def record_webhook_event(self, event: Dict[str, Any]):
        if not self.pool:
            raise StoreError("Store is not open")

        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO webhook_logs (id, topic, status, attempts, processing_time, error)
                VALUES ($1,$2,$3,$4,$5,$6)
                ON CONFLICT (id) DO UPDATE SET
                    status = EXCLUDED.status,
                    attempts = EXCLUDED.attempts,
                    processing_time = EXCLUDED.processing_time,
                    error = EXCLUDED.error,
                    updated_at = NOW()
                """,
                event["id"], event["topic"], event["status"], event["attempts"],
                event.get("processing_time"), event.get("error")
            )
