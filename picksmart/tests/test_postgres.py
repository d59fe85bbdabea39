"""
Test the Postgres store against a mocked asyncpg pool.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest

from picksmart.config import config
from picksmart.errors import StoreError
from picksmart.models.catalog import Product, Variant
from picksmart.models.commerce import Customer
from picksmart.store.postgres import PostgresStore, PostgresSession, SCHEMA


def mock_pool():
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="DELETE 0")
    conn.executemany = AsyncMock()
    conn.fetchval = AsyncMock(return_value="product-uuid")
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])

    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    pool.close = AsyncMock()
    return pool, conn


@pytest.mark.asyncio
async def test_session_takes_advisory_lock_and_replaces_children():
    pool, conn = mock_pool()
    store = PostgresStore(dsn="postgresql://test")
    store.pool = pool

    product = Product(handle="mug-1", title="Mug", variants=[Variant(title="Red", price=10.0, sku="M-R")])

    async with store.session("product", "mug-1") as repo:
        product_id = await repo.save_product(product)

    assert product_id == "product-uuid"
    conn.transaction.assert_called_once()
    assert conn.execute.await_args_list[0] == call("SELECT pg_advisory_xact_lock(hashtext($1))", "product:mug-1")
    assert [c.args[1] for c in conn.execute.await_args_list[1:]] == ["product-uuid"] * 3

    conn.executemany.assert_awaited_once()
    rows = conn.executemany.await_args.args[1]
    assert rows[0][1:5] == ("product-uuid", 0, "Red", "M-R")


@pytest.mark.asyncio
async def test_session_requires_open_store():
    store = PostgresStore(dsn="postgresql://test")

    with pytest.raises(StoreError):
        async with store.session("product", "x"):
            pass


@pytest.mark.asyncio
async def test_set_product_status_reports_match():
    _, conn = mock_pool()
    repo = PostgresSession(conn)

    conn.execute.return_value = "UPDATE 1"
    assert await repo.set_product_status("mug-1", "archived") is True

    conn.execute.return_value = "UPDATE 0"
    assert await repo.set_product_status("ghost", "archived") is False


@pytest.mark.asyncio
async def test_missing_product_is_none():
    _, conn = mock_pool()

    assert await PostgresSession(conn).get_product("nope") is None


@pytest.mark.asyncio
async def test_naive_timestamps_are_stored_as_utc():
    _, conn = mock_pool()
    customer = Customer(shopify_customer_id="7", email="a@b.c", created_at=datetime(2024, 1, 2, 3, 4, 5))

    await PostgresSession(conn).save_customer(customer)

    created_at = conn.fetchval.await_args.args[14]
    assert created_at.tzinfo == timezone.utc


@pytest.mark.asyncio
async def test_open_creates_schema():
    pool, conn = mock_pool()

    with patch("picksmart.store.postgres.asyncpg.create_pool", new=AsyncMock(return_value=pool)):
        store = PostgresStore(dsn="postgresql://test")
        await store.open()

    conn.execute.assert_awaited_once_with(SCHEMA)
    assert store.is_available is True

    await store.close()
    pool.close.assert_awaited_once()
    assert store.is_available is False


@pytest.mark.asyncio
async def test_open_unreachable_raises_store_error():
    create_pool = AsyncMock(side_effect=OSError("connection refused"))

    with patch("picksmart.store.postgres.asyncpg.create_pool", new=create_pool), \
         patch.object(config, "MAX_RETRIES", 0):
        store = PostgresStore(dsn="postgresql://test")
        with pytest.raises(StoreError, match="Database unreachable"):
            await store.open()

    assert store.is_available is False


@pytest.mark.asyncio
async def test_counts_and_ping():
    pool, conn = mock_pool()
    conn.fetchrow.return_value = {"products": 2, "variants": 3, "categories": 1}
    conn.fetchval.return_value = 1
    store = PostgresStore(dsn="postgresql://test")
    store.pool = pool

    assert await store.counts() == {"products": 2, "variants": 3, "categories": 1}
    assert await store.ping() is True

    conn.fetchval.side_effect = OSError("gone")
    assert await store.ping() is False
