import base64
import hashlib
import hmac

import pytest

from picksmart.errors import ConfigError, SignatureError, EntityReconcileError
from picksmart.reconciler import UpsertMode, UpsertReconciler
from picksmart.store.memory import MemoryStore
from picksmart.webhooks.dispatcher import WebhookDispatcher
from picksmart.webhooks.security import compute_signature, verify_signature
from picksmart.webhooks.topics import TopicFamily, WebhookTopic

SECRET = "shpss_test_secret"


def test_compute_signature_matches_platform_format():
    body = b'{"id": 1}'
    expected = base64.b64encode(hmac.new(SECRET.encode(), body, hashlib.sha256).digest()).decode()

    assert compute_signature(body, SECRET) == expected


def test_verify_accepts_valid_signature():
    body = b'{"handle": "mug-1"}'
    verify_signature(body, compute_signature(body, SECRET), SECRET)


@pytest.mark.parametrize("signature, secret", [
    (None, SECRET),
    ("", SECRET),
    ("not-a-signature", SECRET),
    (compute_signature(b'{"handle": "mug-1"}', "other-secret"), SECRET),
    (compute_signature(b'{"handle": "mug-1"}', SECRET), ""),
])
def test_verify_rejects_bad_signatures(signature, secret):
    with pytest.raises(SignatureError):
        verify_signature(b'{"handle": "mug-1"}', signature, secret)


def test_verify_rejects_tampered_body():
    signature = compute_signature(b'{"price": "10.00"}', SECRET)

    with pytest.raises(SignatureError):
        verify_signature(b'{"price": "0.01"}', signature, SECRET)


def test_topic_parse_and_family():
    assert WebhookTopic.parse("products/update") is WebhookTopic.PRODUCTS_UPDATE
    assert WebhookTopic.parse(" Orders/Paid ") is WebhookTopic.ORDERS_PAID
    assert WebhookTopic.parse("inventory_levels/update") is WebhookTopic.UNRECOGNIZED
    assert WebhookTopic.parse(None) is WebhookTopic.UNRECOGNIZED

    assert WebhookTopic.PRODUCTS_DELETE.family is TopicFamily.PRODUCT
    assert WebhookTopic.ORDERS_FULFILLED.family is TopicFamily.ORDER
    assert WebhookTopic.CUSTOMERS_CREATE.family is TopicFamily.CUSTOMER
    assert WebhookTopic.UNRECOGNIZED.family is TopicFamily.NONE


def test_every_topic_has_a_handler():
    dispatcher = WebhookDispatcher(UpsertReconciler(MemoryStore()))

    assert set(dispatcher.handlers) == set(WebhookTopic)


def test_dispatcher_requires_update_mode():
    with pytest.raises(ConfigError):
        WebhookDispatcher(UpsertReconciler(MemoryStore(), mode=UpsertMode.SKIP_EXISTING))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def dispatcher(store):
    return WebhookDispatcher(UpsertReconciler(store))


PRODUCT_PAYLOAD = {
    "id": 632910392,
    "handle": "ipod-nano",
    "title": "IPod Nano - 8GB",
    "body_html": "<p>It's the small iPod.</p>",
    "vendor": "Apple",
    "product_type": "Cult Products",
    "tags": "Emotive, Flash Memory",
    "status": "active",
    "published_at": "2024-01-01T00:00:00-05:00",
    "options": [{"name": "Color", "position": 1}],
    "images": [
        {"id": 2, "src": "https://cdn/ipod-back.jpg", "position": 2},
        {"id": 1, "src": "https://cdn/ipod-front.jpg", "position": 1},
    ],
    "variants": [
        {"id": 10, "title": "Pink", "price": "199.00", "sku": "IPOD2008PINK", "option1": "Pink",
         "inventory_quantity": 10, "grams": 567, "image_id": 1},
        {"id": 11, "title": "Pink", "price": "199.00", "sku": "IPOD2008PINK", "option1": "Pink"},
    ],
}


@pytest.mark.asyncio
async def test_product_update_before_create_creates(store, dispatcher):
    outcome = await dispatcher.dispatch(WebhookTopic.PRODUCTS_UPDATE, PRODUCT_PAYLOAD)

    product = store.products["ipod-nano"]
    assert outcome == "created"
    assert product.shopify_id == "632910392"
    assert len(product.variants) == 1
    assert product.variants[0].image_src == "https://cdn/ipod-front.jpg"
    assert [img.src for img in product.images] == ["https://cdn/ipod-front.jpg", "https://cdn/ipod-back.jpg"]


@pytest.mark.asyncio
async def test_product_create_for_existing_key_updates(store, dispatcher):
    await dispatcher.dispatch(WebhookTopic.PRODUCTS_CREATE, PRODUCT_PAYLOAD)

    outcome = await dispatcher.dispatch(WebhookTopic.PRODUCTS_CREATE, {**PRODUCT_PAYLOAD, "title": "IPod Nano"})

    assert outcome == "updated"
    assert store.products["ipod-nano"].title == "IPod Nano"


@pytest.mark.asyncio
async def test_product_delete_archives(store, dispatcher):
    await dispatcher.dispatch(WebhookTopic.PRODUCTS_CREATE, PRODUCT_PAYLOAD)

    outcome = await dispatcher.dispatch(WebhookTopic.PRODUCTS_DELETE, {"id": 632910392})

    assert outcome == "archived"
    assert store.products["ipod-nano"].status == "archived"


@pytest.mark.asyncio
async def test_order_and_customer_topics(store, dispatcher):
    await dispatcher.dispatch(WebhookTopic.CUSTOMERS_CREATE, {"id": 207119551, "email": "bob@example.com"})
    outcome = await dispatcher.dispatch(WebhookTopic.ORDERS_CANCELLED, {
        "id": 450789469,
        "email": "bob@example.com",
        "financial_status": "paid",
        "cancelled_at": "2024-02-01T10:00:00Z",
        "line_items": [{"name": "IPod Nano - Pink", "quantity": 1, "price": "199.00"}],
    })

    order = store.orders["450789469"]
    assert outcome == "created"
    assert order.status == "CANCELLED"
    assert order.user_id == store.customers["207119551"].id


@pytest.mark.asyncio
async def test_unrecognized_topic_is_ignored(store, dispatcher):
    outcome = await dispatcher.dispatch(WebhookTopic.UNRECOGNIZED, {"id": 1})

    assert outcome == "ignored"
    assert await store.counts() == {k: 0 for k in await store.counts()}


@pytest.mark.asyncio
async def test_product_without_handle_raises(dispatcher):
    with pytest.raises(EntityReconcileError):
        await dispatcher.dispatch(WebhookTopic.PRODUCTS_UPDATE, {"id": 5})
