"""
Test CSV reading and customer/order/payload normalization.
"""
import io

import pytest

from picksmart.errors import InputMalformedError, EntityReconcileError
from picksmart.normalizers.csv_rows import parse_rows, read_rows
from picksmart.normalizers.customers import CustomerNormalizer
from picksmart.normalizers.fields import parse_float, parse_bool, parse_tags, parse_timestamp
from picksmart.normalizers.orders import OrderNormalizer
from picksmart.normalizers.payloads import ProductPayloadNormalizer


def test_parse_rows_preserves_values_and_order():
    text = 'Handle,Title,Body (HTML)\nmug-1,Mug," <p>a, b</p> "\n\nmug-1,,\n'

    rows = parse_rows(io.StringIO(text))

    assert rows == [
        {"Handle": "mug-1", "Title": "Mug", "Body (HTML)": " <p>a, b</p> "},
        {"Handle": "mug-1", "Title": "", "Body (HTML)": ""},
    ]


def test_parse_rows_rejects_column_mismatch():
    with pytest.raises(InputMalformedError, match="expected 2"):
        parse_rows(io.StringIO("Handle,Title\nmug-1,Mug,extra\n"))


def test_parse_rows_rejects_unterminated_quote():
    with pytest.raises(InputMalformedError):
        parse_rows(io.StringIO('Handle,Title\nmug-1,"Mug\n'))


def test_read_rows_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_rows(str(tmp_path / "missing.csv"))


def test_read_rows_strips_bom(tmp_path):
    path = tmp_path / "products.csv"
    path.write_text("\ufeffHandle,Title\nmug-1,Mug\n", encoding="utf-8")

    assert read_rows(str(path)) == [{"Handle": "mug-1", "Title": "Mug"}]


def test_field_helpers():
    assert parse_float("QAR 1,250.50") == 1250.5
    assert parse_float("") is None
    assert parse_float("n/a") is None
    assert parse_bool("yes") is True
    assert parse_bool("no") is False
    assert parse_tags(["a", " b ", "a"]) == ["a", "b"]
    assert parse_timestamp("2024-03-01 10:15:00 +0300").utcoffset().total_seconds() == 3 * 3600
    assert parse_timestamp("garbage") is None


CUSTOMER_ROW = {
    "id": "7001",
    "email": "amal@example.qa",
    "first_name": "Amal",
    "last_name": "Al-Thani",
    "phone": "+974 5555 0000",
    "accepts_marketing": "yes",
    "total_spent": "420.00",
    "order_count": "3",
    "tags": "vip",
    "verified_email": "true",
    "default_address_address1": "Street 12",
    "default_address_address2": "",
    "default_address_city": "Doha",
    "default_address_country": "Qatar",
}


def test_customer_from_row():
    customer = CustomerNormalizer.from_row(CUSTOMER_ROW)

    assert customer.shopify_customer_id == "7001"
    assert customer.accepts_marketing is True
    assert customer.verified_email is True
    assert customer.total_spent == 420.0
    assert customer.order_count == 3
    assert customer.address == "Street 12, Doha, Qatar"


def test_customer_row_without_id_fails():
    with pytest.raises(EntityReconcileError) as exc_info:
        CustomerNormalizer.from_row({**CUSTOMER_ROW, "id": ""})

    assert exc_info.value.key == "amal@example.qa"


def test_customer_has_email():
    assert CustomerNormalizer.has_email(CUSTOMER_ROW)
    assert not CustomerNormalizer.has_email({**CUSTOMER_ROW, "email": "  "})


def test_customer_payload_marketing_consent():
    customer = CustomerNormalizer.from_payload({
        "id": 55,
        "email": "x@example.com",
        "orders_count": 2,
        "email_marketing_consent": {"state": "subscribed"},
        "default_address": {"address1": "Pearl", "city": "Doha"},
    })

    assert customer.shopify_customer_id == "55"
    assert customer.accepts_marketing is True
    assert customer.order_count == 2
    assert customer.address == "Pearl, Doha"


def test_order_rows_grouped_by_id():
    rows = [
        {"id": "9001", "name": "#1001", "email": "amal@example.qa", "financial_status": "paid",
         "fulfillment_status": "fulfilled", "total_price": "60.00", "currency": "QAR",
         "billing_city": "Doha", "billing_country": "QA",
         "lineitem_name": "Mug", "lineitem_quantity": "2", "lineitem_price": "10.00", "lineitem_sku": "M1"},
        {"id": "9001", "lineitem_name": "Lamp", "lineitem_quantity": "", "lineitem_price": "40"},
        {"id": "9002", "name": "#1002", "financial_status": "refunded", "lineitem_name": ""},
        {"id": "", "lineitem_name": "Orphan"},
    ]

    orders = OrderNormalizer.group_rows(rows)

    assert list(orders) == ["9001", "9002"]
    first = orders["9001"]
    assert first.status == "DELIVERED"
    assert first.currency == "QAR"
    assert first.billing_address == "Doha, QA"
    assert [(i.product_name, i.quantity, i.price) for i in first.items] == [("Mug", 2, 10.0), ("Lamp", 1, 40.0)]
    assert orders["9002"].status == "CANCELLED"
    assert orders["9002"].items == []


def test_order_payload():
    order = OrderNormalizer.from_payload({
        "id": 820982911946154508,
        "name": "#9999",
        "financial_status": "paid",
        "fulfillment_status": "partial",
        "total_price": "598.94",
        "total_shipping_price_set": {"shop_money": {"amount": "10.00"}},
        "shipping_address": {"name": "Bob", "address1": "123 Amoebobacterium St", "city": "Ottawa"},
        "line_items": [{"title": "IPod", "quantity": 1, "price": "199.00", "variant_id": 49148385}],
    })

    assert order.shopify_order_id == "820982911946154508"
    assert order.status == "SHIPPED"
    assert order.shipping_price == 10.0
    assert order.shipping_address == "Bob, 123 Amoebobacterium St, Ottawa"
    assert order.items[0].product_name == "IPod"
    assert order.items[0].shopify_variant_id == "49148385"


def test_product_payload_category_and_metafields():
    product = ProductPayloadNormalizer.normalize({
        "id": 1,
        "handle": "mat",
        "title": "Mat",
        "body_html": "<p>Grippy</p>",
        "status": "unknown",
        "published_at": None,
        "category": {"full_name": "Sporting Goods > Fitness > Mats"},
        "metafields": [
            {"namespace": "custom", "key": "material", "value": "cork"},
            {"namespace": "custom", "key": "material", "value": "rubber"},
            {"namespace": "custom", "key": "empty", "value": ""},
        ],
        "variants": [{"price": "30.00", "sku": "MAT"}],
    })

    assert product.category_path == "Sporting Goods > Fitness > Mats"
    assert product.status == "active"
    assert product.published is False
    assert product.seo_description == "Grippy"
    assert [(m.key, m.value) for m in product.metafields] == [("material", "cork")]
    assert product.variants[0].title == "Default Title"


def test_product_payload_without_handle_fails():
    with pytest.raises(EntityReconcileError):
        ProductPayloadNormalizer.normalize({"id": 3})
