"""
Order normalization for the orders export (one row per line item) and orders/* webhooks.
"""
from typing import Any, Dict, Iterable, List

from picksmart.errors import EntityReconcileError
from picksmart.logger import logger
from picksmart.models.commerce import Order, OrderItem, map_order_status, join_address
from picksmart.normalizers.customers import format_address
from picksmart.normalizers.fields import clean, as_id, parse_float, parse_int, parse_timestamp


class OrderNormalizer:

    @staticmethod
    def group_rows(rows: Iterable[Dict[str, str]]) -> Dict[str, Order]:
        """Collapse line-item rows into one order per id; header fields come from the first row."""
        orders: Dict[str, Order] = {}
        orphaned = 0

        for row in rows:
            order_id = as_id(row.get("id"))
            if not order_id:
                orphaned += 1
                continue

            order = orders.get(order_id)
            if order is None:
                order = OrderNormalizer._from_row(order_id, row)
                orders[order_id] = order

            if clean(row.get("lineitem_name")):
                order.items.append(OrderItem(
                    product_name=row["lineitem_name"].strip(),
                    quantity=parse_int(row.get("lineitem_quantity"), default=1),
                    price=parse_float(row.get("lineitem_price")) or 0.0,
                    sku=clean(row.get("lineitem_sku")),
                    shopify_variant_id=as_id(row.get("lineitem_variant_id")),
                    shopify_product_id=as_id(row.get("lineitem_product_id")),
                ))

        if orphaned:
            logger.warning(f"Ignored {orphaned} order rows without an id")

        return orders

    @staticmethod
    def _from_row(order_id: str, row: Dict[str, str]) -> Order:
        financial = clean(row.get("financial_status"))
        fulfillment = clean(row.get("fulfillment_status"))

        return Order(
            shopify_order_id=order_id,
            name=clean(row.get("name")) or "",
            email=clean(row.get("email")) or "",
            status=map_order_status(financial, fulfillment),
            financial_status=financial,
            fulfillment_status=fulfillment,
            currency=clean(row.get("currency")) or "USD",
            total_amount=parse_float(row.get("total_price")) or 0.0,
            subtotal_price=parse_float(row.get("subtotal_price")) or 0.0,
            total_tax=parse_float(row.get("total_tax")) or 0.0,
            shipping_price=parse_float(row.get("shipping_price")) or 0.0,
            total_discounts=parse_float(row.get("total_discounts")) or 0.0,
            tags=clean(row.get("tags")) or "",
            note=clean(row.get("note")) or "",
            billing_address=OrderNormalizer._row_address(row, "billing"),
            shipping_address=OrderNormalizer._row_address(row, "shipping"),
            created_at=parse_timestamp(row.get("created_at")),
            updated_at=parse_timestamp(row.get("updated_at")),
        )

    @staticmethod
    def _row_address(row: Dict[str, str], prefix: str) -> str:
        return join_address([
            row.get(f"{prefix}_name"),
            row.get(f"{prefix}_street"),
            row.get(f"{prefix}_city"),
            row.get(f"{prefix}_province"),
            row.get(f"{prefix}_country"),
            row.get(f"{prefix}_zip"),
        ])

    @staticmethod
    def from_payload(payload: Dict[str, Any]) -> Order:
        order_id = as_id(payload.get("id"))
        if not order_id:
            raise EntityReconcileError(str(payload.get("name")), "order payload has no id")

        financial = clean(payload.get("financial_status"))
        fulfillment = clean(payload.get("fulfillment_status"))
        shipping = (
            ((payload.get("total_shipping_price_set") or {}).get("shop_money") or {}).get("amount")
        )

        items: List[OrderItem] = []
        for line in payload.get("line_items") or []:
            items.append(OrderItem(
                product_name=clean(line.get("name")) or clean(line.get("title")) or "",
                quantity=parse_int(line.get("quantity"), default=1),
                price=parse_float(line.get("price")) or 0.0,
                sku=clean(line.get("sku")),
                shopify_variant_id=as_id(line.get("variant_id")),
                shopify_product_id=as_id(line.get("product_id")),
            ))

        return Order(
            shopify_order_id=order_id,
            name=clean(payload.get("name")) or "",
            email=clean(payload.get("email")) or "",
            status=map_order_status(financial, fulfillment, cancelled=bool(payload.get("cancelled_at"))),
            financial_status=financial,
            fulfillment_status=fulfillment,
            currency=clean(payload.get("currency")) or "USD",
            total_amount=parse_float(payload.get("total_price")) or 0.0,
            subtotal_price=parse_float(payload.get("subtotal_price")) or 0.0,
            total_tax=parse_float(payload.get("total_tax")) or 0.0,
            shipping_price=parse_float(shipping) or 0.0,
            total_discounts=parse_float(payload.get("total_discounts")) or 0.0,
            tags=clean(payload.get("tags")) or "",
            note=clean(payload.get("note")) or "",
            billing_address=format_address(payload.get("billing_address")),
            shipping_address=format_address(payload.get("shipping_address")),
            created_at=parse_timestamp(payload.get("created_at")),
            updated_at=parse_timestamp(payload.get("updated_at")),
            items=items,
        )
