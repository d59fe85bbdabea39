"""
Customer normalization for the customers export and customers/* webhooks.
"""
from typing import Any, Dict, Optional

from picksmart.errors import EntityReconcileError
from picksmart.models.commerce import Customer, join_address
from picksmart.normalizers.fields import (
    clean, as_id, parse_float, parse_int, parse_bool, parse_timestamp
)

ADDRESS_COLUMNS = (
    "default_address_address1",
    "default_address_address2",
    "default_address_city",
    "default_address_province",
    "default_address_country",
    "default_address_zip",
)


class CustomerNormalizer:

    @staticmethod
    def has_email(raw: Dict[str, Any]) -> bool:
        return bool(clean(raw.get("email")))

    @staticmethod
    def from_row(row: Dict[str, str]) -> Customer:
        """
        Build a customer from one export row.

        Raises:
            EntityReconcileError: If the row carries no customer id.
        """
        email = clean(row.get("email")) or ""
        customer_id = as_id(row.get("id"))
        if not customer_id:
            raise EntityReconcileError(email or "<unknown>", "customer row has no id")

        return Customer(
            shopify_customer_id=customer_id,
            email=email,
            first_name=clean(row.get("first_name")) or "",
            last_name=clean(row.get("last_name")) or "",
            phone=clean(row.get("phone")) or "",
            accepts_marketing=parse_bool(row.get("accepts_marketing")),
            total_spent=parse_float(row.get("total_spent")) or 0.0,
            order_count=parse_int(row.get("order_count")),
            tags=clean(row.get("tags")) or "",
            note=clean(row.get("note")) or "",
            verified_email=parse_bool(row.get("verified_email")),
            address=join_address([row.get(col) for col in ADDRESS_COLUMNS]),
            created_at=parse_timestamp(row.get("created_at")),
            updated_at=parse_timestamp(row.get("updated_at")),
        )

    @staticmethod
    def from_payload(payload: Dict[str, Any]) -> Customer:
        customer_id = as_id(payload.get("id"))
        if not customer_id:
            raise EntityReconcileError(str(payload.get("email")), "customer payload has no id")

        return Customer(
            shopify_customer_id=customer_id,
            email=clean(payload.get("email")) or "",
            first_name=clean(payload.get("first_name")) or "",
            last_name=clean(payload.get("last_name")) or "",
            phone=clean(payload.get("phone")) or "",
            accepts_marketing=CustomerNormalizer._accepts_marketing(payload),
            total_spent=parse_float(payload.get("total_spent")) or 0.0,
            order_count=parse_int(payload.get("orders_count")),
            tags=clean(payload.get("tags")) or "",
            note=clean(payload.get("note")) or "",
            verified_email=parse_bool(payload.get("verified_email")),
            address=format_address(payload.get("default_address")),
            created_at=parse_timestamp(payload.get("created_at")),
            updated_at=parse_timestamp(payload.get("updated_at")),
        )

    @staticmethod
    def _accepts_marketing(payload: Dict[str, Any]) -> bool:
        if "accepts_marketing" in payload:
            return parse_bool(payload.get("accepts_marketing"))
        consent = payload.get("email_marketing_consent") or {}
        return consent.get("state") == "subscribed"


def format_address(address: Optional[Dict[str, Any]]) -> str:
    if not address:
        return ""
    return join_address([
        address.get("name"),
        address.get("address1"),
        address.get("address2"),
        address.get("city"),
        address.get("province"),
        address.get("country"),
        address.get("zip"),
    ])
