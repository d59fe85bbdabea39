"""
Customer and order contracts.
Order items are a frozen snapshot taken at order time and never follow live catalog data.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List


ORDER_STATUSES = ("PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED")

FINANCIAL_STATUS_MAP = {
    "pending": "PENDING",
    "paid": "CONFIRMED",
    "partially_paid": "PENDING",
    "refunded": "CANCELLED",
    "voided": "CANCELLED",
    "authorized": "PENDING",
}

FULFILLMENT_STATUS_MAP = {
    "fulfilled": "DELIVERED",
    "partial": "SHIPPED",
    "unfulfilled": "PENDING",
    "restocked": "CANCELLED",
}


@dataclass
class Customer:
    """Storefront user populated from the platform's customers."""
    shopify_customer_id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    accepts_marketing: bool = False
    total_spent: float = 0.0
    order_count: int = 0
    tags: str = ""
    note: str = ""
    verified_email: bool = False
    address: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    id: Optional[str] = None


@dataclass(frozen=True)
class OrderItem:
    """Line item snapshot: name and price as charged."""
    product_name: str
    quantity: int
    price: float
    sku: Optional[str] = None
    shopify_variant_id: Optional[str] = None
    shopify_product_id: Optional[str] = None


@dataclass
class Order:
    shopify_order_id: str
    name: str = ""
    email: str = ""
    status: str = "PENDING"
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    currency: str = "USD"
    total_amount: float = 0.0
    subtotal_price: float = 0.0
    total_tax: float = 0.0
    shipping_price: float = 0.0
    total_discounts: float = 0.0
    tags: str = ""
    note: str = ""
    billing_address: str = ""
    shipping_address: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItem] = field(default_factory=list)

    id: Optional[str] = None
    # Local user link; None for guest orders
    user_id: Optional[str] = None


def map_order_status(financial_status: Optional[str], fulfillment_status: Optional[str] = None,
                     cancelled: bool = False) -> str:
    """Derive the local order status from the platform's financial and fulfillment states."""
    if cancelled:
        return "CANCELLED"

    status = FINANCIAL_STATUS_MAP.get((financial_status or "").lower(), "PENDING")
    if status == "CANCELLED":
        return status

    fulfilled = FULFILLMENT_STATUS_MAP.get((fulfillment_status or "").lower())
    if fulfilled and fulfilled != "PENDING":
        return fulfilled

    return status


def join_address(parts: List[Optional[str]]) -> str:
    return ", ".join(p.strip() for p in parts if p and p.strip())
