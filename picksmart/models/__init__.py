from picksmart.models.catalog import Product, Variant, Image, Metafield, Category
from picksmart.models.commerce import Customer, Order, OrderItem

__all__ = [
    "Product",
    "Variant",
    "Image",
    "Metafield",
    "Category",
    "Customer",
    "Order",
    "OrderItem",
]
