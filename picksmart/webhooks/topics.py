"""
Closed set of webhook topics the sync service understands.
"""
from enum import Enum
from typing import Optional


class TopicFamily(Enum):
    PRODUCT = "product"
    ORDER = "order"
    CUSTOMER = "customer"
    NONE = "none"


class WebhookTopic(Enum):
    PRODUCTS_CREATE = "products/create"
    PRODUCTS_UPDATE = "products/update"
    PRODUCTS_DELETE = "products/delete"
    ORDERS_CREATE = "orders/create"
    ORDERS_UPDATED = "orders/updated"
    ORDERS_PAID = "orders/paid"
    ORDERS_CANCELLED = "orders/cancelled"
    ORDERS_FULFILLED = "orders/fulfilled"
    CUSTOMERS_CREATE = "customers/create"
    CUSTOMERS_UPDATE = "customers/update"
    # Anything the platform adds later
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "WebhookTopic":
        value = (raw or "").strip().lower()
        for topic in cls:
            if topic is not cls.UNRECOGNIZED and topic.value == value:
                return topic
        return cls.UNRECOGNIZED

    @property
    def family(self) -> TopicFamily:
        if self is WebhookTopic.UNRECOGNIZED:
            return TopicFamily.NONE
        return {
            "products": TopicFamily.PRODUCT,
            "orders": TopicFamily.ORDER,
            "customers": TopicFamily.CUSTOMER,
        }[self.value.split("/")[0]]
