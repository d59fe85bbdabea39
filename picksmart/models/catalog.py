"""
Canonical catalog model.
CSV aggregation, webhook payloads and both stores produce and consume these shapes.
"""
import re
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any


PRODUCT_STATUSES = ("active", "draft", "archived")
CATEGORY_DELIMITER = " > "


@dataclass(frozen=True)
class Variant:
    """A purchasable configuration of a product."""
    title: str
    price: float
    sku: Optional[str] = None
    barcode: Optional[str] = None
    compare_at_price: Optional[float] = None
    cost_per_item: Optional[float] = None
    inventory_qty: int = 0
    weight: Optional[float] = None
    option1_name: Optional[str] = None
    option1_value: Optional[str] = None
    option2_name: Optional[str] = None
    option2_value: Optional[str] = None
    option3_name: Optional[str] = None
    option3_value: Optional[str] = None
    # Relation by source URL to one of the product's images
    image_src: Optional[str] = None

    @property
    def dedupe_key(self) -> tuple:
        return (self.sku, self.option1_value)


@dataclass(frozen=True)
class Image:
    """A positioned visual asset owned by one product."""
    src: str
    position: int = 1
    alt_text: Optional[str] = None


@dataclass(frozen=True)
class Metafield:
    """Namespaced key/value attached to a product."""
    namespace: str
    key: str
    value: str
    type: str = "string"

    @property
    def qualified_key(self) -> str:
        return f"{self.namespace}.{self.key}"


@dataclass
class Product:
    """
    Aggregated product keyed by its platform handle.
    `id` and `category_id` are local and only set once the product is persisted.
    """
    handle: str
    title: str = ""
    body_html: str = ""
    vendor: str = ""
    product_type: str = ""
    category_path: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    published: bool = False
    status: str = "active"
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    shopify_id: Optional[str] = None

    variants: List[Variant] = field(default_factory=list)
    images: List[Image] = field(default_factory=list)
    metafields: List[Metafield] = field(default_factory=list)

    id: Optional[str] = None
    category_id: Optional[str] = None

    @property
    def primary_variant(self) -> Optional[Variant]:
        return self.variants[0] if self.variants else None

    @property
    def price(self) -> float:
        return self.primary_variant.price if self.primary_variant else 0.0

    @property
    def compare_at_price(self) -> Optional[float]:
        return self.primary_variant.compare_at_price if self.primary_variant else None

    @property
    def cost_per_item(self) -> Optional[float]:
        return self.primary_variant.cost_per_item if self.primary_variant else None

    @property
    def stock(self) -> int:
        """Denormalized aggregate of variant inventory."""
        return sum(v.inventory_qty for v in self.variants)

    @property
    def image_url(self) -> Optional[str]:
        return self.images[0].src if self.images else None

    @property
    def description(self) -> str:
        return strip_html(self.body_html)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "handle": self.handle,
            "title": self.title,
            "vendor": self.vendor,
            "product_type": self.product_type,
            "category_path": self.category_path,
            "category_id": self.category_id,
            "tags": list(self.tags),
            "published": self.published,
            "status": self.status,
            "price": self.price,
            "compare_at_price": self.compare_at_price,
            "stock": self.stock,
            "image_url": self.image_url,
            "variants": len(self.variants),
            "images": len(self.images),
            "metafields": len(self.metafields),
        }


@dataclass
class Category:
    """Node of the category tree reconstructed from delimited paths."""
    name: str
    slug: str
    path: str
    level: int
    parent_id: Optional[str] = None
    id: Optional[str] = None


def strip_html(html: Optional[str]) -> str:
    if not html:
        return ""
    return re.sub(r"<[^>]*>", "", html).strip()


def normalize_status(status: Optional[str]) -> str:
    """Map a free-form status onto active/draft/archived; unknown is active."""
    if not status:
        return "active"
    normalized = status.strip().lower()
    return normalized if normalized in PRODUCT_STATUSES else "active"


def split_category_path(path: str) -> List[str]:
    return [part.strip() for part in path.split(">") if part.strip()]


def join_category_path(parts: List[str]) -> str:
    return CATEGORY_DELIMITER.join(parts)
