"""
Product aggregation layer.
Rebuilds one product per handle from the export's one-row-per-variant/image layout.
"""
import re
from typing import Dict, Iterable, List, Optional

from picksmart.models.catalog import (
    Product,
    Variant,
    Image,
    Metafield,
    normalize_status,
    split_category_path,
    join_category_path,
)
from picksmart.normalizers.fields import clean, parse_float, parse_int, parse_bool, parse_tags

# e.g. "Color (product.metafields.shopify.color-pattern)"
METAFIELD_COLUMN = re.compile(r"\(product\.metafields\.([^.()\s]+)\.([^()\s]+)\)\s*$")

DEFAULT_VARIANT_TITLE = "Default Title"


def variant_sort_key(variant: Variant) -> tuple:
    """Canonical variant order, independent of export row order."""
    return (
        variant.option1_value or "",
        variant.option2_value or "",
        variant.option3_value or "",
        variant.sku or "",
    )


class ProductAggregator:
    """
    Groups raw export rows by handle.

    Product-level fields come from the first row that carries a Title.
    A row adds a variant only when its Variant Price is positive; duplicate
    variants (same SKU and Option1 Value) and duplicate images (same source)
    keep their first occurrence. Variants end up ordered by option values then
    SKU, so the primary variant (and the product price) does not depend on row order.
    """

    def aggregate(self, rows: Iterable[Dict[str, str]]) -> Dict[str, Product]:
        products: Dict[str, Product] = {}
        headed = set()

        for row in rows:
            handle = clean(row.get("Handle"))
            if not handle:
                continue

            product = products.get(handle)
            if product is None:
                product = Product(handle=handle)
                products[handle] = product

            if handle not in headed and clean(row.get("Title")):
                self._apply_product_fields(product, row)
                headed.add(handle)

            variant = self._extract_variant(row)
            if variant and not any(v.dedupe_key == variant.dedupe_key for v in product.variants):
                product.variants.append(variant)

            image = self._extract_image(row)
            if image and not any(img.src == image.src for img in product.images):
                product.images.append(image)

            for metafield in self._extract_metafields(row):
                if not any(m.namespace == metafield.namespace and m.key == metafield.key
                           for m in product.metafields):
                    product.metafields.append(metafield)

        # Stable: equal positions keep first-seen order
        for product in products.values():
            product.images.sort(key=lambda img: img.position)
            product.variants.sort(key=variant_sort_key)

        return products

    @staticmethod
    def _apply_product_fields(product: Product, row: Dict[str, str]):
        product.title = row.get("Title", "").strip()
        product.body_html = row.get("Body (HTML)") or ""
        product.vendor = (row.get("Vendor") or "").strip()
        product.product_type = (row.get("Type") or "").strip()
        product.tags = parse_tags(row.get("Tags"))
        product.published = parse_bool(row.get("Published"))
        product.status = normalize_status(row.get("Status"))
        product.seo_title = clean(row.get("SEO Title"))
        product.seo_description = clean(row.get("SEO Description"))

        category = clean(row.get("Product Category"))
        if category:
            product.category_path = join_category_path(split_category_path(category)) or None

    @staticmethod
    def _extract_variant(row: Dict[str, str]) -> Optional[Variant]:
        price = parse_float(row.get("Variant Price"))
        if not price or price <= 0:
            return None

        options = [clean(row.get(f"Option{i} Value")) for i in (1, 2, 3)]
        title = " / ".join(o for o in options if o) or DEFAULT_VARIANT_TITLE

        grams = parse_float(row.get("Variant Grams"))

        return Variant(
            title=title,
            price=price,
            sku=clean(row.get("Variant SKU")),
            barcode=clean(row.get("Variant Barcode")),
            compare_at_price=parse_float(row.get("Variant Compare At Price")),
            cost_per_item=parse_float(row.get("Cost per item")),
            inventory_qty=parse_int(row.get("Variant Inventory Qty")),
            weight=grams / 1000 if grams else None,
            option1_name=clean(row.get("Option1 Name")),
            option1_value=options[0],
            option2_name=clean(row.get("Option2 Name")),
            option2_value=options[1],
            option3_name=clean(row.get("Option3 Name")),
            option3_value=options[2],
            image_src=clean(row.get("Variant Image")),
        )

    @staticmethod
    def _extract_image(row: Dict[str, str]) -> Optional[Image]:
        src = clean(row.get("Image Src"))
        if not src:
            return None
        return Image(
            src=src,
            position=parse_int(row.get("Image Position"), default=1) or 1,
            alt_text=clean(row.get("Image Alt Text")),
        )

    @staticmethod
    def _extract_metafields(row: Dict[str, str]) -> List[Metafield]:
        metafields = []
        for column, value in row.items():
            if not value or not value.strip():
                continue
            match = METAFIELD_COLUMN.search(column or "")
            if match:
                metafields.append(Metafield(
                    namespace=match.group(1),
                    key=match.group(2),
                    value=value.strip(),
                ))
        return metafields


def collect_category_paths(products: Iterable[Product]) -> List[str]:
    """Distinct category paths carried by aggregated products, in first-seen order."""
    paths: List[str] = []
    for product in products:
        if product.category_path and product.category_path not in paths:
            paths.append(product.category_path)
    return paths
