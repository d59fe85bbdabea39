"""
Product webhook payload normalization.
Maps the platform's JSON product shape onto the same Product the CSV aggregator builds.
"""
from typing import Any, Dict, List, Optional

from picksmart.errors import EntityReconcileError
from picksmart.models.catalog import (
    Product,
    Variant,
    Image,
    Metafield,
    normalize_status,
    strip_html,
    split_category_path,
    join_category_path,
)
from picksmart.normalizers.fields import clean, as_id, parse_float, parse_int, parse_tags


class ProductPayloadNormalizer:

    @staticmethod
    def product_key(payload: Dict[str, Any]) -> str:
        return clean(payload.get("handle")) or as_id(payload.get("id")) or "<unknown>"

    @staticmethod
    def normalize(payload: Dict[str, Any]) -> Product:
        """
        Raises:
            EntityReconcileError: If the payload has no handle to key on.
        """
        handle = clean(payload.get("handle"))
        if not handle:
            raise EntityReconcileError(str(payload.get("id")), "product payload has no handle")

        images = ProductPayloadNormalizer._images(payload)
        image_src_by_id = {
            as_id(img.get("id")): clean(img.get("src"))
            for img in payload.get("images") or []
            if img.get("id") is not None
        }
        option_names = {
            parse_int(opt.get("position")): clean(opt.get("name"))
            for opt in payload.get("options") or []
        }

        variants: List[Variant] = []
        for raw in payload.get("variants") or []:
            variant = ProductPayloadNormalizer._variant(raw, option_names, image_src_by_id)
            if not any(v.dedupe_key == variant.dedupe_key for v in variants):
                variants.append(variant)

        body_html = payload.get("body_html") or ""
        title = clean(payload.get("title")) or ""

        return Product(
            handle=handle,
            title=title,
            body_html=body_html,
            vendor=clean(payload.get("vendor")) or "",
            product_type=clean(payload.get("product_type")) or "",
            category_path=ProductPayloadNormalizer._category_path(payload),
            tags=parse_tags(payload.get("tags")),
            published=payload.get("published_at") is not None,
            status=normalize_status(payload.get("status")),
            seo_title=title or None,
            seo_description=strip_html(body_html)[:160] or None,
            shopify_id=as_id(payload.get("id")),
            variants=variants,
            images=images,
            metafields=ProductPayloadNormalizer._metafields(payload),
        )

    @staticmethod
    def _images(payload: Dict[str, Any]) -> List[Image]:
        images: List[Image] = []
        for raw in payload.get("images") or []:
            src = clean(raw.get("src"))
            if not src or any(img.src == src for img in images):
                continue
            images.append(Image(
                src=src,
                position=parse_int(raw.get("position"), default=1) or 1,
                alt_text=clean(raw.get("alt")),
            ))
        images.sort(key=lambda img: img.position)
        return images

    @staticmethod
    def _variant(raw: Dict[str, Any], option_names: Dict[int, Optional[str]],
                 image_src_by_id: Dict[Optional[str], Optional[str]]) -> Variant:
        grams = parse_float(raw.get("grams"))
        weight = grams / 1000 if grams else parse_float(raw.get("weight"))

        return Variant(
            title=clean(raw.get("title")) or "Default Title",
            price=parse_float(raw.get("price")) or 0.0,
            sku=clean(raw.get("sku")),
            barcode=clean(raw.get("barcode")),
            compare_at_price=parse_float(raw.get("compare_at_price")),
            inventory_qty=parse_int(raw.get("inventory_quantity")),
            weight=weight,
            option1_name=option_names.get(1),
            option1_value=clean(raw.get("option1")),
            option2_name=option_names.get(2),
            option2_value=clean(raw.get("option2")),
            option3_name=option_names.get(3),
            option3_value=clean(raw.get("option3")),
            image_src=image_src_by_id.get(as_id(raw.get("image_id"))),
        )

    @staticmethod
    def _category_path(payload: Dict[str, Any]) -> Optional[str]:
        category = payload.get("category")
        if isinstance(category, dict):
            category = category.get("full_name")
        if not category or not isinstance(category, str):
            return None
        return join_category_path(split_category_path(category)) or None

    @staticmethod
    def _metafields(payload: Dict[str, Any]) -> List[Metafield]:
        metafields: List[Metafield] = []
        for raw in payload.get("metafields") or []:
            namespace, key = clean(raw.get("namespace")), clean(raw.get("key"))
            value = raw.get("value")
            if not namespace or not key or value is None or value == "":
                continue
            if any(m.namespace == namespace and m.key == key for m in metafields):
                continue
            metafields.append(Metafield(
                namespace=namespace,
                key=key,
                value=str(value),
                type=clean(raw.get("type")) or "string",
            ))
        return metafields
