"""
Test product aggregation.
Ensures flattened export rows rebuild one product per handle.
"""
import itertools

from picksmart.normalizers.products import ProductAggregator, collect_category_paths


MUG_ROWS = [
    {"Handle": "mug-1", "Title": "Mug", "Variant Price": "10", "Variant SKU": "M1", "Option1 Value": "Red"},
    {"Handle": "mug-1", "Variant Price": "10", "Variant SKU": "M1", "Option1 Value": "Red"},
    {"Handle": "mug-1", "Image Src": "a.png", "Image Position": "2"},
    {"Handle": "mug-1", "Image Src": "b.png", "Image Position": "1"},
]


def test_mug_example_dedupes_variant_and_orders_images():
    products = ProductAggregator().aggregate(MUG_ROWS)

    assert list(products) == ["mug-1"]
    mug = products["mug-1"]
    assert mug.title == "Mug"
    assert len(mug.variants) == 1
    assert mug.variants[0].sku == "M1"
    assert mug.variants[0].option1_value == "Red"
    assert [img.src for img in mug.images] == ["b.png", "a.png"]


def test_row_order_does_not_change_result():
    aggregator = ProductAggregator()
    baseline = aggregator.aggregate(MUG_ROWS)["mug-1"]

    # Title must stay on the first product row
    head, rest = MUG_ROWS[0], MUG_ROWS[1:]
    for permutation in itertools.permutations(rest):
        product = aggregator.aggregate([head, *permutation])["mug-1"]
        assert product == baseline


def test_continuation_rows_do_not_add_variants():
    rows = [
        {"Handle": "mat", "Title": "Yoga Mat", "Variant Price": "25.00", "Variant SKU": "YM"},
        {"Handle": "mat", "Variant Price": "", "Image Src": "https://cdn/mat-2.jpg", "Image Position": "2"},
        {"Handle": "mat", "Variant Price": "0", "Variant SKU": "YM-FREE"},
    ]

    product = ProductAggregator().aggregate(rows)["mat"]

    assert [v.sku for v in product.variants] == ["YM"]
    assert [img.src for img in product.images] == ["https://cdn/mat-2.jpg"]


def test_same_sku_different_option_is_kept():
    rows = [
        {"Handle": "tee", "Title": "Tee", "Variant Price": "15", "Variant SKU": "T", "Option1 Value": "S"},
        {"Handle": "tee", "Variant Price": "15", "Variant SKU": "T", "Option1 Value": "M"},
    ]

    product = ProductAggregator().aggregate(rows)["tee"]

    assert [v.option1_value for v in product.variants] == ["M", "S"]
    assert len({v.dedupe_key for v in product.variants}) == len(product.variants)


def test_any_row_order_gives_same_variants_and_price():
    rows = [
        {"Handle": "tee", "Title": "Tee", "Variant Price": "15", "Variant SKU": "T-S", "Option1 Value": "S"},
        {"Handle": "tee", "Variant Price": "18", "Variant SKU": "T-M", "Option1 Value": "M"},
        {"Handle": "tee", "Image Src": "tee-back.png", "Image Position": "2"},
        {"Handle": "tee", "Image Src": "tee-front.png", "Image Position": "1"},
    ]
    aggregator = ProductAggregator()
    baseline = aggregator.aggregate(rows)["tee"]

    for permutation in itertools.permutations(rows):
        assert aggregator.aggregate(list(permutation))["tee"] == baseline

    assert [v.sku for v in baseline.variants] == ["T-M", "T-S"]
    assert baseline.price == 18.0
    assert [img.src for img in baseline.images] == ["tee-front.png", "tee-back.png"]


def test_product_fields_and_variant_details():
    rows = [{
        "Handle": "bottle",
        "Title": "Bottle",
        "Body (HTML)": "<p>Keeps <b>cold</b></p>",
        "Vendor": " HydroCo ",
        "Type": "Drinkware",
        "Tags": "steel, summer, , steel",
        "Published": "TRUE",
        "Status": "Draft",
        "Product Category": "Home>Kitchen >  Bottles",
        "Option1 Name": "Size",
        "Option1 Value": "500ml",
        "Option2 Name": "Color",
        "Option2 Value": "Blue",
        "Variant Price": "19.50",
        "Variant Compare At Price": "24.00",
        "Cost per item": "8",
        "Variant Grams": "350",
        "Variant Inventory Qty": "7",
    }]

    product = ProductAggregator().aggregate(rows)["bottle"]

    assert product.vendor == "HydroCo"
    assert product.tags == ["steel", "summer"]
    assert product.published is True
    assert product.status == "draft"
    assert product.category_path == "Home > Kitchen > Bottles"
    assert product.description == "Keeps cold"

    variant = product.variants[0]
    assert variant.title == "500ml / Blue"
    assert variant.weight == 0.35
    assert variant.inventory_qty == 7
    assert product.price == 19.5
    assert product.compare_at_price == 24.0
    assert product.cost_per_item == 8.0
    assert product.stock == 7


def test_variant_without_options_gets_default_title():
    rows = [{"Handle": "card", "Title": "Gift Card", "Variant Price": "50"}]

    product = ProductAggregator().aggregate(rows)["card"]

    assert product.variants[0].title == "Default Title"


def test_metafield_columns_first_value_wins():
    column = "Color (product.metafields.shopify.color-pattern)"
    rows = [
        {"Handle": "sock", "Title": "Sock", column: "", "Variant Price": "3"},
        {"Handle": "sock", column: "striped"},
        {"Handle": "sock", column: "plain"},
    ]

    product = ProductAggregator().aggregate(rows)["sock"]

    assert len(product.metafields) == 1
    assert product.metafields[0].qualified_key == "shopify.color-pattern"
    assert product.metafields[0].value == "striped"


def test_rows_without_handle_are_ignored():
    rows = [{"Handle": "", "Title": "Orphan", "Variant Price": "5"}]

    assert ProductAggregator().aggregate(rows) == {}


def test_collect_category_paths_is_distinct():
    rows = [
        {"Handle": "a", "Title": "A", "Product Category": "Sports > Fitness"},
        {"Handle": "b", "Title": "B", "Product Category": "Sports > Fitness"},
        {"Handle": "c", "Title": "C"},
    ]

    products = ProductAggregator().aggregate(rows)

    assert collect_category_paths(products.values()) == ["Sports > Fitness"]
