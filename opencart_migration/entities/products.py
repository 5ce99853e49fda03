from datetime import datetime, timezone

from bson import ObjectId

from ..loader import load_collection
from ..mapping import report_missing
from ..source import group_by, to_bool, to_datetime


def _sku(row):
    sku = row.get("sku")
    if sku is None or sku == "":
        return f"SKU_{row['product_id']}"
    return sku


def migrate_products(ctx):
    log = ctx.logger("product")
    log.info("Starting product migration...")

    source = ctx.source
    products = source.fetch_all("SELECT * FROM oc_product ORDER BY product_id")
    descriptions = {}
    for desc in source.fetch_all("SELECT * FROM oc_product_description ORDER BY product_id, language_id"):
        descriptions.setdefault(desc["product_id"], desc)
    categories = group_by(source.fetch_all("SELECT * FROM oc_product_to_category"), "product_id")
    images = group_by(source.fetch_all("SELECT * FROM oc_product_image ORDER BY sort_order"), "product_id")
    option_values = group_by(
        source.fetch_all("SELECT * FROM oc_product_option_value ORDER BY product_option_value_id"),
        "product_id",
    )
    log.info(f"Loaded {len(products)} products")

    for entity_type in ("category", "productOption", "language"):
        ctx.mappings.clear_missing(entity_type)

    language_id = ctx.mappings.resolve("language", ctx.settings.DEFAULT_LANGUAGE_ID, log, "default language")

    def build_option(opt):
        option_value_id = ObjectId()
        ctx.mappings.set("productOptionValue", opt["product_option_value_id"], option_value_id)
        return {
            "_id": option_value_id,
            "legacyId": opt["product_option_value_id"],
            "option": ctx.mappings.resolve(
                "productOption", opt.get("option_value_id"), log,
                f"product_option_value_id {opt['product_option_value_id']}"
            ),
            "price": opt.get("price") or 0,
            "uploadedFilePath": opt.get("uploaded_files") or "",
        }

    def transform(row):
        product_id = row["product_id"]
        desc = descriptions.get(product_id) or {}
        now = datetime.now(timezone.utc)

        document = {
            "_id": ObjectId(),
            "legacyId": product_id,
            "languageId": language_id,
            "productModel": row.get("model") or f"PRODUCT_{product_id}",
            "description": desc.get("name") or f"Product {product_id}",
            "sku": _sku(row),
            "stitches": row.get("upc") or "",
            "dimensions": row.get("ean") or "",
            "colourNeedles": row.get("jan") or "",
            "sortOrder": row.get("sort_order") or 0,
            "image": row.get("image") or "",
            "status": to_bool(row.get("status")),
            "viewed": row.get("viewed") or 0,
            "seo": {
                "metaTitle": desc.get("meta_title") or "",
                "metaDescription": desc.get("meta_description") or "",
                "metaKeyword": desc.get("meta_keyword") or "",
            },
            "categories": [
                ctx.mappings.resolve("category", link["category_id"], log, f"product_id {product_id}")
                for link in categories.get(product_id, [])
            ],
            "additionalImages": [
                {"image": img["image"], "sortOrder": img.get("sort_order") or 0}
                for img in images.get(product_id, [])
                if img.get("image")
            ],
            "options": [build_option(opt) for opt in option_values.get(product_id, [])],
            "createdAt": to_datetime(row.get("date_added"), now),
            "updatedAt": to_datetime(row.get("date_modified"), now),
        }
        ctx.mappings.set("product", product_id, document["_id"])
        return document

    stats = load_collection(ctx, "product", products, transform, row_key="product_id", log=log)

    report_missing(ctx.mappings, "category", log, "Category")
    report_missing(ctx.mappings, "productOption", log, "Product Option")
    report_missing(ctx.mappings, "language", log, "Language")
    return stats
