from bson import ObjectId

from ..loader import load_collection
from ..source import to_bool, to_datetime


def migrate_languages(ctx):
    log = ctx.logger("languages")
    log.info("Migrating languages...")

    rows = ctx.source.fetch_all("SELECT * FROM oc_language ORDER BY language_id")

    def transform(row):
        language_id = ObjectId()
        document = {
            "_id": language_id,
            "legacyId": row["language_id"],
            "name": row["name"],
            "code": row.get("code"),
            "locale": row.get("locale"),
            "image": row.get("image"),
            "directory": row.get("directory"),
            "sortOrder": row.get("sort_order") or 0,
            "status": to_bool(row.get("status")),
        }
        ctx.mappings.set("language", row["language_id"], language_id)
        return document

    return load_collection(ctx, "language", rows, transform, row_key="language_id", log=log)


def migrate_product_options(ctx):
    log = ctx.logger("product_options")
    log.info("Migrating product options...")

    rows = ctx.source.fetch_all(
        "SELECT * FROM oc_option_value_description ORDER BY option_value_id, language_id"
    )

    def transform(row):
        option_id = ObjectId()
        document = {
            "_id": option_id,
            "legacyId": row["option_value_id"],
            "languageId": ctx.mappings.resolve(
                "language", row.get("language_id"), log, f"option_value_id {row['option_value_id']}"
            ),
            "name": row["name"],
            "sortOrder": row["option_value_id"],
            "status": True,
        }
        ctx.mappings.set("productOption", row["option_value_id"], option_id)
        return document

    return load_collection(ctx, "productOption", rows, transform, row_key="option_value_id", log=log)


def migrate_categories(ctx):
    log = ctx.logger("categories")
    log.info("Migrating categories...")

    rows = ctx.source.fetch_all(
        """
        SELECT cd.*, c.*
        FROM oc_category_description cd
                 JOIN oc_category c ON cd.category_id = c.category_id
        ORDER BY cd.category_id, cd.language_id
        """
    )

    def transform(row):
        if row["category_id"] == 0:
            log.warning("Skipping root category (category_id 0)")
            return None

        category_id = ObjectId()
        document = {
            "_id": category_id,
            "legacyId": row["category_id"],
            "name": row["name"],
            "image": row.get("image") or "",
            "sortOrder": row.get("sort_order") or 0,
            "status": to_bool(row.get("status")),
            "languageId": ctx.mappings.resolve(
                "language", row.get("language_id"), log, f"category_id {row['category_id']}"
            ),
            "description": row.get("description") or "",
            "metaTitle": row.get("meta_title") or "",
            "metaDescription": row.get("meta_description") or "",
            "metaKeyword": row.get("meta_keyword") or "",
            "createdAt": to_datetime(row.get("date_added")),
            "updatedAt": to_datetime(row.get("date_modified")),
        }
        # One document per category/language row; the last one wins the mapping.
        ctx.mappings.set("category", row["category_id"], category_id)
        return document

    return load_collection(ctx, "category", rows, transform, row_key="category_id", log=log)
