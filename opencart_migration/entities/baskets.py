import json
from datetime import datetime, timezone

from ..loader import MigrationStats, load_collection
from ..mapping import report_missing
from ..source import to_datetime


class ProductOptionLookup:
    """Embedded product options read back from the destination, cached per product."""

    def __init__(self, products):
        self.products = products
        self._cache = {}

    def find(self, product_id, option_value_id):
        if product_id is None:
            return None
        if product_id not in self._cache:
            product = self.products.find_one({"_id": product_id}, {"options": 1})
            self._cache[product_id] = {
                opt["_id"]: opt for opt in (product or {}).get("options", []) if opt.get("_id") is not None
            }
        return self._cache[product_id].get(option_value_id)


def parse_option_values(raw):
    """oc_cart.option JSON -> flat list of product_option_value ids."""
    parsed = json.loads(raw or "{}")
    # json_encode(array()) stores an empty list.
    if parsed == []:
        return []
    if not isinstance(parsed, dict):
        raise ValueError(f"expected an object, got {type(parsed).__name__}")
    values = []
    for value in parsed.values():
        for item in value if isinstance(value, list) else [value]:
            values.append(int(item))
    return values


def resolve_options(ctx, lookup, product_id, option_value_ids, log, context):
    options = []
    for source_id in option_value_ids:
        option_value_id = ctx.mappings.resolve("productOptionValue", source_id, log, context)
        option = lookup.find(product_id, option_value_id) if option_value_id is not None else None
        if option is None:
            if option_value_id is not None:
                log.warning(f"Option {option_value_id} not found in product {product_id} ({context})")
            options.append({"_id": option_value_id, "legacyId": source_id})
        else:
            options.append(dict(option))
    return options


def migrate_carts(ctx):
    log = ctx.logger("cart")
    log.info("Starting cart migration...")

    rows = ctx.source.fetch_all("SELECT * FROM oc_cart ORDER BY cart_id")
    log.info(f"Found {len(rows)} cart rows to migrate")

    ctx.mappings.clear_missing("productOptionValue")
    lookup = ProductOptionLookup(ctx.db["products"])
    row_stats = MigrationStats()
    carts = {}
    invalid_options = 0
    now = datetime.now(timezone.utc)

    for row in rows:
        context = f"cart_id {row.get('cart_id')}"
        try:
            customer_id = ctx.mappings.resolve("customer", row["customer_id"], log, context)
            product_id = ctx.mappings.resolve("product", row["product_id"], log, context)
            try:
                option_value_ids = parse_option_values(row.get("option"))
            except (ValueError, TypeError) as e:
                invalid_options += 1
                log.warning(f"Invalid option JSON in {context}: {row.get('option')} - {e}")
                option_value_ids = []

            item = {
                "product": product_id,
                "legacyProductId": row["product_id"],
                "quantity": row.get("quantity") or 1,
                "options": resolve_options(ctx, lookup, product_id, option_value_ids, log, context),
                "createdAt": to_datetime(row.get("date_added"), now),
                "updatedAt": now,
            }
        except Exception as e:
            row_stats.processed += 1
            row_stats.failed += 1
            log.error(f"Failed to prepare cart row {row.get('cart_id')}: {e}")
            continue

        cart = carts.setdefault(customer_id, {
            "customerId": customer_id,
            "items": [],
            "createdAt": item["createdAt"],
            "updatedAt": now,
        })
        cart["items"].append(item)

    stats = load_collection(ctx, "cart", list(carts.values()), lambda cart: cart, log=log)
    stats.merge(row_stats)

    log.info(f"Cart migration complete: {len(carts)} carts from {len(rows)} rows")
    log.info(f"   - Skipped/Invalid Options: {invalid_options}")
    report_missing(ctx.mappings, "productOptionValue", log, "Product Option Value")
    return stats


class WishlistMappingStats:

    def __init__(self):
        self.total_entries = 0
        self.successfully_mapped = 0
        self.skipped_missing_customer = 0
        self.skipped_missing_product = 0
        self.missing_customers = set()
        self.missing_products = set()


def migrate_wishlists(ctx):
    log = ctx.logger("wishlist")
    log.info("Starting wishlist migration...")

    rows = ctx.source.fetch_all("SELECT * FROM oc_customer_wishlist ORDER BY customer_id, product_id")
    log.info(f"Found {len(rows)} wishlist rows")

    mapping_stats = WishlistMappingStats()
    wishlists = {}

    for row in rows:
        mapping_stats.total_entries += 1

        # Unresolved items are skipped, unlike every other embedded reference.
        customer_id = ctx.mappings.get("customer", row["customer_id"])
        if customer_id is None:
            mapping_stats.missing_customers.add(row["customer_id"])
            mapping_stats.skipped_missing_customer += 1
            log.warning(f"Missing customer mapping for MySQL customer_id {row['customer_id']} - Skipping wishlist entry")
            continue

        product_id = ctx.mappings.get("product", row["product_id"])
        if product_id is None:
            mapping_stats.missing_products.add(row["product_id"])
            mapping_stats.skipped_missing_product += 1
            log.warning(f"Missing product mapping for MySQL product_id {row['product_id']} - Skipping product from wishlist")
            continue

        mapping_stats.successfully_mapped += 1
        added = to_datetime(row.get("date_added"))
        wishlist = wishlists.setdefault(customer_id, {
            "customerId": customer_id,
            "items": [],
            "createdAt": added,
            "updatedAt": added,
        })
        wishlist["items"].append({"product": product_id})

    log.info("Wishlist Mapping Statistics:")
    log.info(f"   Total MySQL wishlist entries: {mapping_stats.total_entries}")
    log.info(f"   Successfully mapped: {mapping_stats.successfully_mapped}")
    log.info(f"   Skipped due to missing customer: {mapping_stats.skipped_missing_customer}")
    log.info(f"   Skipped due to missing product: {mapping_stats.skipped_missing_product}")

    ctx.wishlist_stats = mapping_stats
    stats = load_collection(ctx, "wishlist", list(wishlists.values()), lambda wishlist: wishlist, log=log)

    for label, ids in (("Customer", mapping_stats.missing_customers), ("Product", mapping_stats.missing_products)):
        if ids:
            ordered = sorted(ids)
            log.info(f"Missing {label} IDs ({len(ordered)}):")
            if len(ordered) <= 20:
                log.info(f"  {', '.join(str(i) for i in ordered)}")
            else:
                log.info(f"  First 20: {', '.join(str(i) for i in ordered[:20])}")
                log.info(f"  ... and {len(ordered) - 20} more")
    return stats
