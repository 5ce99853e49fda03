from datetime import datetime, timezone

from bson import ObjectId

from ..loader import load_collection
from ..mapping import report_missing
from ..source import group_by, to_bool, to_datetime
from .baskets import ProductOptionLookup

PAID_STATUS_ID = 5

TOTAL_CODES = {
    "sub_total": "subtotal",
    "total": "total",
    "coupon": "couponDiscount",
}


def order_status(status_id):
    return "paid" if status_id == PAID_STATUS_ID else "pending"


def _number(value, cast=float):
    try:
        return cast(value)
    except (TypeError, ValueError):
        return 0


def build_totals(rows):
    return [
        {
            "code": TOTAL_CODES.get(total.get("code"), total.get("code")),
            "title": total.get("title") or "",
            "value": _number(total.get("value")),
            "sortOrder": _number(total.get("sort_order"), int),
        }
        for total in rows
    ]


def build_history(rows):
    return [
        {
            "orderStatus": order_status(h.get("order_status_id")),
            "comment": h.get("comment") or "",
            "notify": to_bool(h.get("notify")),
            "createdAt": to_datetime(h.get("date_added")),
        }
        for h in rows
    ]


def migrate_orders(ctx):
    log = ctx.logger("order")
    log.info("Migrating orders with preloaded data...")

    source = ctx.source
    orders = source.fetch_all("SELECT * FROM oc_order ORDER BY order_id")
    order_products = group_by(source.fetch_all("SELECT * FROM oc_order_product ORDER BY order_product_id"), "order_id")
    order_options = group_by(source.fetch_all("SELECT * FROM oc_order_option ORDER BY order_option_id"), "order_product_id")
    order_totals = group_by(source.fetch_all("SELECT * FROM oc_order_total ORDER BY sort_order"), "order_id")
    order_histories = group_by(source.fetch_all("SELECT * FROM oc_order_history ORDER BY order_history_id"), "order_id")
    log.info(f"Loaded {len(orders)} orders with related data")

    for entity_type in ("customer", "product", "productOptionValue", "language"):
        ctx.mappings.clear_missing(entity_type)

    lookup = ProductOptionLookup(ctx.db["products"])

    def build_option(opt, product_id, context):
        option_value_id = ctx.mappings.resolve(
            "productOptionValue", opt.get("product_option_value_id"), log, context
        )
        embedded = lookup.find(product_id, option_value_id) if option_value_id is not None else None
        if option_value_id is not None and embedded is None:
            log.warning(f"Option {option_value_id} not found in product {product_id} ({context})")
        return {
            "_id": option_value_id,
            "legacyId": opt.get("product_option_value_id"),
            "option": (embedded or {}).get("option"),
            "name": opt.get("name"),
            "value": opt.get("value"),
            "uploadedFilePath": (embedded or {}).get("uploadedFilePath", ""),
        }

    def build_line(line, order_id):
        context = f"order_id {order_id}"
        product_id = ctx.mappings.resolve("product", line["product_id"], log, context)
        return {
            "product": product_id,
            "legacyProductId": line["product_id"],
            "name": line.get("name"),
            "model": line.get("model"),
            "quantity": line.get("quantity") or 1,
            "price": _number(line.get("price")),
            "total": _number(line.get("total")),
            "options": [
                build_option(opt, product_id, context)
                for opt in order_options.get(line["order_product_id"], [])
            ],
        }

    def transform(row):
        order_id = row["order_id"]
        context = f"order_id {order_id}"
        now = datetime.now(timezone.utc)

        customer_id = None
        if row.get("customer_id"):
            customer_id = ctx.mappings.resolve("customer", row["customer_id"], log, context)
        language_id = None
        if row.get("language_id"):
            language_id = ctx.mappings.resolve("language", row["language_id"], log, context)

        return {
            "_id": ObjectId(),
            "legacyId": order_id,
            "customer": customer_id,
            "languageId": language_id,
            "paymentFirstName": row.get("payment_firstname") or "Unknown",
            "paymentLastName": row.get("payment_lastname") or "Customer",
            "paymentCompany": row.get("payment_company") or "",
            "paymentAddress1": row.get("payment_address_1") or "Unknown Address",
            "paymentAddress2": row.get("payment_address_2") or "",
            "paymentCity": row.get("payment_city") or "Unknown City",
            "paymentPostcode": row.get("payment_postcode") or "00000",
            "paymentCountry": row.get("payment_country") or "Unknown",
            "paymentZone": row.get("payment_zone") or "",
            "paymentAddressFormat": row.get("payment_address_format") or "",
            "paymentMethod": "Pay by Razorpay",
            "paymentCode": row.get("payment_code") or "unknown",
            "orderTotal": _number(row.get("total")),
            "orderStatus": order_status(row.get("order_status_id")),
            "ipAddress": row.get("ip") or "",
            "forwardedIp": row.get("forwarded_ip") or "",
            "userAgent": row.get("user_agent") or "",
            "acceptLanguageId": row.get("accept_language") or "",
            "products": [build_line(line, order_id) for line in order_products.get(order_id, [])],
            "totals": build_totals(order_totals.get(order_id, [])),
            "history": build_history(order_histories.get(order_id, [])),
            "createdAt": to_datetime(row.get("date_added"), now),
            "updatedAt": to_datetime(row.get("date_modified"), now),
            "coupon": None,
            "orderNumber": order_id,
        }

    stats = load_collection(ctx, "order", orders, transform, row_key="order_id", log=log)

    log.info("DETAILED MISSING MAPPINGS REPORT:")
    report_missing(ctx.mappings, "customer", log, "Customer")
    report_missing(ctx.mappings, "product", log, "Product")
    report_missing(ctx.mappings, "productOptionValue", log, "Product Option Value")
    report_missing(ctx.mappings, "language", log, "Language")
    return stats


def sync_order_counter(ctx):
    """Point the orderNumber counter at the last migrated MySQL order_id."""
    log = ctx.logger("counter")
    last_order_id = ctx.source.max_value("oc_order", "order_id") or 0
    if not last_order_id:
        log.warning("No orders found in MySQL, setting counter sequence_value to 0")
    else:
        log.info(f"Last order_id from MySQL: {last_order_id}")

    ctx.db["counters"].update_one(
        {"_id": "orderNumber"},
        {"$set": {"sequence_value": int(last_order_id)}},
        upsert=True,
    )
    log.info(f"Counter sequence_value updated to {int(last_order_id)}")
    return int(last_order_id)
