import logging

import pymongo

from .models import MODELS

logger = logging.getLogger(__name__)

REQUIRED_TABLES = {
    "phase1": ["oc_language", "oc_country", "oc_zone", "oc_option_value_description"],
    "phase2": ["oc_category", "oc_category_description"],
    "phase3": ["oc_user", "oc_address", "oc_customer"],
    "phase4": [
        "oc_product",
        "oc_product_description",
        "oc_product_image",
        "oc_product_option_value",
        "oc_product_to_category",
    ],
    "phase5": ["oc_cart", "oc_customer_wishlist"],
    "phase6": ["oc_order", "oc_order_history", "oc_order_option", "oc_order_product", "oc_order_total"],
}

# Present in the OpenCart schema but deliberately not migrated.
EXCLUDED_TABLES = [
    # legacy tables
    "addproduct", "orders", "product_specifications", "register",
    # sessions and API
    "oc_api", "oc_api_ip", "oc_api_session",
    "oc_attribute", "oc_attribute_description", "oc_attribute_group", "oc_attribute_group_description",
    "oc_banner", "oc_banner_image",
    "oc_category_filter", "oc_category_path", "oc_category_to_layout", "oc_category_to_store",
    # no coupons
    "oc_coupon", "oc_coupon_category", "oc_coupon_history", "oc_coupon_product", "oc_currency",
    "oc_custom_field", "oc_custom_field_customer_group", "oc_custom_field_description",
    "oc_custom_field_value", "oc_custom_field_value_description",
    "oc_customer_activity", "oc_customer_affiliate", "oc_customer_approval", "oc_customer_group",
    "oc_customer_group_description", "oc_customer_history", "oc_customer_ip", "oc_customer_login",
    "oc_customer_online", "oc_customer_reward", "oc_customer_search", "oc_customer_transaction",
    "oc_download", "oc_download_description", "oc_event", "oc_extension", "oc_extension_install",
    "oc_extension_path", "oc_filter", "oc_filter_description", "oc_filter_group",
    "oc_filter_group_description", "oc_geo_zone", "oc_information", "oc_information_description",
    "oc_information_to_layout", "oc_information_to_store", "oc_layout", "oc_layout_module",
    "oc_layout_route", "oc_length_class", "oc_length_class_description", "oc_location",
    "oc_manufacturer", "oc_manufacturer_to_store", "oc_marketing", "oc_modification", "oc_module",
    "oc_option", "oc_option_description", "oc_option_value",
    "oc_order_recurring", "oc_order_recurring_transaction", "oc_order_shipment", "oc_order_status",
    "oc_order_voucher", "oc_product_attribute", "oc_product_discount", "oc_product_filter",
    "oc_product_recurring", "oc_product_related", "oc_product_reward", "oc_product_special",
    "oc_product_to_download", "oc_product_to_layout", "oc_product_to_store", "oc_recurring",
    "oc_recurring_description", "oc_return", "oc_return_action", "oc_return_history",
    "oc_return_reason", "oc_return_status", "oc_review", "oc_seo_url", "oc_shipping_courier",
    "oc_stock_status", "oc_store", "oc_tax_class", "oc_tax_rate", "oc_tax_rate_to_customer_group",
    "oc_tax_rule", "oc_theme", "oc_translation", "oc_upload", "oc_user_group", "oc_voucher",
    "oc_voucher_history", "oc_voucher_theme", "oc_voucher_theme_description", "oc_weight_class",
    "oc_weight_class_description",
]

INDEX_DIRECTIONS = (pymongo.ASCENDING, pymongo.DESCENDING)


def validate_model(model):
    """Problems with one model definition; empty when it is usable."""
    problems = []
    if not model.collection:
        problems.append("missing collection name")
    if len(set(model.fields)) != len(model.fields):
        problems.append("duplicate field names")

    roots = set(model.fields)
    for keys, options in model.indexes:
        if not keys:
            problems.append("index without keys")
        for field, direction in keys:
            if field.split(".", 1)[0] not in roots:
                problems.append(f"index on undeclared field '{field}'")
            if direction not in INDEX_DIRECTIONS:
                problems.append(f"invalid direction {direction!r} for '{field}'")
        if not isinstance(options, dict):
            problems.append("index options must be a mapping")
    return problems


def check_models(models=None):
    models = MODELS if models is None else models
    logger.info("Checking MongoDB models...")
    valid = True
    seen = {}
    for entity, model in models.items():
        problems = validate_model(model)
        if model.collection in seen:
            problems.append(f"collection '{model.collection}' already used by {seen[model.collection]}")
        seen[model.collection] = model.name
        if problems:
            valid = False
            logger.error(f"{model.name} model is invalid: {'; '.join(problems)}")
        else:
            logger.info(f"{model.name} model: OK")
    return valid


def check_source_tables(source):
    """Row counts per required table (None when missing) and for present excluded tables."""
    tables = set(source.list_tables())
    logger.info(f"Found {len(tables)} tables in MySQL database")

    required = {}
    for phase, phase_tables in REQUIRED_TABLES.items():
        logger.info(f"--- {phase.upper()} ---")
        for table in phase_tables:
            if table in tables:
                required[table] = source.count(table)
                logger.info(f"{table}: {required[table]} records")
            else:
                required[table] = None
                logger.error(f"{table}: TABLE MISSING")

    excluded = {}
    logger.info("--- EXCLUDED TABLES ---")
    for table in EXCLUDED_TABLES:
        if table in tables:
            excluded[table] = source.count(table)
            logger.info(f"{table}: {excluded[table]} records (EXCLUDED from migration)")

    return required, excluded


def run_checks(source, models=None):
    """Pre-migration checks; never touches MongoDB."""
    if not check_models(models):
        logger.error("Model validation failed. Please fix model issues before migrating.")
        return False

    required, _ = check_source_tables(source)
    missing = sorted(table for table, count in required.items() if count is None)
    if missing:
        logger.error(f"Missing required tables: {', '.join(missing)}")
        return False

    logger.info("Pre-migration checks completed successfully!")
    logger.info("Recommended order: phase1 -> phase2 -> phase3 -> phase4 -> phase5 -> phase6")
    return True
