from collections import namedtuple

import pymongo

Model = namedtuple("Model", ["name", "collection", "fields", "indexes"])

ASC = pymongo.ASCENDING
DESC = pymongo.DESCENDING


def index(*keys, **options):
    return (list(keys), options)


MODELS = {
    "country": Model("Country", "countries", (
        "legacyId", "name", "iso_code_2", "iso_code_3", "address_format",
        "postcode_required", "status",
    ), [
        index(("iso_code_2", ASC)),
        index(("legacyId", ASC)),
    ]),
    "zone": Model("Zone", "zones", (
        "legacyId", "country", "name", "code", "status",
    ), [
        index(("country", ASC)),
        index(("legacyId", ASC)),
    ]),
    "language": Model("Language", "languages", (
        "legacyId", "name", "code", "locale", "image", "directory", "sortOrder", "status",
    ), [
        index(("code", ASC)),
        index(("legacyId", ASC)),
    ]),
    "productOption": Model("ProductOption", "productOptions", (
        "legacyId", "languageId", "name", "sortOrder", "status",
    ), [
        index(("name", ASC)),
        index(("legacyId", ASC)),
    ]),
    "category": Model("Category", "categories", (
        "legacyId", "name", "image", "sortOrder", "status", "languageId", "description",
        "metaTitle", "metaDescription", "metaKeyword", "createdAt", "updatedAt",
    ), [
        index(("name", ASC)),
        index(("status", ASC), ("sortOrder", ASC)),
        index(("legacyId", ASC)),
    ]),
    "admin": Model("Admin", "admins", (
        "legacyId", "username", "password", "salt", "firstName", "lastName", "email",
        "image", "code", "ipAddress", "status", "createdAt",
    ), [
        index(("username", ASC)),
        index(("email", ASC)),
    ]),
    "customer": Model("Customer", "customers", (
        "legacyId", "languageId", "firstName", "lastName", "email", "mobile", "password",
        "salt", "newsletter", "ipAddress", "status", "addresses", "mobileVerified",
        "emailVerified", "createdAt",
    ), [
        index(("email", ASC), unique=True),
        index(("mobile", ASC)),
        index(("legacyId", ASC)),
    ]),
    "product": Model("Product", "products", (
        "legacyId", "languageId", "productModel", "description", "sku", "stitches",
        "dimensions", "colourNeedles", "sortOrder", "image", "status", "viewed", "seo",
        "categories", "additionalImages", "options", "createdAt", "updatedAt",
    ), [
        index(("productModel", ASC)),
        index(("categories", ASC), ("status", ASC)),
        index(("options.legacyId", ASC)),
        index(("legacyId", ASC)),
    ]),
    "cart": Model("Cart", "carts", (
        "customerId", "items", "createdAt", "updatedAt",
    ), [
        index(("customerId", ASC)),
    ]),
    "wishlist": Model("Wishlist", "wishlists", (
        "customerId", "items", "createdAt", "updatedAt",
    ), [
        index(("customerId", ASC)),
        index(("items.product", ASC)),
    ]),
    "order": Model("Order", "orders", (
        "legacyId", "customer", "languageId", "paymentFirstName", "paymentLastName",
        "paymentCompany", "paymentAddress1", "paymentAddress2", "paymentCity",
        "paymentPostcode", "paymentCountry", "paymentZone", "paymentAddressFormat",
        "paymentMethod", "paymentCode", "orderTotal", "orderStatus", "ipAddress",
        "forwardedIp", "userAgent", "acceptLanguageId", "products", "totals", "history",
        "createdAt", "updatedAt", "coupon", "orderNumber",
    ), [
        index(("customer", ASC), ("createdAt", DESC)),
        index(("orderNumber", ASC)),
        index(("products.product", ASC)),
        index(("orderStatus", ASC)),
    ]),
    "migrationStatus": Model("MigrationStatus", "migrationStatuses", (
        "name", "status", "startedAt", "completedAt", "durationSeconds", "migratedDetails",
    ), [
        index(("name", ASC), unique=True),
        index(("startedAt", DESC)),
    ]),
    "counter": Model("Counter", "counters", (
        "_id", "sequence_value",
    ), []),
}


def create_indexes(collection, entity):
    """Create the model's indexes; returns the index names."""
    names = []
    for keys, options in MODELS[entity].indexes:
        names.append(collection.create_index(keys, **options))
    return names
