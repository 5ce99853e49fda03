import logging
from datetime import datetime

import pytest

from opencart_migration.entities import ENTITY_LOADERS, sync_order_counter
from opencart_migration.entities.accounts import unique_email
from opencart_migration.entities.baskets import parse_option_values
from opencart_migration.entities.orders import build_totals, order_status
from opencart_migration.exceptions import MissingMappingError
from tests.sample_store import opencart_tables

PHASE1 = ("country", "zone", "language", "productOption")
UP_TO_PRODUCTS = PHASE1 + ("category", "customer", "product")

log = logging.getLogger("tests.entities")


def migrate(ctx, *entities):
    return [ENTITY_LOADERS[entity](ctx) for entity in entities]


def by_legacy_id(collection):
    return {doc["legacyId"]: doc for doc in collection.docs}


@pytest.fixture
def ctx(make_ctx):
    return make_ctx(opencart_tables())


class TestGeography:

    def test_countries_are_mapped(self, ctx, db):
        stats, = migrate(ctx, "country")

        assert stats.succeeded == 2
        india = by_legacy_id(db["countries"])[99]
        assert ctx.mappings.get("country", 99) == india["_id"]
        assert india["postcode_required"] is True

    def test_zone_without_country_is_skipped(self, ctx, db, caplog):
        with caplog.at_level(logging.WARNING):
            _, zone_stats = migrate(ctx, "country", "zone")

        assert zone_stats.succeeded == 1
        assert zone_stats.skipped == 1
        assert zone_stats.failed == 0
        assert [doc["name"] for doc in db["zones"].docs] == ["Kerala"]
        assert db["zones"].docs[0]["country"] == ctx.mappings.get("country", 99)
        assert not ctx.mappings.has("zone", 3600)
        assert "Skipping zone Atlantis - no country match for ID 7" in caplog.text


class TestCatalog:

    def test_product_options_resolve_language(self, ctx, db):
        migrate(ctx, "language", "productOption")

        options = by_legacy_id(db["productOptions"])
        assert options[40]["name"] == "DST"
        assert options[40]["languageId"] == ctx.mappings.get("language", 1)
        assert ctx.mappings.get("productOption", 41) == options[41]["_id"]

    def test_root_category_is_skipped(self, ctx, db):
        _, stats = migrate(ctx, "language", "category")

        assert stats.skipped == 1
        assert stats.succeeded == 1
        floral = by_legacy_id(db["categories"])[20]
        assert floral["metaKeyword"] == "rose"
        assert floral["languageId"] == ctx.mappings.get("language", 1)
        assert not ctx.mappings.has("category", 0)


class TestAccounts:

    def test_customers_need_default_language(self, ctx):
        migrate(ctx, "country", "zone")
        with pytest.raises(MissingMappingError):
            migrate(ctx, "customer")

    def test_empty_and_duplicate_emails(self, ctx, db):
        *_, stats = migrate(ctx, "country", "zone", "language", "customer")

        assert stats.succeeded == 3
        emails = {legacy_id: doc["email"] for legacy_id, doc in by_legacy_id(db["customers"]).items()}
        assert emails == {
            1: "asha@example.com",
            2: "ASHA_2@example.com",
            3: "customer_3@anne.com",
        }

    def test_unique_email_counter(self):
        assigned = set()
        assert unique_email("a@x.com", 1, assigned, "anne.com", log) == "a@x.com"
        assert unique_email(" a@x.com ", 2, assigned, "anne.com", log) == "a_2@x.com"

        assigned.add("a_3@x.com")
        assert unique_email("A@X.com", 3, assigned, "anne.com", log) == "A_3_1@X.com"

    def test_addresses_are_embedded(self, ctx, db):
        migrate(ctx, "country", "zone", "language", "customer")

        customers = by_legacy_id(db["customers"])
        home, office = customers[1]["addresses"]
        assert home["country"] == ctx.mappings.get("country", 99)
        assert home["zone"] == ctx.mappings.get("zone", 1490)
        assert home["preferedBillingAddress"] is True
        assert office["country"] == ctx.mappings.get("country", 223)
        assert office["zone"] is None
        assert office["preferedBillingAddress"] is False
        assert customers[2]["addresses"] == []
        assert ctx.mappings.missing("zone") == [9999]

    def test_customer_mapping_and_flags(self, ctx, db):
        migrate(ctx, "country", "zone", "language", "customer")

        customer = by_legacy_id(db["customers"])[1]
        assert ctx.mappings.get("customer", 1) == customer["_id"]
        assert customer["languageId"] == ctx.mappings.get("language", 1)
        assert customer["mobile"] == "9000000001"
        assert customer["mobileVerified"] is True
        assert customer["newsletter"] is True
        assert by_legacy_id(db["customers"])[3]["createdAt"] is None

    def test_admins(self, ctx, db):
        stats, = migrate(ctx, "admin")

        assert stats.succeeded == 1
        assert db["admins"].docs[0]["username"] == "admin"
        assert db["admins"].docs[0]["status"] is True


class TestProducts:

    def test_product_document(self, ctx, db):
        migrate(ctx, *UP_TO_PRODUCTS)

        product = by_legacy_id(db["products"])[30]
        assert ctx.mappings.get("product", 30) == product["_id"]
        assert product["sku"] == "SKU_30"
        assert product["description"] == "Rose Border"
        assert product["stitches"] == "12000"
        assert product["seo"]["metaTitle"] == "Rose"
        assert product["categories"] == [ctx.mappings.get("category", 20), None]
        assert product["additionalImages"] == [{"image": "catalog/fl1-b.png", "sortOrder": 0}]
        assert isinstance(product["updatedAt"], datetime)

    def test_embedded_options(self, ctx, db):
        migrate(ctx, *UP_TO_PRODUCTS)

        options = by_legacy_id(db["products"])[30]["options"]
        assert [opt["legacyId"] for opt in options] == [300, 301]
        assert options[0]["option"] == ctx.mappings.get("productOption", 40)
        assert options[0]["price"] == 2.5
        assert options[0]["uploadedFilePath"] == "files/fl1.dst"
        assert ctx.mappings.get("productOptionValue", 300) == options[0]["_id"]

    def test_fallbacks(self, ctx, db):
        migrate(ctx, *UP_TO_PRODUCTS)

        product = by_legacy_id(db["products"])[31]
        assert product["productModel"] == "PRODUCT_31"
        assert product["description"] == "Product 31"
        assert product["sku"] == "S-31"
        assert product["status"] is False
        assert product["options"] == []

    def test_missing_category_is_recorded(self, ctx):
        migrate(ctx, *UP_TO_PRODUCTS)
        assert ctx.mappings.missing("category") == [77]


class TestCarts:

    @pytest.mark.parametrize("raw, expected", [
        ('{"1": "300", "2": ["301", "302"]}', [300, 301, 302]),
        ("[]", []),
        ("", []),
        (None, []),
    ])
    def test_parse_option_values(self, raw, expected):
        assert parse_option_values(raw) == expected

    @pytest.mark.parametrize("raw", ["not json", '"300"', "[300]"])
    def test_parse_option_values_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_option_values(raw)

    def test_carts_grouped_by_customer(self, ctx, db):
        *_, stats = migrate(ctx, *UP_TO_PRODUCTS, "cart")

        assert stats.succeeded == 2
        assert stats.failed == 0
        carts = {cart["customerId"]: cart for cart in db["carts"].docs}
        first = carts[ctx.mappings.get("customer", 1)]
        second = carts[ctx.mappings.get("customer", 2)]

        assert [item["legacyProductId"] for item in first["items"]] == [30, 31]
        assert first["items"][0]["quantity"] == 2
        assert first["items"][0]["product"] == ctx.mappings.get("product", 30)
        option = first["items"][0]["options"][0]
        assert option["_id"] == ctx.mappings.get("productOptionValue", 300)
        assert option["option"] == ctx.mappings.get("productOption", 40)
        assert first["items"][1]["options"] == []
        # invalid JSON keeps the item without options
        assert second["items"][0]["options"] == []

    def test_unknown_option_value_is_null(self, make_ctx, db):
        tables = opencart_tables()
        tables["oc_cart"] = [
            {"cart_id": 9, "customer_id": 1, "product_id": 30, "quantity": 1,
             "option": '{"1": "999"}', "date_added": None},
        ]
        ctx = make_ctx(tables)
        migrate(ctx, *UP_TO_PRODUCTS, "cart")

        item = db["carts"].docs[0]["items"][0]
        assert item["options"] == [{"_id": None, "legacyId": 999}]
        assert ctx.mappings.missing("productOptionValue") == [999]


class TestWishlists:

    def test_unresolved_items_are_skipped(self, make_ctx, db, caplog):
        tables = opencart_tables()
        tables["oc_customer_wishlist"] += [
            {"customer_id": 2, "product_id": 999, "date_added": None},
            {"customer_id": 555, "product_id": 30, "date_added": None},
        ]
        ctx = make_ctx(tables)

        with caplog.at_level(logging.WARNING):
            *_, stats = migrate(ctx, *UP_TO_PRODUCTS, "wishlist")

        mapping_stats = ctx.wishlist_stats
        assert mapping_stats.total_entries == 5
        assert mapping_stats.successfully_mapped == 3
        assert mapping_stats.skipped_missing_customer == 1
        assert mapping_stats.skipped_missing_product == 1
        assert mapping_stats.missing_products == {999}

        assert stats.succeeded == 2
        items = {doc["customerId"]: len(doc["items"]) for doc in db["wishlists"].docs}
        assert items == {ctx.mappings.get("customer", 1): 2, ctx.mappings.get("customer", 2): 1}
        assert None not in items
        assert "Skipping wishlist entry" in caplog.text


class TestOrders:

    @pytest.fixture
    def orders(self, ctx, db):
        migrate(ctx, *UP_TO_PRODUCTS, "order")
        return by_legacy_id(db["orders"])

    def test_order_status(self):
        assert order_status(5) == "paid"
        assert order_status(1) == "pending"
        assert order_status(None) == "pending"

    def test_build_totals_maps_codes(self):
        totals = build_totals([
            {"code": "sub_total", "title": "Sub-Total", "value": "25.5000", "sort_order": "1"},
            {"code": "shipping", "title": "Flat", "value": None, "sort_order": 3},
        ])
        assert totals == [
            {"code": "subtotal", "title": "Sub-Total", "value": 25.5, "sortOrder": 1},
            {"code": "shipping", "title": "Flat", "value": 0, "sortOrder": 3},
        ]

    def test_paid_order(self, ctx, orders):
        order = orders[5001]
        assert order["customer"] == ctx.mappings.get("customer", 1)
        assert order["orderStatus"] == "paid"
        assert order["orderNumber"] == 5001
        assert order["paymentMethod"] == "Pay by Razorpay"
        assert [t["code"] for t in order["totals"]] == ["subtotal", "couponDiscount", "total"]
        assert [h["orderStatus"] for h in order["history"]] == ["pending", "paid"]
        assert order["history"][1]["notify"] is True

    def test_line_item_options(self, ctx, orders):
        line = orders[5001]["products"][0]
        assert line["product"] == ctx.mappings.get("product", 30)
        option = line["options"][0]
        assert option["_id"] == ctx.mappings.get("productOptionValue", 300)
        assert option["option"] == ctx.mappings.get("productOption", 40)
        assert option["value"] == "DST"
        assert option["uploadedFilePath"] == "files/fl1.dst"

    def test_guest_order_with_retired_product(self, ctx, orders):
        order = orders[5002]
        assert order["customer"] is None
        assert order["orderStatus"] == "pending"
        assert order["orderTotal"] == 10.0
        assert order["paymentFirstName"] == "Unknown"
        assert order["paymentPostcode"] == "00000"
        line = order["products"][0]
        assert line["product"] is None
        assert line["legacyProductId"] == 404
        assert ctx.mappings.missing("product") == [404]
        # guest orders carry customer_id 0, which is not a missing mapping
        assert ctx.mappings.missing("customer") == []

    def test_sync_order_counter(self, ctx, db):
        assert sync_order_counter(ctx) == 5002
        assert db["counters"].find_one({"_id": "orderNumber"})["sequence_value"] == 5002

    def test_sync_order_counter_without_orders(self, make_ctx, db):
        ctx = make_ctx({"oc_order": []})
        assert sync_order_counter(ctx) == 0
        assert db["counters"].find_one({"_id": "orderNumber"})["sequence_value"] == 0
