from bson import ObjectId

from ..exceptions import MissingMappingError
from ..loader import load_collection
from ..source import group_by, to_bool, to_datetime


def migrate_admins(ctx):
    log = ctx.logger("admins")
    log.info("Migrating admins...")

    rows = ctx.source.fetch_all("SELECT * FROM oc_user ORDER BY user_id")

    def transform(row):
        return {
            "legacyId": row["user_id"],
            "username": row["username"],
            "password": row.get("password"),
            "salt": row.get("salt"),
            "firstName": row.get("firstname"),
            "lastName": row.get("lastname"),
            "email": row.get("email"),
            "image": row.get("image"),
            "code": row.get("code"),
            "ipAddress": row.get("ip"),
            "status": to_bool(row.get("status")),
            "createdAt": to_datetime(row.get("date_added")),
        }

    return load_collection(ctx, "admin", rows, transform, row_key="user_id", log=log)


def unique_email(raw_email, customer_id, assigned, domain, log):
    """Return an e-mail no other migrated customer has, recording it in ``assigned``."""
    email = (raw_email or "").strip()
    if not email:
        email = f"customer_{customer_id}@{domain}"
        log.info(f"Customer {customer_id} - no email data (empty/null) - generated: {email}")

    if email.lower() in assigned:
        local, at, host = email.partition("@")
        candidate = f"{local}_{customer_id}{at}{host}"
        counter = 1
        while candidate.lower() in assigned:
            candidate = f"{local}_{customer_id}_{counter}{at}{host}"
            counter += 1
        log.warning(
            f"Customer {customer_id} had duplicate email, made unique: {candidate} - Original: \"{raw_email}\""
        )
        email = candidate

    assigned.add(email.lower())
    return email


def migrate_customers(ctx):
    log = ctx.logger("customer")
    log.info("Migrating customers with addresses...")

    default_language = ctx.settings.DEFAULT_LANGUAGE_ID
    language_id = ctx.mappings.get("language", default_language)
    if language_id is None:
        raise MissingMappingError("language", default_language,
                                  f"Default language {default_language} not found in mapping table")

    customers = ctx.source.fetch_all("SELECT * FROM oc_customer ORDER BY customer_id")
    addresses = group_by(ctx.source.fetch_all("SELECT * FROM oc_address ORDER BY address_id"), "customer_id")
    log.info(f"Found {len(customers)} customers to migrate")

    assigned_emails = set()

    def build_address(addr, customer_row):
        context = f"address_id {addr['address_id']}, customer_id {customer_row['customer_id']}"
        return {
            "legacyId": addr["address_id"],
            "firstName": addr.get("firstname"),
            "lastName": addr.get("lastname"),
            "company": addr.get("company"),
            "addressLine1": addr.get("address_1"),
            "addressLine2": addr.get("address_2"),
            "city": addr.get("city"),
            "postcode": addr.get("postcode"),
            "country": ctx.mappings.resolve("country", addr.get("country_id"), log, context),
            "zone": ctx.mappings.resolve("zone", addr.get("zone_id"), log, context),
            "preferedBillingAddress": addr["address_id"] == customer_row.get("address_id"),
        }

    def transform(row):
        customer_id = ObjectId()
        document = {
            "_id": customer_id,
            "legacyId": row["customer_id"],
            "languageId": language_id,
            "firstName": row.get("firstname"),
            "lastName": row.get("lastname"),
            "email": unique_email(row.get("email"), row["customer_id"], assigned_emails,
                                  ctx.settings.FALLBACK_EMAIL_DOMAIN, log),
            "mobile": row.get("telephone"),
            "password": row.get("password"),
            "salt": row.get("salt"),
            "newsletter": to_bool(row.get("newsletter")),
            "ipAddress": row.get("ip"),
            "status": to_bool(row.get("status")),
            "addresses": [build_address(addr, row) for addr in addresses.get(row["customer_id"], [])],
            "mobileVerified": True,
            "emailVerified": True,
            "createdAt": to_datetime(row.get("date_added")),
        }
        ctx.mappings.set("customer", row["customer_id"], customer_id)
        return document

    return load_collection(ctx, "customer", customers, transform, row_key="customer_id", log=log)
