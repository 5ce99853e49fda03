from bson import ObjectId

from ..loader import load_collection
from ..source import to_bool


def migrate_countries(ctx):
    log = ctx.logger("countries")
    log.info("Migrating countries...")

    rows = ctx.source.fetch_all("SELECT * FROM oc_country ORDER BY country_id")
    log.info(f"Found {len(rows)} countries to migrate")

    def transform(row):
        country_id = ObjectId()
        document = {
            "_id": country_id,
            "legacyId": row["country_id"],
            "name": row["name"],
            "iso_code_2": row.get("iso_code_2"),
            "iso_code_3": row.get("iso_code_3"),
            "address_format": row.get("address_format"),
            "postcode_required": to_bool(row.get("postcode_required")),
            "status": to_bool(row.get("status")),
        }
        ctx.mappings.set("country", row["country_id"], country_id)
        return document

    return load_collection(ctx, "country", rows, transform, row_key="country_id", log=log)


def migrate_zones(ctx):
    log = ctx.logger("zones")
    log.info("Migrating zones...")

    rows = ctx.source.fetch_all("SELECT * FROM oc_zone ORDER BY zone_id")
    log.info(f"Found {len(rows)} zones to migrate")

    def transform(row):
        # A zone without its country is skipped rather than stored with a null country.
        country_id = ctx.mappings.get("country", row["country_id"])
        if country_id is None:
            log.warning(f"Skipping zone {row['name']} - no country match for ID {row['country_id']}")
            return None

        zone_id = ObjectId()
        document = {
            "_id": zone_id,
            "legacyId": row["zone_id"],
            "country": country_id,
            "name": row["name"],
            "code": row.get("code"),
            "status": to_bool(row.get("status")),
        }
        ctx.mappings.set("zone", row["zone_id"], zone_id)
        return document

    return load_collection(ctx, "zone", rows, transform, row_key="zone_id", log=log)
