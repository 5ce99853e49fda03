import sys
import logging
import argparse
from datetime import datetime

from pymongo import MongoClient

from .checks import run_checks
from .config import Settings
from .context import MigrationContext
from .log import setup_logging
from .orchestrator import MigrationOrchestrator
from .source import SourceStore, connect_mysql

logger = logging.getLogger("opencart_migration")

AVAILABLE_PHASES = {
    "check": "Run pre-migration checks",
    "phase1": "Core Independent Tables (countries, zones, languages, product options)",
    "phase2": "Category Tables",
    "phase3": "User Management (CRITICAL - customers & addresses)",
    "phase4": "Products (with full relationships)",
    "phase5": "Cart and Wishlist",
    "phase6": "Orders",
    "all": "Run all phases sequentially",
}

PHASE_NOTES = {
    "phase3": [
        "All customer records have been migrated",
        "Customer addresses are embedded in customer documents",
    ],
    "phase4": [
        "All product data migrated with embedded relationships",
        "uploaded_files references preserved (verify files separately)",
    ],
    "phase5": [
        "Cart items migrated with product and option references",
        "Wishlist items migrated with customer and product references",
    ],
    "phase6": [
        "All orders migrated with embedded product data",
        "Order options, totals and history preserved",
        "orderNumber counter aligned with the last MySQL order_id",
    ],
}


def show_usage():
    print("\nOpenCart to MongoDB Migration Tool\n")
    print("Usage: opencart-migrate <phase>\n")
    print("Available phases:")
    for phase, description in AVAILABLE_PHASES.items():
        print(f"  {phase:<8} - {description}")
    print("\nNotes:")
    print("  - Phase 3 (customers) requires 100% success rate")
    print("  - uploaded_files in products are transferred as-is")
    print('  - Always run "check" before starting migration\n')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="opencart-migrate",
        description="OpenCart (MySQL) to MongoDB migration",
        add_help=False,
    )
    parser.add_argument("phase", nargs="?")
    args, _ = parser.parse_known_args(argv)
    return args


def connect_mongodb(settings):
    client = MongoClient(settings.MONGODB_URI, serverSelectionTimeoutMS=5000)
    client.admin.command('ping')
    logger.info(f"Connected to MongoDB: {settings.MONGO_DB_NAME}")
    return client, client[settings.MONGO_DB_NAME]


def report_phase(result):
    print("=" * 60)
    if result.success:
        print(f"{result.key.upper()} COMPLETED SUCCESSFULLY")
    else:
        print(f"{result.key.upper()} FAILED")
        print(f"Error: {result.error}")
    print(f"Duration: {int(result.duration)} seconds")
    print(f"Records: {result.stats.succeeded} succeeded, {result.stats.failed} failed")
    print("=" * 60)


def report_notes(phase):
    keys = list(PHASE_NOTES) if phase == "all" else [phase]
    for key in keys:
        for note in PHASE_NOTES.get(key, []):
            print(f"   - {note}")


def run_check(settings):
    mysql_conn = connect_mysql(settings)
    try:
        return run_checks(SourceStore(mysql_conn))
    finally:
        mysql_conn.close()


def main(argv=None):
    args = parse_args(argv)
    phase = args.phase
    if phase not in AVAILABLE_PHASES:
        show_usage()
        return 1

    settings = Settings()
    setup_logging(settings)
    print("OpenCart to MongoDB Migration")
    print(f"Started at: {datetime.now():%Y-%m-%d %H:%M:%S}")
    print(f"Target phase: {phase} - {AVAILABLE_PHASES[phase]}\n")

    mysql_conn = mongo_client = None
    try:
        settings.log_summary()
        if phase == "check":
            return 0 if run_check(settings) else 1

        mysql_conn = connect_mysql(settings)
        mongo_client, mongo_db = connect_mongodb(settings)

        ctx = MigrationContext(SourceStore(mysql_conn), mongo_db, settings)
        orchestrator = MigrationOrchestrator(ctx)

        if phase == "all":
            success = orchestrator.run_all()
        else:
            success = orchestrator.run_phase(phase)

        for result in orchestrator.results.values():
            report_phase(result)

        print(f"Migration ended at: {datetime.now():%Y-%m-%d %H:%M:%S}")
        if success:
            print("Migration completed successfully!")
            report_notes(phase)
        else:
            print("Migration failed. Check the logs for details; re-run the failed phase once fixed.")
        return 0 if success else 1
    except Exception as e:
        logger.critical(f"Migration failed: {e}", exc_info=True)
        return 1
    finally:
        if mysql_conn is not None:
            mysql_conn.close()
        if mongo_client is not None:
            mongo_client.close()
        logger.info("Database connections closed")


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
