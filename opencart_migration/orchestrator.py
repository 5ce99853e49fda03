"""Six ordered migration phases and the dependency graph between entity loaders.

A loader may only run once every mapping type it reads has been produced,
either earlier in this process or rebuilt from the destination's
``legacyId`` fields when a single phase is run on its own.
"""
import time
import logging
from collections import OrderedDict, namedtuple

from .entities import ENTITY_LOADERS, sync_order_counter
from .exceptions import DependencyError
from .loader import MigrationStats
from .log import reset_log_dir
from .models import MODELS
from .status import COMPLETED, FAILED, PhaseStatusStore
from .verification import (verify_carts, verify_customers, verify_orders,
                           verify_products, verify_wishlists)

logger = logging.getLogger(__name__)

Phase = namedtuple("Phase", ["key", "name", "title", "entities", "verifications", "finalizers"])
PhaseResult = namedtuple("PhaseResult", ["key", "success", "stats", "duration", "error"])

PHASES = [
    Phase("phase1", "phase1_core_independent",
          "Core Independent Tables (countries, zones, languages, product options)",
          ("country", "zone", "language", "productOption"), (), ()),
    Phase("phase2", "phase2_catalog_structure", "Category Tables",
          ("category",), (), ()),
    Phase("phase3", "phase3_user_management", "User Management (CRITICAL - customers & addresses)",
          ("admin", "customer"), (verify_customers,), ()),
    Phase("phase4", "phase4_products", "Products (with full relationships)",
          ("product",), (verify_products,), ()),
    Phase("phase5", "phase5_cart_wishlist", "Cart and Wishlist",
          ("cart", "wishlist"), (verify_carts, verify_wishlists), ()),
    Phase("phase6", "phase6_orders", "Orders",
          ("order",), (verify_orders,), (sync_order_counter,)),
]

# Mapping types each entity loader reads.
ENTITY_DEPENDENCIES = {
    "country": (),
    "zone": ("country",),
    "language": (),
    "productOption": ("language",),
    "category": ("language",),
    "admin": (),
    "customer": ("country", "zone", "language"),
    "product": ("language", "category", "productOption"),
    "cart": ("customer", "product", "productOptionValue"),
    "wishlist": ("customer", "product"),
    "order": ("customer", "product", "productOptionValue", "language"),
}

# Mapping types each entity loader populates.
PRODUCES = {
    "country": ("country",),
    "zone": ("zone",),
    "language": ("language",),
    "productOption": ("productOption",),
    "category": ("category",),
    "admin": (),
    "customer": ("customer",),
    "product": ("product", "productOptionValue"),
    "cart": (),
    "wishlist": (),
    "order": (),
}

# Where a mapping type can be read back from: (entity model, embedded array or None).
HYDRATION_SOURCES = {
    "country": ("country", None),
    "zone": ("zone", None),
    "language": ("language", None),
    "productOption": ("productOption", None),
    "category": ("category", None),
    "customer": ("customer", None),
    "product": ("product", None),
    "productOptionValue": ("product", "options"),
}


def validate_plan(phases):
    """Raise DependencyError unless every entity follows the producers of its dependencies."""
    produced = set()
    for phase in phases:
        for entity in phase.entities:
            if entity not in ENTITY_DEPENDENCIES:
                raise DependencyError(f"Unknown entity '{entity}' in {phase.key}")
            missing = set(ENTITY_DEPENDENCIES[entity]) - produced
            if missing:
                raise DependencyError(
                    f"{phase.key}: '{entity}' scheduled before its dependencies {sorted(missing)}"
                )
            produced.update(PRODUCES[entity])
    return produced


def hydrate_mapping(ctx, entity_type):
    """Rebuild one mapping type from the documents already in MongoDB."""
    model, embedded = HYDRATION_SOURCES[entity_type]
    collection = ctx.db[MODELS[model].collection]

    if embedded is None:
        pairs = ((doc.get("legacyId"), doc.get("_id")) for doc in collection.find({}, {"legacyId": 1}))
    else:
        pairs = (
            (item.get("legacyId"), item.get("_id"))
            for doc in collection.find({}, {f"{embedded}._id": 1, f"{embedded}.legacyId": 1})
            for item in doc.get(embedded) or []
        )
    return ctx.mappings.hydrate(entity_type, pairs)


class MigrationOrchestrator:

    def __init__(self, ctx, status_store=None, loaders=None, phases=None, sleep=time.sleep):
        self.ctx = ctx
        self.phases = OrderedDict((phase.key, phase) for phase in (phases or PHASES))
        validate_plan(self.phases.values())
        self.status = status_store or PhaseStatusStore(
            ctx.db[MODELS["migrationStatus"].collection], ctx.settings.BATCH_SIZE
        )
        self.loaders = loaders or ENTITY_LOADERS
        self.sleep = sleep
        self.available = set()
        self.loader_calls = []
        self.results = OrderedDict()
        self.stats = MigrationStats()

    def _producing_phase(self, entity_type):
        for index, phase in enumerate(self.phases.values()):
            if any(entity_type in PRODUCES[entity] for entity in phase.entities):
                return index
        return None

    def _ensure_dependencies(self, phase, log):
        phase_index = list(self.phases).index(phase.key)
        produced_here = set()
        for entity in phase.entities:
            for entity_type in ENTITY_DEPENDENCIES[entity]:
                if entity_type in self.available or entity_type in produced_here:
                    continue
                producer = self._producing_phase(entity_type)
                if producer is None or producer >= phase_index:
                    raise DependencyError(f"'{entity}' needs '{entity_type}' which is not produced before {phase.key}")
                count = hydrate_mapping(self.ctx, entity_type)
                if count:
                    log.info(f"Rebuilt {entity_type} mapping from MongoDB ({count} records)")
                else:
                    log.warning(f"No {entity_type} records found in MongoDB - references will be null")
                self.available.add(entity_type)
            produced_here.update(PRODUCES[entity])

    def _run_loader(self, entity):
        missing = set(ENTITY_DEPENDENCIES[entity]) - self.available
        if missing:
            raise DependencyError(f"'{entity}' invoked before {sorted(missing)} were available")
        self.loader_calls.append(entity)
        stats = self.loaders[entity](self.ctx)
        self.stats.merge(stats)
        self.available.update(PRODUCES[entity])
        return stats

    def run_phase(self, key):
        if key not in self.phases:
            raise ValueError(f"Unknown phase: {key}")
        phase = self.phases[key]
        log = self.ctx.logger(key)
        log.info(f"Starting {key}: {phase.title}...")

        self.stats = MigrationStats()
        started_at = self.status.start(phase.name, self.stats)
        clock = time.monotonic()

        try:
            self._ensure_dependencies(phase, log)
            for entity in phase.entities:
                self._run_loader(entity)
            for verify in phase.verifications:
                verify(self.ctx)
            for finalize in phase.finalizers:
                finalize(self.ctx)
        except Exception as e:
            duration = time.monotonic() - clock
            log.error(f"{key} failed: {e}", exc_info=True)
            self.status.finish(phase.name, FAILED, self.stats, started_at, e)
            self.results[key] = PhaseResult(key, False, self.stats, duration, str(e))
            return False

        duration = time.monotonic() - clock
        self.status.finish(phase.name, COMPLETED, self.stats, started_at)
        self.results[key] = PhaseResult(key, True, self.stats, duration, None)
        log.info(f"{key} completed: {self.stats.succeeded} records migrated")
        return True

    def run_all(self):
        logger.info("Running ALL migration phases...")
        reset_log_dir(self.ctx.settings)

        keys = list(self.phases)
        success = True
        for index, key in enumerate(keys):
            if not self.run_phase(key):
                logger.error(f"Migration failed at {key}. Stopping here.")
                success = False
                break
            if index < len(keys) - 1 and self.ctx.settings.PHASE_PAUSE_SECONDS:
                logger.info(f"Waiting {self.ctx.settings.PHASE_PAUSE_SECONDS} seconds before next phase...")
                self.sleep(self.ctx.settings.PHASE_PAUSE_SECONDS)

        self.log_summary()
        return success

    def log_summary(self):
        logger.info("=" * 60)
        logger.info("MIGRATION SUMMARY")
        logger.info("=" * 60)
        for key in self.phases:
            result = self.results.get(key)
            if result is None:
                label = "NOT RUN"
            else:
                label = "COMPLETED" if result.success else "FAILED"
            logger.info(f"{key:<10} : {label}")
        logger.info("=" * 60)
