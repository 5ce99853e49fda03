import pytest
from bson import ObjectId

from opencart_migration.exceptions import DependencyError
from opencart_migration.loader import MigrationStats
from opencart_migration.orchestrator import (PHASES, Phase, MigrationOrchestrator, hydrate_mapping,
                                             validate_plan)
from opencart_migration.status import COMPLETED, FAILED
from tests.sample_store import opencart_tables


def fake_loaders():
    def make(entity):
        def loader(ctx):
            return MigrationStats(processed=1, succeeded=1)
        loader.__name__ = f"migrate_{entity}"
        return loader

    return {entity: make(entity) for phase in PHASES for entity in phase.entities}


class Sleeper:

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def status_of(db, name):
    return db["migrationStatuses"].find_one({"name": name})


def test_default_plan_is_valid():
    validate_plan(PHASES)


def test_plan_with_dependency_after_consumer_is_rejected():
    phases = [
        Phase("p1", "p1", "zones first", ("zone",), (), ()),
        Phase("p2", "p2", "then countries", ("country",), (), ()),
    ]
    with pytest.raises(DependencyError):
        validate_plan(phases)


def test_unknown_phase_key(make_ctx):
    orchestrator = MigrationOrchestrator(make_ctx(), loaders=fake_loaders())
    with pytest.raises(ValueError):
        orchestrator.run_phase("phase9")


def test_run_all_halts_at_first_failed_phase(make_ctx, db, settings):
    settings.PHASE_PAUSE_SECONDS = 2
    # one source customer but the fake loader writes nothing, so phase3 verification fails
    ctx = make_ctx({"oc_customer": [{"customer_id": 1}]})
    sleeper = Sleeper()
    orchestrator = MigrationOrchestrator(ctx, loaders=fake_loaders(), sleep=sleeper)

    assert orchestrator.run_all() is False

    assert orchestrator.loader_calls == [
        "country", "zone", "language", "productOption", "category", "admin", "customer",
    ]
    assert "product" not in orchestrator.loader_calls
    assert list(orchestrator.results) == ["phase1", "phase2", "phase3"]
    assert sleeper.calls == [2, 2]

    failed = status_of(db, "phase3_user_management")
    assert failed["status"] == FAILED
    assert "Customers count mismatch" in failed["migratedDetails"][0]["error"]
    assert status_of(db, "phase1_core_independent")["status"] == COMPLETED
    assert status_of(db, "phase4_products") is None


def test_phase_stats_are_recorded(make_ctx, db):
    orchestrator = MigrationOrchestrator(make_ctx(), loaders=fake_loaders())

    assert orchestrator.run_phase("phase1") is True

    record = status_of(db, "phase1_core_independent")
    details = record["migratedDetails"][0]
    assert record["status"] == COMPLETED
    assert record["completedAt"] is not None
    assert details["processed"] == 4
    assert details["succeeded"] == 4
    assert details["batchSize"] == 100
    assert details["lastBatchSize"] == 4
    assert details["totalBatches"] == 1
    assert orchestrator.results["phase1"].stats.succeeded == 4


def test_loader_exception_fails_phase(make_ctx, db):
    loaders = fake_loaders()

    def broken(ctx):
        raise RuntimeError("MySQL server has gone away")

    loaders["category"] = broken
    orchestrator = MigrationOrchestrator(make_ctx(), loaders=loaders)
    orchestrator.run_phase("phase1")

    assert orchestrator.run_phase("phase2") is False
    assert orchestrator.results["phase2"].error == "MySQL server has gone away"
    assert status_of(db, "phase2_catalog_structure")["status"] == FAILED


def test_single_phase_rebuilds_mappings_from_mongodb(make_ctx, db):
    language_id, category_id, option_id = ObjectId(), ObjectId(), ObjectId()
    db["languages"].docs = [{"_id": language_id, "legacyId": 1}]
    db["categories"].docs = [{"_id": category_id, "legacyId": 20}]
    db["productOptions"].docs = [{"_id": option_id, "legacyId": 40}]
    seen = {}

    def check_mappings(ctx):
        seen["category"] = ctx.mappings.get("category", 20)
        seen["productOption"] = ctx.mappings.get("productOption", 40)
        return MigrationStats()

    loaders = fake_loaders()
    loaders["product"] = check_mappings
    orchestrator = MigrationOrchestrator(make_ctx(), loaders=loaders)

    assert orchestrator.run_phase("phase4") is True
    assert seen == {"category": category_id, "productOption": option_id}
    assert orchestrator.ctx.mappings.get("language", 1) == language_id


def test_hydrate_embedded_option_values(make_ctx, db):
    option_value_id = ObjectId()
    db["products"].docs = [
        {"_id": ObjectId(), "legacyId": 30, "options": [{"_id": option_value_id, "legacyId": 300}]},
        {"_id": ObjectId(), "legacyId": 31, "options": []},
    ]
    ctx = make_ctx()

    assert hydrate_mapping(ctx, "productOptionValue") == 1
    assert ctx.mappings.get("productOptionValue", 300) == option_value_id
    assert hydrate_mapping(ctx, "product") == 2


def test_full_run_over_sample_store(make_ctx, db):
    ctx = make_ctx(opencart_tables())
    orchestrator = MigrationOrchestrator(ctx, sleep=Sleeper())

    assert orchestrator.run_all() is True

    assert list(orchestrator.results) == ["phase1", "phase2", "phase3", "phase4", "phase5", "phase6"]
    assert all(result.success for result in orchestrator.results.values())
    assert len(db["customers"].docs) == 3
    assert len(db["orders"].docs) == 2
    assert db["counters"].find_one({"_id": "orderNumber"})["sequence_value"] == 5002
    statuses = {record["name"]: record["status"] for record in db["migrationStatuses"].docs}
    assert set(statuses.values()) == {COMPLETED}
    assert len(statuses) == 6
