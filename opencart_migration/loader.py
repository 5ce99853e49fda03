import math
import logging

from pymongo.errors import OperationFailure, PyMongoError

from .models import MODELS, create_indexes

logger = logging.getLogger(__name__)


class MigrationStats:
    """Processed/succeeded/failed counters for one loader or one phase."""

    def __init__(self, processed=0, succeeded=0, failed=0, skipped=0):
        self.processed = processed
        self.succeeded = succeeded
        self.failed = failed
        self.skipped = skipped

    def merge(self, other):
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.skipped += other.skipped
        return self

    def batch_details(self, batch_size):
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "batchSize": batch_size,
            "lastBatchSize": self.processed % batch_size or batch_size,
            "totalBatches": math.ceil(self.processed / batch_size),
        }

    def as_dict(self):
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }

    def __eq__(self, other):
        return isinstance(other, MigrationStats) and self.as_dict() == other.as_dict()

    def __repr__(self):
        return (f"MigrationStats(processed={self.processed}, succeeded={self.succeeded}, "
                f"failed={self.failed}, skipped={self.skipped})")


class BatchLoader:
    """Transforms source rows and writes them with unordered bulk inserts.

    Row-level and batch-level failures are counted and logged, never raised.
    """

    def __init__(self, collection, log=None, batch_size=100, label=None):
        self.collection = collection
        self.log = log or logger
        self.batch_size = batch_size
        self.label = label or collection.name

    def prepare(self):
        self.log.info(f"Clearing existing {self.label} data...")
        self.collection.delete_many({})
        try:
            self.collection.drop_indexes()
            self.log.info(f"Dropped indexes on {self.label} collection")
        except OperationFailure as e:
            self.log.warning(f"No indexes to drop or error dropping: {e}")

    def run(self, rows, transform, row_key=None, total=None):
        stats = MigrationStats()
        batch = []
        batch_number = 1

        for row in rows:
            stats.processed += 1
            row_id = row.get(row_key) if row_key and isinstance(row, dict) else stats.processed
            try:
                document = transform(row)
            except Exception as e:
                stats.failed += 1
                self.log.error(f"Failed to migrate {self.label} {row_id}: {e}")
                continue

            if document is None:
                stats.skipped += 1
                continue

            batch.append(document)
            if len(batch) >= self.batch_size:
                self._flush(batch, batch_number, stats, total)
                batch = []
                batch_number += 1

        if batch:
            self._flush(batch, batch_number, stats, total, final=True)

        return stats

    def _flush(self, batch, batch_number, stats, total, final=False):
        try:
            self.collection.insert_many(batch, ordered=False)
        except PyMongoError as e:
            stats.failed += len(batch)
            self.log.error(f"{self.label} - batch insert error [batch {batch_number}]: {e}")
            return

        stats.succeeded += len(batch)
        prefix = "final batch" if final else "batch"
        progress = f"{stats.succeeded}/{total}" if total is not None else str(stats.succeeded)
        self.log.info(f"{self.label} - {prefix} {batch_number} inserted ({progress})")

    def rebuild_indexes(self, entity):
        create_indexes(self.collection, entity)
        self.log.info(f"Recreated indexes on {self.label} collection")


def load_collection(ctx, entity, rows, transform, row_key=None, log=None, total=None):
    """Clear, drop indexes, batch-insert, rebuild indexes.

    Every entity loader goes through here so re-running any phase starts
    from an empty destination collection.
    """
    log = log or logger
    collection = ctx.db[MODELS[entity].collection]
    loader = BatchLoader(collection, log, ctx.settings.BATCH_SIZE, label=MODELS[entity].name)

    loader.prepare()
    if total is None and isinstance(rows, (list, tuple)):
        total = len(rows)
    try:
        stats = loader.run(rows, transform, row_key, total)
    finally:
        loader.rebuild_indexes(entity)

    log.info(
        f"{MODELS[entity].name} migration complete: {stats.succeeded}/{stats.processed} succeeded, "
        f"{stats.failed} failed, {stats.skipped} skipped"
    )
    return stats
