import logging
from datetime import datetime, timezone

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

IN_PROGRESS = "inProgress"
COMPLETED = "completed"
FAILED = "failed"
PENDING = "pending"

STATUSES = (PENDING, IN_PROGRESS, COMPLETED, FAILED)
ERROR_MAX_LENGTH = 1000


class PhaseStatusStore:
    """Phase status records in ``migrationStatuses``, one per phase name."""

    def __init__(self, collection, batch_size=100):
        self.collection = collection
        self.batch_size = batch_size

    def _write(self, name, fields):
        try:
            self.collection.update_one({"name": name}, {"$set": fields}, upsert=True)
        except PyMongoError as e:
            logger.error(f"Error updating migration status for {name}: {e}")

    def start(self, name, stats):
        started_at = datetime.now(timezone.utc)
        self._write(name, {
            "name": name,
            "status": IN_PROGRESS,
            "startedAt": started_at,
            "completedAt": None,
            "durationSeconds": 0,
            "migratedDetails": [self._details(name, IN_PROGRESS, stats)],
        })
        return started_at

    def finish(self, name, status, stats, started_at, error=None):
        completed_at = datetime.now(timezone.utc)
        self._write(name, {
            "name": name,
            "status": status,
            "completedAt": completed_at,
            "durationSeconds": int((completed_at - started_at).total_seconds()),
            "migratedDetails": [self._details(name, status, stats, error)],
        })

    def _details(self, name, status, stats, error=None):
        details = {"tableName": name, "status": status}
        details.update(stats.batch_details(self.batch_size))
        if error is not None:
            details["error"] = str(error)[:ERROR_MAX_LENGTH]
        return details

    def get(self, name):
        return self.collection.find_one({"name": name})

    def find_by_status(self, status):
        if status not in STATUSES:
            raise ValueError(f"Unknown migration status: {status}")
        return list(self.collection.find({"status": status}))

    def find_completed(self):
        return self.find_by_status(COMPLETED)

    def find_failed(self):
        return self.find_by_status(FAILED)

    def summary(self):
        counts = {status: 0 for status in STATUSES}
        for record in self.collection.find({}, {"status": 1}):
            counts[record.get("status", PENDING)] = counts.get(record.get("status", PENDING), 0) + 1
        counts["total"] = sum(counts[s] for s in STATUSES)
        return counts
