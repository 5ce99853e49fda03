import copy
import re

import pytest
from bson import ObjectId
from pymongo.errors import BulkWriteError

from opencart_migration.config import Settings
from opencart_migration.context import MigrationContext

FROM_TABLE = re.compile(r"FROM\s+`?(\w+)`?", re.IGNORECASE)


class FakeSource:
    """In-memory stand-in for SourceStore.

    Rows are returned in the order given; joined queries read the rows stored
    under the first table named after FROM.
    """

    def __init__(self, tables=None):
        self.tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self.queries = []
        self.closed = False

    def _table(self, query):
        match = FROM_TABLE.search(query)
        return match.group(1) if match else None

    def fetch_data(self, query, params=None):
        self.queries.append(query)
        for row in self.tables.get(self._table(query), []):
            yield dict(row)

    def fetch_all(self, query, params=None):
        return list(self.fetch_data(query, params))

    def count(self, table):
        return len(self.tables.get(table, []))

    def max_value(self, table, column):
        values = [row[column] for row in self.tables.get(table, []) if row.get(column) is not None]
        return max(values) if values else None

    def list_tables(self):
        return list(self.tables)

    def close(self):
        self.closed = True


class FakeCollection:
    """Just enough of pymongo's Collection for the loaders and checks."""

    def __init__(self, name):
        self.name = name
        self.docs = []
        self.indexes = []
        self.insert_batches = []
        self.fail_batches = set()
        self.drop_calls = 0

    @staticmethod
    def _matches(doc, filter):
        return all(doc.get(key) == value for key, value in (filter or {}).items())

    def insert_many(self, documents, ordered=True):
        documents = list(documents)
        self.insert_batches.append(len(documents))
        if len(self.insert_batches) in self.fail_batches:
            raise BulkWriteError({"writeErrors": [{"index": 0, "code": 11000, "errmsg": "duplicate key"}],
                                  "nInserted": 0})
        for doc in documents:
            doc.setdefault("_id", ObjectId())
            self.docs.append(copy.deepcopy(doc))

    def delete_many(self, filter):
        kept = [doc for doc in self.docs if not self._matches(doc, filter)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return deleted

    def drop_indexes(self):
        self.drop_calls += 1
        self.indexes = []

    def create_index(self, keys, **options):
        self.indexes.append((keys, options))
        return "_".join(f"{field}_{direction}" for field, direction in keys)

    def find(self, filter=None, projection=None):
        return [copy.deepcopy(doc) for doc in self.docs if self._matches(doc, filter)]

    def find_one(self, filter=None, projection=None):
        found = self.find(filter)
        return found[0] if found else None

    def count_documents(self, filter):
        return len(self.find(filter))

    def update_one(self, filter, update, upsert=False):
        for doc in self.docs:
            if self._matches(doc, filter):
                doc.update(copy.deepcopy(update.get("$set", {})))
                return
        if upsert:
            doc = dict(filter)
            doc.update(copy.deepcopy(update.get("$set", {})))
            doc.setdefault("_id", ObjectId())
            self.docs.append(doc)

    def aggregate(self, pipeline):
        # Only the {$group: {total: {$sum: {$size: {$ifNull: ["$field", []]}}}}} shape.
        field = pipeline[0]["$group"]["total"]["$sum"]["$size"]["$ifNull"][0].lstrip("$")
        if not self.docs:
            return iter([])
        return iter([{"_id": None, "total": sum(len(doc.get(field) or []) for doc in self.docs)}])


class FakeDatabase:

    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


@pytest.fixture
def settings():
    return Settings(LOG_DIR="", PHASE_PAUSE_SECONDS=0, BATCH_SIZE=100,
                    DEFAULT_LANGUAGE_ID=1, WISHLIST_SUCCESS_THRESHOLD=90.0,
                    FALLBACK_EMAIL_DOMAIN="anne.com")


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def make_ctx(settings, db):
    def factory(tables=None, **overrides):
        ctx_settings = settings
        if overrides:
            for key, value in overrides.items():
                setattr(ctx_settings, key, value)
        return MigrationContext(FakeSource(tables), db, ctx_settings)
    return factory
