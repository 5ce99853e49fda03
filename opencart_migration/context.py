from .log import get_logger
from .mapping import MappingTable


class MigrationContext:
    """Everything a loader needs: both stores, the mapping table and settings."""

    def __init__(self, source, db, settings, mappings=None):
        self.source = source
        self.db = db
        self.settings = settings
        self.mappings = mappings or MappingTable()
        self.wishlist_stats = None

    def logger(self, name):
        return get_logger(name, self.settings)
