from collections import defaultdict


class MappingTable:
    """Source integer id -> generated ObjectId, one map per entity type.

    Lives for a single process run and is never persisted. A lookup miss is
    the unresolved sentinel ``None``; callers decide whether that nulls a
    field or skips a row.
    """

    def __init__(self):
        self._maps = defaultdict(dict)
        self._missing = defaultdict(set)

    def set(self, entity_type, source_id, destination_id):
        self._maps[entity_type][source_id] = destination_id

    def get(self, entity_type, source_id):
        return self._maps.get(entity_type, {}).get(source_id)

    def has(self, entity_type, source_id):
        return source_id in self._maps.get(entity_type, {})

    def size(self, entity_type):
        return len(self._maps.get(entity_type, {}))

    def resolve(self, entity_type, source_id, log, context=""):
        """Lookup that logs and records a miss instead of raising."""
        destination_id = self.get(entity_type, source_id)
        if destination_id is None:
            self._missing[entity_type].add(source_id)
            suffix = f" ({context})" if context else ""
            log.warning(f"Missing {entity_type} mapping for MySQL id {source_id}{suffix} - using null")
        return destination_id

    def missing(self, entity_type):
        return sorted(self._missing.get(entity_type, ()), key=lambda v: (v is None, v))

    def clear_missing(self, entity_type):
        self._missing.pop(entity_type, None)

    def hydrate(self, entity_type, pairs):
        """Rebuild one entity map from (source_id, destination_id) pairs."""
        count = 0
        for source_id, destination_id in pairs:
            if source_id is None or destination_id is None:
                continue
            self.set(entity_type, source_id, destination_id)
            count += 1
        return count


def report_missing(mappings, entity_type, log, label, limit=None):
    ids = mappings.missing(entity_type)
    if not ids:
        return
    log.info(f"Missing {label} IDs ({len(ids)}):")
    if limit and len(ids) > limit:
        log.info(f"  First {limit}: {', '.join(str(i) for i in ids[:limit])}")
        log.info(f"  ... and {len(ids) - limit} more")
    else:
        log.info(f"  {', '.join(str(i) for i in ids)}")
