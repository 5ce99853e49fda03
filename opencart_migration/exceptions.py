class MigrationError(Exception):
    """Phase-level failure: halts the phase and any run-all sequence."""


class MissingMappingError(MigrationError):
    def __init__(self, entity_type, source_id, message=None):
        self.entity_type = entity_type
        self.source_id = source_id
        super().__init__(message or f"{entity_type} mapping for source id {source_id} not found")


class DependencyError(MigrationError):
    pass


class VerificationError(MigrationError):
    def __init__(self, entity, source_count, destination_count, message=None):
        self.entity = entity
        self.source_count = source_count
        self.destination_count = destination_count
        super().__init__(
            message
            or f"CRITICAL: {entity} count mismatch! MySQL: {source_count}, MongoDB: {destination_count}"
        )
