"""
Exception hierarchy of the relationship engine.

Services raise these; the API layer maps them to HTTP status codes.
NotFoundError and ConflictError carry messages that are safe to show to the
caller, everything else is reported as a generic server error.
"""


class EngineError(Exception):
    """Base class for all engine errors."""


class NotFoundError(EngineError):
    """A project, datasource, table, column or relationship does not exist."""


class ConflictError(EngineError):
    """An active relationship already exists for the same column pair."""


class RelationshipValidationError(EngineError):
    """A manual relationship request is malformed (e.g. a column pointing at itself)."""


class InvalidStatusTransitionError(ConflictError):
    """The requested status change is not allowed by the lifecycle."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot change relationship status from '{current.value}' to '{target.value}'"
        )


class CatalogUnavailableError(EngineError):
    """The datasource's catalog (tables, columns, constraints) could not be read."""


class SamplingFailedError(EngineError):
    """A value sampling or membership query against the datasource failed."""


class DiscoveryCancelledError(EngineError):
    """The discovery run was cancelled or exceeded its deadline."""


class InternalError(EngineError):
    """Unexpected failure while reading or writing the relationship store."""
