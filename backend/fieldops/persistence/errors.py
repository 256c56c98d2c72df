"""
Persistence-specific errors.

These are infrastructure failures. They are never reported as a job-core
Conflict or NotFound and always propagate to the caller.
"""


class PersistenceError(Exception):
    """Base exception for persistence operations."""

    pass


class SchemaError(PersistenceError):
    """Schema migration or validation failed."""

    pass
