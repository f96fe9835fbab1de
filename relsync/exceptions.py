"""Custom exceptions for relsync.

This module provides exception classes used throughout relsync.

Storage failures are NOT wrapped: sqlite3 errors raised during purge or
insert propagate to the caller unchanged.
"""


class RelSyncError(Exception):
    """Base exception for all relsync errors."""

    def __init__(self, message: str, details: dict | None = None):
        """Initialize exception with message and optional details.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details


class ResourceNotFound(RelSyncError):
    """Exception raised when a requested resource is not found."""

    pass


class ValidationError(RelSyncError):
    """Exception raised when input validation fails."""

    pass


class RelationConfigError(ValidationError):
    """Exception raised when a relation declaration is malformed.

    Raised by the declaration parser only. RelationRegistry catches it and
    caches the field as "no relation", so callers of resolve() never see it.

    Attributes:
        table: Table owning the malformed declaration
        field: Field owning the malformed declaration
    """

    table: str
    field: str

    def __init__(self, message: str, table: str, field: str):
        """Initialize relation configuration error.

        Args:
            message: Human-readable error message
            table: Table owning the malformed declaration
            field: Field owning the malformed declaration
        """
        super().__init__(message, details={"table": table, "field": field})
        self.table = table
        self.field = field


class ConsistencyError(RelSyncError):
    """Exception raised when join tables reference missing records.

    Attributes:
        orphans: List of orphaned edges (if applicable)
    """

    orphans: list[dict]

    def __init__(self, message: str, details: dict | None = None):
        """Initialize consistency error.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message, details)
        self.orphans = details.get("orphans", []) if details else []
