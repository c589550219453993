"""Domain exceptions for the document persistence layer.

Client exceptions (elasticsearch, opensearch, transport errors) are caught at
the repository seam and re-raised as one of these so that callers never see
raw driver errors.
"""

from __future__ import annotations


class PersistenceError(Exception):
    """Base exception for all persistence-layer errors.

    Attributes:
        entity_name: The index (or model) involved.
        operation: The operation that failed (e.g. ``"save"``, ``"find"``).
        detail: A sanitised description of what went wrong.
    """

    def __init__(
        self,
        *,
        entity_name: str,
        operation: str,
        detail: str,
        cause: Exception | None = None,
    ) -> None:
        self.entity_name = entity_name
        self.operation = operation
        self.detail = detail
        msg = f"[{entity_name}] {operation} failed: {detail}"
        super().__init__(msg)
        if cause is not None:
            self.__cause__ = cause


class DocumentNotFoundError(PersistenceError):
    """Raised when the requested document id does not exist in the index."""


class VersionConflictError(PersistenceError):
    """Raised when a write is rejected because of a version mismatch."""


class StoreUnavailableError(PersistenceError):
    """Raised when the client cannot reach the document store."""


class QueryError(PersistenceError):
    """Raised for malformed queries or requests rejected by the store."""


class DocumentNotPersistedError(PersistenceError):
    """Raised when an operation needs a stored document but the object is new."""
