# src/pg_refresh/errors.py

"""
Categorized refresh errors.

Anything raised before the refresh transaction opens (SchemaMissing,
DatasetInvalid) guarantees no mutation happened. Anything raised after it
opened is raised only once the transaction has been rolled back.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RefreshError(Exception):
    """Base class; carries a machine-readable code and structured details."""

    default_code = "REFRESH_ERROR"

    def __init__(
            self,
            message: str,
            code: Optional[str] = None,
            details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code!r})"


class SchemaMissing(RefreshError):
    """Target table is absent or lacks columns the dataset writes."""

    default_code = "SCHEMA_MISSING"


class DatasetInvalid(RefreshError):
    default_code = "DATASET_INVALID"


class DuplicateKeys(DatasetInvalid):
    default_code = "DUPLICATE_KEYS"


class StagingWriteFailed(RefreshError):
    default_code = "STAGING_WRITE_FAILED"


class MutationFailed(RefreshError):
    default_code = "MUTATION_FAILED"


class CleanupFailed(RefreshError):
    """Dropping the staging table failed; the whole refresh was abandoned."""

    default_code = "CLEANUP_FAILED"


class RefreshTimeout(RefreshError):
    default_code = "TIMEOUT"


class TransportError(RefreshError):
    """Connection-level failure reported by the database client."""

    default_code = "TRANSPORT_ERROR"
