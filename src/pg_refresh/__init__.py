# src/pg_refresh/__init__.py

from .config import RefreshSettings
from .core.dataset import DuplicatePolicy
from .core.refresh import StagingRefresher
from .core.result import RefreshResult
from .db.client import DatabaseClient
from .errors import (
    CleanupFailed,
    DatasetInvalid,
    DuplicateKeys,
    MutationFailed,
    RefreshError,
    RefreshTimeout,
    SchemaMissing,
    StagingWriteFailed,
    TransportError,
)

__all__ = [
    "RefreshSettings",
    "DuplicatePolicy",
    "StagingRefresher",
    "RefreshResult",
    "DatabaseClient",
    "RefreshError",
    "SchemaMissing",
    "DatasetInvalid",
    "DuplicateKeys",
    "StagingWriteFailed",
    "MutationFailed",
    "CleanupFailed",
    "RefreshTimeout",
    "TransportError",
]
