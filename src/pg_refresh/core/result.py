# src/pg_refresh/core/result.py

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from pg_refresh.errors import RefreshError


@dataclass(frozen=True)
class StepOutcome:
    """What one refresh step did. A failed outcome carries the categorized error."""

    step: str
    ok: bool
    rows: int = 0
    error: Optional[RefreshError] = None

    @classmethod
    def success(cls, step: str, rows: int = 0) -> "StepOutcome":
        return cls(step=step, ok=True, rows=rows)

    @classmethod
    def failure(cls, step: str, error: RefreshError) -> "StepOutcome":
        return cls(step=step, ok=False, error=error)


@dataclass(frozen=True)
class RefreshResult:
    target_table: str
    staging_table: str
    rows_deleted: int
    rows_inserted: int
    keys_refreshed: int
    duplicates_dropped: int
    elapsed_seconds: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
