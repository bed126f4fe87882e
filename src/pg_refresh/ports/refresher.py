# src/pg_refresh/ports/refresher.py

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from pg_refresh.core.dataset import Dataset
from pg_refresh.core.result import RefreshResult


class Refresher(Protocol):
    def refresh(
            self,
            target_table: str,
            dataset: Dataset,
            key_columns: Sequence[str],
            payload_columns: Optional[Sequence[str]] = None,
            timeout: Optional[float] = None,
    ) -> RefreshResult: ...
