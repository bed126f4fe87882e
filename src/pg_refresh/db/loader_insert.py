# src/pg_refresh/db/loader_insert.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

import pandas as pd
from loguru import logger
from sqlalchemy import column, insert, table
from sqlalchemy.engine import Connection

from pg_refresh.ports.loader import StagingLoader
from pg_refresh.utils.identifiers import sanitize_ident


def frame_to_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Driver-bindable rows: native Python scalars, NaN/NaT as None."""
    boxed = frame.astype(object)
    return boxed.where(frame.notna(), None).to_dict(orient="records")


@dataclass(frozen=True)
class InsertStagingLoader(StagingLoader):
    batch_size: int = 10_000

    def load(self, conn: Connection, frame: pd.DataFrame, staging_table: str) -> int:
        staging_table = sanitize_ident(staging_table)
        if frame.empty:
            logger.debug(f"No rows to stage into <green>{staging_table}</green>")
            return 0

        cols = [sanitize_ident(c) for c in frame.columns]
        stmt = insert(table(staging_table, *(column(c) for c in cols)))

        total = 0
        for start in range(0, len(frame), self.batch_size):
            records = frame_to_records(frame.iloc[start:start + self.batch_size])
            conn.execute(stmt, records)
            total += len(records)

        logger.debug(f"Staged {total} rows into <green>{staging_table}</green> (INSERT)")
        return total
