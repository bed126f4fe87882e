# src/pg_refresh/db/loader_copy.py

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Set

import pandas as pd
from loguru import logger
from sqlalchemy import inspect
from sqlalchemy import types as sqltypes
from sqlalchemy.engine import Connection

from pg_refresh.db.loader_insert import frame_to_records
from pg_refresh.ports.loader import StagingLoader
from pg_refresh.utils.identifiers import sanitize_ident, qident


def integer_columns(conn: Connection, staging_table: str) -> Set[str]:
    """Integer-typed columns of the staging table (types inherited from the target)."""
    return {
        c["name"]
        for c in inspect(conn).get_columns(staging_table)
        if isinstance(c["type"], sqltypes.Integer)
    }


def fix_integer_columns(frame: pd.DataFrame, columns: Set[str]) -> pd.DataFrame:
    """
    A missing value turns an integer column into float64, which COPY would
    render as '90.0' and an integer column rejects. Non-integral values raise.
    """
    to_fix = [c for c in frame.columns if c in columns and pd.api.types.is_float_dtype(frame[c])]
    if not to_fix:
        return frame
    frame = frame.copy()
    for c in to_fix:
        frame[c] = frame[c].astype("Int64")
    return frame


def frame_to_copy_csv(frame: pd.DataFrame) -> io.StringIO:
    """
    CSV for COPY: every non-null value quoted, NULL as a bare empty field.
    Quoted values never match the NULL string, so '' and '\\N' survive as text.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_NOTNULL, lineterminator="\n")
    cols = list(frame.columns)
    for rec in frame_to_records(frame):
        writer.writerow([rec[c] for c in cols])
    buf.seek(0)
    return buf


@dataclass(frozen=True)
class CopyStagingLoader(StagingLoader):
    """
    PostgreSQL COPY through the psycopg2 cursor of the caller's connection,
    so the staged rows live and die with the refresh transaction.
    """

    batch_size: int = 100_000

    def load(self, conn: Connection, frame: pd.DataFrame, staging_table: str) -> int:
        staging_table = sanitize_ident(staging_table)
        if frame.empty:
            logger.debug(f"No rows to stage into <green>{staging_table}</green>")
            return 0

        frame = fix_integer_columns(frame, integer_columns(conn, staging_table))

        col_list_sql = ", ".join(qident(c) for c in frame.columns)
        copy_sql = f"COPY {qident(staging_table)} ({col_list_sql}) FROM STDIN WITH (FORMAT csv, HEADER false)"

        dbapi_conn = conn.connection.dbapi_connection
        total = 0
        with dbapi_conn.cursor() as cur:
            for i, start in enumerate(range(0, len(frame), self.batch_size)):
                chunk = frame.iloc[start:start + self.batch_size]

                cur.copy_expert(copy_sql, frame_to_copy_csv(chunk))
                total += len(chunk)

                if (i + 1) % 10 == 0:
                    logger.debug(f"Streamed {i + 1} COPY batches...")

        logger.debug(f"Staged {total} rows into <green>{staging_table}</green> (COPY)")
        return total
