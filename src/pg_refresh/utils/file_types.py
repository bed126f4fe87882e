# src/pg_refresh/utils/file_types.py

from __future__ import annotations

from enum import Enum


class FileFormat(str, Enum):
    CSV = "csv"
    TSV = "tsv"
    PARQUET = "parquet"
    UNKNOWN = "unknown"


def detect_file_format(file_path: str) -> FileFormat:
    name = file_path.lower()
    if name.endswith(".parquet") or name.endswith(".pq"):
        return FileFormat.PARQUET
    if name.endswith(".csv") or name.endswith(".csv.gz"):
        return FileFormat.CSV
    if name.endswith(".tsv") or name.endswith(".tsv.gz"):
        return FileFormat.TSV
    return FileFormat.UNKNOWN
