# src/pg_refresh/core/sources.py

from __future__ import annotations

import pandas as pd
import pyarrow.parquet as pq
from loguru import logger

from pg_refresh.utils.file_types import FileFormat, detect_file_format


def read_dataset_file(file_path: str) -> pd.DataFrame:
    """Load a replacement dataset from CSV / CSV.GZ / TSV / Parquet into a DataFrame."""
    fmt = detect_file_format(file_path)

    if fmt == FileFormat.PARQUET:
        frame = pq.read_table(file_path).to_pandas()
    elif fmt == FileFormat.CSV:
        frame = pd.read_csv(file_path, compression="infer", low_memory=False)
    elif fmt == FileFormat.TSV:
        frame = pd.read_csv(file_path, sep="\t", compression="infer", low_memory=False)
    else:
        raise ValueError(f"Unsupported file format: {file_path} ({fmt})")

    logger.info(f"Read {len(frame)} rows x {len(frame.columns)} columns from {file_path}")
    return frame
