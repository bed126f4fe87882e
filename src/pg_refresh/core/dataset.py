# src/pg_refresh/core/dataset.py

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Union

import pandas as pd
from loguru import logger

from pg_refresh.errors import DatasetInvalid, DuplicateKeys
from pg_refresh.utils.identifiers import sanitize_ident

Dataset = Union[pd.DataFrame, Sequence[Mapping[str, Any]]]

MAX_REPORTED_DUPLICATES = 10


class DuplicatePolicy(str, Enum):
    REJECT = "reject"
    LAST_WINS = "last_wins"


@dataclass(frozen=True)
class PreparedDataset:
    frame: pd.DataFrame
    key_columns: List[str]
    payload_columns: List[str]
    dropped_duplicates: int = 0

    @property
    def columns(self) -> List[str]:
        return self.key_columns + self.payload_columns

    @property
    def key_count(self) -> int:
        return len(self.frame)

    def __len__(self) -> int:
        return len(self.frame)


def _to_frame(dataset: Dataset) -> pd.DataFrame:
    if isinstance(dataset, pd.DataFrame):
        return dataset.reset_index(drop=True)

    records = list(dataset)
    if not records:
        return pd.DataFrame()

    expected = set(records[0].keys())
    for i, rec in enumerate(records[1:], start=1):
        if set(rec.keys()) != expected:
            raise DatasetInvalid(
                f"Record {i} does not share the schema of record 0",
                details={
                    "record": i,
                    "missing": sorted(expected - set(rec.keys())),
                    "unexpected": sorted(set(rec.keys()) - expected),
                },
            )

    return pd.DataFrame.from_records(records, columns=list(records[0].keys()))


def prepare_dataset(
        dataset: Dataset,
        key_columns: Sequence[str],
        payload_columns: Optional[Sequence[str]] = None,
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.REJECT,
) -> PreparedDataset:
    """
    Validate and project the replacement rows.

    - key columns must exist and contain no NULLs (NULL never matches the delete predicate)
    - payload defaults to every non-key column of the dataset
    - duplicate keys are rejected or collapsed to the last record, per policy
    """
    if isinstance(key_columns, str):
        key_columns = [key_columns]
    keys = [sanitize_ident(k) for k in key_columns]
    if not keys:
        raise DatasetInvalid("At least one key column is required")
    if len(set(keys)) != len(keys):
        raise DatasetInvalid(f"Key columns repeat: {keys}")

    frame = _to_frame(dataset)

    if frame.empty and not len(frame.columns):
        # empty sequence: shape comes from the declared columns
        frame = pd.DataFrame(columns=keys + list(payload_columns or []))

    for col in frame.columns:
        if not isinstance(col, str):
            raise DatasetInvalid(f"Column names must be strings, got {col!r}")

    missing_keys = [k for k in keys if k not in frame.columns]
    if missing_keys:
        raise DatasetInvalid(
            f"Dataset lacks key columns: {missing_keys}",
            details={"missing": missing_keys, "columns": list(frame.columns)},
        )

    if payload_columns is None:
        payload = [c for c in frame.columns if c not in keys]
    else:
        payload = list(payload_columns)
    payload = [sanitize_ident(c) for c in payload]

    overlap = [c for c in payload if c in keys]
    if overlap:
        raise DatasetInvalid(f"Columns declared as both key and payload: {overlap}")

    missing_payload = [c for c in payload if c not in frame.columns]
    if missing_payload:
        raise DatasetInvalid(
            f"Dataset lacks payload columns: {missing_payload}",
            details={"missing": missing_payload, "columns": list(frame.columns)},
        )

    frame = frame[keys + payload]

    null_keys = frame[keys].isna().any(axis=1)
    if null_keys.any():
        rows = [int(i) for i in frame.index[null_keys][:MAX_REPORTED_DUPLICATES]]
        raise DatasetInvalid(
            f"{int(null_keys.sum())} record(s) have NULL key values",
            details={"rows": rows},
        )

    dupes = frame.duplicated(subset=keys, keep=False)
    dropped = 0
    if dupes.any():
        if duplicate_policy == DuplicatePolicy.REJECT:
            sample = (
                frame.loc[dupes, keys]
                .drop_duplicates()
                .head(MAX_REPORTED_DUPLICATES)
                .to_dict(orient="records")
            )
            raise DuplicateKeys(
                f"Dataset repeats {len(frame.loc[dupes, keys].drop_duplicates())} key(s)",
                details={"keys": sample, "key_columns": keys},
            )

        before = len(frame)
        frame = frame.drop_duplicates(subset=keys, keep="last")
        dropped = before - len(frame)
        logger.warning(f"Collapsed {dropped} duplicate-key record(s), last record wins")

    return PreparedDataset(
        frame=frame.reset_index(drop=True),
        key_columns=keys,
        payload_columns=payload,
        dropped_duplicates=dropped,
    )
