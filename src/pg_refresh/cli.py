# src/pg_refresh/cli.py

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv
from loguru import logger

from pg_refresh.config import RefreshSettings, build_paths, configure_logging, database_url_from_env
from pg_refresh.core.dataset import DuplicatePolicy
from pg_refresh.core.refresh import StagingRefresher
from pg_refresh.core.sources import read_dataset_file
from pg_refresh.db.client import DatabaseClient
from pg_refresh.errors import RefreshError
from pg_refresh.utils.downloader import download_file


def _split_columns(values: Optional[Sequence[str]]) -> Optional[List[str]]:
    if not values:
        return None
    cols: List[str] = []
    for v in values:
        cols.extend(c.strip() for c in v.split(",") if c.strip())
    return cols or None


def build_parser(defaults: RefreshSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pg-refresh",
        description="Atomically replace rows of a table, keyed by a new dataset, through a staging table",
    )

    parser.add_argument("--db_url", default=None,
                        help="SQLAlchemy URL (default: DATABASE_URL or DB_* variables from .env)")

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="Local CSV / CSV.GZ / TSV / Parquet file")
    source.add_argument("--url", help="URL of the data file")

    parser.add_argument("--table", required=True, help="Target table (must already exist)")
    parser.add_argument("--key", action="append", required=True,
                        help="Key column(s); repeat or comma-separate")
    parser.add_argument("--payload", action="append", default=None,
                        help="Payload column(s) to write (default: every non-key column)")

    parser.add_argument("--isolation", default=defaults.isolation_level,
                        help="Transaction isolation level")
    parser.add_argument("--timeout", type=float, default=defaults.timeout_seconds,
                        help="Seconds before the refresh is rolled back")
    parser.add_argument("--duplicates", choices=[p.value for p in DuplicatePolicy],
                        default=defaults.duplicate_policy.value,
                        help="What to do with repeated keys in the dataset")
    parser.add_argument("--batch_size", type=int, default=defaults.batch_size)
    parser.add_argument("--no_analyze", action="store_true", help="Skip ANALYZE after commit")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(dotenv_path=Path.cwd() / ".env")

    paths = build_paths()
    configure_logging(paths)

    try:
        defaults = RefreshSettings.from_env()
    except ValueError as e:
        logger.error(f"Invalid refresh settings in environment: {e}")
        return 2

    args = build_parser(defaults).parse_args(argv)

    try:
        settings = RefreshSettings(
            staging_prefix=defaults.staging_prefix,
            isolation_level=args.isolation,
            timeout_seconds=args.timeout,
            duplicate_policy=DuplicatePolicy(args.duplicates),
            batch_size=args.batch_size,
            analyze=defaults.analyze and not args.no_analyze,
        )
    except ValueError as e:
        logger.error(f"Invalid option: {e}")
        return 2

    file_path = args.file or download_file(args.url, paths.data_dir)
    frame = read_dataset_file(file_path)

    db = DatabaseClient.from_url(args.db_url or database_url_from_env())
    refresher = StagingRefresher.for_database(db, settings)

    try:
        result = refresher.refresh(
            target_table=args.table,
            dataset=frame,
            key_columns=_split_columns(args.key),
            payload_columns=_split_columns(args.payload),
        )
    except RefreshError as e:
        logger.error(f"Refresh failed [{e.code}]: {e.message}")
        logger.debug(f"Error details: {e.details}")
        return 1
    finally:
        db.dispose()

    logger.info(f"Result: {result.to_dict()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
