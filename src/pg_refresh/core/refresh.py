# src/pg_refresh/core/refresh.py

from __future__ import annotations

from dataclasses import dataclass, field
from time import monotonic
from typing import Callable, Optional, Sequence, Tuple, Type

from loguru import logger
from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.engine.base import RootTransaction
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from pg_refresh.config import RefreshSettings
from pg_refresh.core.dataset import Dataset, PreparedDataset, prepare_dataset
from pg_refresh.core.result import RefreshResult, StepOutcome
from pg_refresh.db.loader_copy import CopyStagingLoader
from pg_refresh.db.loader_insert import InsertStagingLoader
from pg_refresh.db.lock import NoopLock, lock_for_dialect
from pg_refresh.db.optimize import PostLoadOptimizer
from pg_refresh.errors import (
    CleanupFailed,
    MutationFailed,
    RefreshError,
    RefreshTimeout,
    SchemaMissing,
    StagingWriteFailed,
    TransportError,
)
from pg_refresh.ports.database import Database
from pg_refresh.ports.loader import StagingLoader
from pg_refresh.ports.lock import LockManager
from pg_refresh.ports.refresher import Refresher
from pg_refresh.utils.identifiers import qident, sanitize_ident, staging_table_name

# SQLSTATE query_canceled, raised when statement_timeout fires
PG_QUERY_CANCELED = "57014"


def _sqlstate(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", exc)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def _categorize(
        exc: BaseException,
        step: str,
        error_cls: Type[RefreshError],
        message: str,
) -> RefreshError:
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        error_cls = TransportError
        message = f"Connection lost during {step}"
    elif _sqlstate(exc) == PG_QUERY_CANCELED:
        error_cls = RefreshTimeout
        message = f"Statement timeout during {step}"

    orig = getattr(exc, "orig", None) or exc
    error = error_cls(f"{message}: {orig}", details={"step": step, "cause": str(orig)})
    error.__cause__ = exc
    return error


@dataclass(frozen=True)
class StagingRefresher(Refresher):
    """
    Replace the rows of a target table whose key appears in a new dataset:

      create staging -> load staging -> DELETE matching keys -> INSERT from staging -> DROP staging

    all inside one transaction, committed only if every step succeeded.
    """

    db: Database
    loader: StagingLoader = field(default_factory=InsertStagingLoader)
    lock: LockManager = field(default_factory=NoopLock)
    optimizer: Optional[PostLoadOptimizer] = None
    settings: RefreshSettings = field(default_factory=RefreshSettings)

    @classmethod
    def for_database(cls, db: Database, settings: Optional[RefreshSettings] = None) -> "StagingRefresher":
        settings = settings or RefreshSettings()
        if db.dialect == "postgresql":
            loader: StagingLoader = CopyStagingLoader(batch_size=settings.batch_size)
        else:
            loader = InsertStagingLoader(batch_size=settings.batch_size)
        return cls(
            db=db,
            loader=loader,
            lock=lock_for_dialect(db.dialect),
            optimizer=PostLoadOptimizer(db) if settings.analyze else None,
            settings=settings,
        )

    # ---------- preconditions ----------
    def _check_target(self, target_table: str, prepared: PreparedDataset) -> None:
        if not self.db.table_exists(target_table):
            raise SchemaMissing(
                f"Target table {target_table} does not exist",
                details={"table": target_table},
            )

        target_cols = set(self.db.get_table_columns(target_table))
        missing = [c for c in prepared.columns if c not in target_cols]
        if missing:
            raise SchemaMissing(
                f"Target table {target_table} lacks columns {missing}",
                details={"table": target_table, "missing": missing},
            )

    # ---------- steps ----------
    def _attempt(
            self,
            step: str,
            error_cls: Type[RefreshError],
            message: str,
            fn: Callable[[], int],
    ) -> StepOutcome:
        try:
            rows = fn()
        except RefreshError as e:
            return StepOutcome.failure(step, e)
        except self._driver_errors() as e:
            return StepOutcome.failure(step, _categorize(e, step, error_cls, message))
        logger.debug(f"Step {step} ok ({rows} rows)")
        return StepOutcome.success(step, rows)

    def _driver_errors(self) -> Tuple[Type[BaseException], ...]:
        dbapi = getattr(self.db.engine.dialect, "loaded_dbapi", None)
        if dbapi is not None and hasattr(dbapi, "Error"):
            return SQLAlchemyError, dbapi.Error
        return (SQLAlchemyError,)

    def _limit_statements(self, conn: Connection, seconds: float) -> None:
        if self.db.dialect != "postgresql":
            return
        conn.execute(
            text("SELECT set_config('statement_timeout', :ms, true)"),
            {"ms": str(max(1, int(seconds * 1000)))},
        )

    def _timed(
            self,
            conn: Connection,
            step: str,
            error_cls: Type[RefreshError],
            message: str,
            fn: Callable[[Connection], int],
            deadline: Optional[float],
            timeout: Optional[float],
            target_table: str,
    ) -> StepOutcome:
        if deadline is None:
            return self._attempt(step, error_cls, message, lambda: fn(conn))

        remaining = deadline - monotonic()
        if remaining <= 0:
            return StepOutcome.failure(
                step,
                RefreshTimeout(
                    f"Refresh of {target_table} exceeded {timeout}s before {step}",
                    details={"step": step, "timeout": timeout},
                ),
            )

        # statement_timeout tracks what is left of the budget, not the whole of it
        def _bounded() -> int:
            self._limit_statements(conn, remaining)
            return fn(conn)

        return self._attempt(step, error_cls, message, _bounded)

    def _begin_unit(self, conn: Connection, target_table: str) -> int:
        self.lock.acquire(conn, f"refresh:{target_table}")
        return 0

    def _create_staging(self, conn: Connection, target_table: str, staging_table: str,
                        prepared: PreparedDataset) -> int:
        if inspect(conn).has_table(staging_table):
            logger.warning(f"Stale staging relation {staging_table} found; overwriting it")
            conn.execute(text(f"DROP TABLE {qident(staging_table)}"))

        cols_sql = ", ".join(qident(c) for c in prepared.columns)
        # column types come from the target itself
        conn.execute(
            text(
                f"CREATE TABLE {qident(staging_table)} AS "
                f"SELECT {cols_sql} FROM {qident(target_table)} WHERE 1 = 0"
            )
        )
        return 0

    def _load_staging(self, conn: Connection, staging_table: str, prepared: PreparedDataset) -> int:
        try:
            loaded = self.loader.load(conn, prepared.frame, staging_table)
        except (TypeError, ValueError) as e:
            # values the staging column types cannot hold, caught before the driver sees them
            raise StagingWriteFailed(
                f"Could not convert rows for {staging_table}: {e}",
                details={"step": "load_staging", "cause": str(e)},
            ) from e
        staged = conn.execute(text(f"SELECT COUNT(*) FROM {qident(staging_table)}")).scalar_one()
        if staged != len(prepared) or loaded != len(prepared):
            raise StagingWriteFailed(
                f"Staging {staging_table} holds {staged} rows, expected {len(prepared)}",
                details={"step": "load_staging", "staged": staged, "expected": len(prepared)},
            )
        return staged

    def _delete_superseded(self, conn: Connection, target_table: str, staging_table: str,
                           prepared: PreparedDataset) -> int:
        match_sql = " AND ".join(
            f"s.{qident(k)} = {qident(target_table)}.{qident(k)}" for k in prepared.key_columns
        )
        result = conn.execute(
            text(
                f"DELETE FROM {qident(target_table)} "
                f"WHERE EXISTS (SELECT 1 FROM {qident(staging_table)} AS s WHERE {match_sql})"
            )
        )
        return max(result.rowcount, 0)

    def _insert_from_staging(self, conn: Connection, target_table: str, staging_table: str,
                             prepared: PreparedDataset) -> int:
        cols_sql = ", ".join(qident(c) for c in prepared.columns)
        result = conn.execute(
            text(
                f"INSERT INTO {qident(target_table)} ({cols_sql}) "
                f"SELECT {cols_sql} FROM {qident(staging_table)}"
            )
        )
        return max(result.rowcount, 0)

    def _drop_staging(self, conn: Connection, staging_table: str) -> int:
        conn.execute(text(f"DROP TABLE {qident(staging_table)}"))
        return 0

    # ---------- transaction boundary ----------
    def _rollback(self, trans: RootTransaction, target_table: str) -> None:
        if not trans.is_active:
            return
        try:
            trans.rollback()
        except self._driver_errors() as e:
            # server discards the transaction with the dead session
            logger.warning(f"Rollback for {target_table} did not complete cleanly: {e}")

    def _commit(self, trans: RootTransaction) -> int:
        trans.commit()
        return 0

    def refresh(
            self,
            target_table: str,
            dataset: Dataset,
            key_columns: Sequence[str],
            payload_columns: Optional[Sequence[str]] = None,
            timeout: Optional[float] = None,
    ) -> RefreshResult:
        target_table = sanitize_ident(target_table)
        timeout = timeout if timeout is not None else self.settings.timeout_seconds
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        start = monotonic()
        deadline = start + timeout if timeout is not None else None

        prepared = prepare_dataset(
            dataset,
            key_columns=key_columns,
            payload_columns=payload_columns,
            duplicate_policy=self.settings.duplicate_policy,
        )
        self._check_target(target_table, prepared)

        staging_table = staging_table_name(target_table, self.settings.staging_prefix)

        if self.settings.weak_isolation:
            logger.warning(
                f"Refreshing {target_table} under {self.settings.isolation_level}: a concurrent writer "
                f"can insert a colliding key between DELETE and INSERT"
            )

        logger.info(
            f"Refreshing <green>{target_table}</green> via <green>{staging_table}</green> "
            f"({len(prepared)} rows, keys={prepared.key_columns})"
        )

        steps = (
            ("begin", MutationFailed, "Could not prepare transaction",
             lambda c: self._begin_unit(c, target_table)),
            ("create_staging", StagingWriteFailed, f"Could not create staging {staging_table}",
             lambda c: self._create_staging(c, target_table, staging_table, prepared)),
            ("load_staging", StagingWriteFailed, f"Could not load staging {staging_table}",
             lambda c: self._load_staging(c, staging_table, prepared)),
            ("delete", MutationFailed, f"DELETE from {target_table} failed",
             lambda c: self._delete_superseded(c, target_table, staging_table, prepared)),
            ("insert", MutationFailed, f"INSERT into {target_table} failed",
             lambda c: self._insert_from_staging(c, target_table, staging_table, prepared)),
            ("drop_staging", CleanupFailed, f"Could not drop staging {staging_table}",
             lambda c: self._drop_staging(c, staging_table)),
        )

        rows = {}
        with self.db.connection(self.settings.isolation_level) as conn:
            try:
                trans = conn.begin()
            except self._driver_errors() as e:
                raise _categorize(e, "begin", TransportError, "Could not open transaction")

            try:
                for step, error_cls, message, fn in steps:
                    outcome = self._timed(conn, step, error_cls, message, fn, deadline, timeout, target_table)
                    if not outcome.ok:
                        self._rollback(trans, target_table)
                        logger.error(
                            f"Refresh of <green>{target_table}</green> rolled back at {step}: "
                            f"[{outcome.error.code}] {outcome.error.message}"
                        )
                        raise outcome.error
                    rows[step] = outcome.rows

                committed = self._timed(
                    conn, "commit", MutationFailed, "Commit failed",
                    lambda c: self._commit(trans), deadline, timeout, target_table,
                )
                if not committed.ok:
                    self._rollback(trans, target_table)
                    logger.error(
                        f"Refresh of <green>{target_table}</green> failed at commit: "
                        f"[{committed.error.code}] {committed.error.message}"
                    )
                    raise committed.error
            finally:
                self._rollback(trans, target_table)

        result = RefreshResult(
            target_table=target_table,
            staging_table=staging_table,
            rows_deleted=rows["delete"],
            rows_inserted=rows["insert"],
            keys_refreshed=prepared.key_count,
            duplicates_dropped=prepared.dropped_duplicates,
            elapsed_seconds=round(monotonic() - start, 6),
        )

        logger.success(
            f"Refreshed <green>{target_table}</green>: deleted={result.rows_deleted} "
            f"inserted={result.rows_inserted} in {result.elapsed_seconds:.2f}s"
        )

        if self.optimizer is not None:
            self.optimizer.analyze(target_table)

        return result
