# src/pg_refresh/db/lock.py

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Connection

from pg_refresh.ports.lock import LockManager


@dataclass(frozen=True)
class AdvisoryXactLock(LockManager):
    """Transaction-scoped advisory lock; commit or rollback releases it."""

    def acquire(self, conn: Connection, lock_key: str) -> None:
        logger.debug(f"Waiting for advisory lock: {lock_key}")
        conn.execute(text("SELECT pg_advisory_xact_lock(hashtext(:k)::bigint)"), {"k": lock_key})


@dataclass(frozen=True)
class NoopLock(LockManager):
    def acquire(self, conn: Connection, lock_key: str) -> None:
        return None


def lock_for_dialect(dialect: str) -> LockManager:
    if dialect == "postgresql":
        return AdvisoryXactLock()
    return NoopLock()
