# src/pg_refresh/ports/lock.py

from __future__ import annotations

from typing import Protocol

from sqlalchemy.engine import Connection


class LockManager(Protocol):
    def acquire(self, conn: Connection, lock_key: str) -> None: ...
