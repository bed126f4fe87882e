# src/pg_refresh/ports/database.py

from __future__ import annotations

from typing import Protocol, List, ContextManager, Optional

from sqlalchemy.engine import Engine, Connection


class Database(Protocol):
    engine: Engine

    @property
    def dialect(self) -> str: ...

    def table_exists(self, table: str) -> bool: ...
    def get_table_columns(self, table: str) -> List[str]: ...
    def list_tables(self, prefix: str = "") -> List[str]: ...

    def begin(self) -> ContextManager[Connection]: ...
    def connect(self) -> ContextManager[Connection]: ...
    def connection(self, isolation_level: Optional[str] = None) -> ContextManager[Connection]: ...
