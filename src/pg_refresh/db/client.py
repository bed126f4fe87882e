# src/pg_refresh/db/client.py

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, ContextManager, Optional

from loguru import logger
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine, Connection
from sqlalchemy.exc import DBAPIError

from pg_refresh.errors import TransportError
from pg_refresh.utils.identifiers import sanitize_ident


def _enable_sqlite_transactional_ddl(engine: Engine) -> None:
    # pysqlite only opens a transaction ahead of DML; CREATE/DROP would otherwise autocommit
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


@dataclass(frozen=True)
class DatabaseClient:
    engine: Engine

    @classmethod
    def from_params(
            cls,
            user: str,
            password: str,
            host: str,
            port: str,
            db: str,
    ) -> "DatabaseClient":
        conn_str = f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{db}"
        return cls.from_url(conn_str)

    @classmethod
    def from_url(cls, url: str, **engine_kwargs) -> "DatabaseClient":
        engine = create_engine(url, pool_pre_ping=True, **engine_kwargs)
        if engine.dialect.name == "sqlite":
            _enable_sqlite_transactional_ddl(engine)
        logger.debug(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")
        return cls(engine=engine)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def table_exists(self, table_name: str) -> bool:
        table_name = sanitize_ident(table_name)
        with self.connect() as conn:
            return inspect(conn).has_table(table_name)

    def get_table_columns(self, table_name: str) -> List[str]:
        """Columns in ordinal order; empty when the table does not exist."""
        table_name = sanitize_ident(table_name)
        with self.connect() as conn:
            insp = inspect(conn)
            if not insp.has_table(table_name):
                return []
            return [c["name"] for c in insp.get_columns(table_name)]

    def list_tables(self, prefix: str = "") -> List[str]:
        with self.connect() as conn:
            names = inspect(conn).get_table_names()
        return sorted(n for n in names if n.startswith(prefix))

    def begin(self) -> ContextManager[Connection]:
        return self.engine.begin()

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        try:
            conn = self.engine.connect()
        except DBAPIError as e:
            raise TransportError(
                f"Could not connect to database: {e.orig}",
                details={"cause": str(e.orig)},
            ) from e
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def connection(self, isolation_level: Optional[str] = None) -> Iterator[Connection]:
        """
        Connection for one unit of work. The caller owns begin/commit/rollback;
        the connection goes back to the pool on every exit path.
        """
        with self.connect() as conn:
            if isolation_level:
                conn.execution_options(isolation_level=isolation_level)
            yield conn

    def dispose(self) -> None:
        self.engine.dispose()
