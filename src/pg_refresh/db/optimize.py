# src/pg_refresh/db/optimize.py

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pg_refresh.errors import RefreshError
from pg_refresh.ports.database import Database
from pg_refresh.utils.identifiers import sanitize_ident, qident


@dataclass(frozen=True)
class PostLoadOptimizer:
    db: Database

    def analyze(self, table_name: str) -> bool:
        """Refresh planner statistics. Never fails the caller: the data is already committed."""
        table_name = sanitize_ident(table_name)
        if self.db.dialect != "postgresql":
            logger.debug(f"ANALYZE skipped for dialect {self.db.dialect}")
            return False
        try:
            with self.db.begin() as conn:
                conn.execute(text(f"ANALYZE {qident(table_name)}"))
        except (SQLAlchemyError, RefreshError) as e:
            logger.warning(f"ANALYZE failed for <green>{table_name}</green>: {e}")
            return False
        logger.info(f"ANALYZE completed for <green>{table_name}</green>")
        return True
