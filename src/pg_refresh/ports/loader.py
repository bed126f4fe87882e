# src/pg_refresh/ports/loader.py

from typing import Protocol

import pandas as pd
from sqlalchemy.engine import Connection


class StagingLoader(Protocol):
    def load(self, conn: Connection, frame: pd.DataFrame, staging_table: str) -> int: ...
