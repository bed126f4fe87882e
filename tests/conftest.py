"""Shared fixtures for pg_refresh tests."""

from __future__ import annotations

import os
import re
import sqlite3
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings
from loguru import logger
from sqlalchemy import event, text

from pg_refresh.config import RefreshSettings
from pg_refresh.core.refresh import StagingRefresher
from pg_refresh.db.client import DatabaseClient

settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.target, Phase.shrink],
)

settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.normal,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.target, Phase.shrink],
    derandomize=True,
)

settings.register_profile(
    "dev",
    max_examples=10,
    verbosity=Verbosity.verbose,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


PLAYERS_DDL = """
CREATE TABLE players (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    rating REAL
)
"""

ROSTER_DDL = """
CREATE TABLE roster (
    team_id INTEGER NOT NULL,
    player_id INTEGER NOT NULL,
    position TEXT NOT NULL,
    minutes INTEGER,
    PRIMARY KEY (team_id, player_id)
)
"""


@pytest.fixture
def db(tmp_path: Path) -> Generator[DatabaseClient, None, None]:
    """File-backed SQLite client with transactional DDL."""
    client = DatabaseClient.from_url(f"sqlite:///{tmp_path / 'refresh.db'}")
    yield client
    client.dispose()


@pytest.fixture
def players(db: DatabaseClient) -> str:
    """Target table seeded with keys 1, 2, 3."""
    with db.begin() as conn:
        conn.execute(text(PLAYERS_DDL))
        conn.execute(
            text("INSERT INTO players (id, name, rating) VALUES (:id, :name, :rating)"),
            [
                {"id": 1, "name": "ada", "rating": 1500.0},
                {"id": 2, "name": "bo", "rating": 1410.5},
                {"id": 3, "name": "cy", "rating": None},
            ],
        )
    return "players"


@pytest.fixture
def roster(db: DatabaseClient) -> str:
    """Target table keyed by the (team_id, player_id) pair."""
    with db.begin() as conn:
        conn.execute(text(ROSTER_DDL))
        conn.execute(
            text(
                "INSERT INTO roster (team_id, player_id, position, minutes) "
                "VALUES (:team_id, :player_id, :position, :minutes)"
            ),
            [
                {"team_id": 10, "player_id": 1, "position": "GK", "minutes": 90},
                {"team_id": 10, "player_id": 2, "position": "DF", "minutes": 75},
                {"team_id": 20, "player_id": 1, "position": "MF", "minutes": 12},
            ],
        )
    return "roster"


@pytest.fixture
def refresher(db: DatabaseClient) -> StagingRefresher:
    return StagingRefresher.for_database(db, RefreshSettings())


@pytest.fixture
def snapshot(db: DatabaseClient) -> Callable[[str], list[tuple[Any, ...]]]:
    """Full, ordered row set of a table."""

    def _snapshot(table: str) -> list[tuple[Any, ...]]:
        with db.connect() as conn:
            rows = conn.execute(text(f'SELECT * FROM "{table}"')).fetchall()
        return sorted(tuple(r) for r in rows)

    return _snapshot


@pytest.fixture
def fail_on(db: DatabaseClient) -> Callable[[str], None]:
    """Make the driver reject the next statement matching a regex."""

    def _fail_on(pattern: str) -> None:
        rx = re.compile(pattern)

        @event.listens_for(db.engine, "before_cursor_execute")
        def _inject(conn, cursor, statement, parameters, context, executemany):
            if rx.search(statement):
                raise sqlite3.OperationalError(f"injected failure: {pattern}")

    return _fail_on


@pytest.fixture
def statements(db: DatabaseClient) -> list[str]:
    """Every SQL statement sent to the driver, in order."""
    seen: list[str] = []

    @event.listens_for(db.engine, "before_cursor_execute")
    def _record(conn, cursor, statement, parameters, context, executemany):
        seen.append(statement.lstrip())

    return seen


@pytest.fixture
def log_records() -> Generator[list[tuple[str, str]], None, None]:
    """(level, message) pairs emitted through loguru while the test runs."""
    records: list[tuple[str, str]] = []
    handler_id = logger.add(
        lambda m: records.append((m.record["level"].name, m.record["message"])),
        level="DEBUG",
    )
    yield records
    logger.remove(handler_id)
