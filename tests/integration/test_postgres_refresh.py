"""End-to-end refresh against a live PostgreSQL (set PG_TEST_URL to run)."""

from __future__ import annotations

import os
import threading
import uuid

import pytest
from sqlalchemy import text

from pg_refresh.config import RefreshSettings
from pg_refresh.core.refresh import StagingRefresher
from pg_refresh.db.client import DatabaseClient
from pg_refresh.db.loader_copy import CopyStagingLoader
from pg_refresh.db.lock import AdvisoryXactLock
from pg_refresh.errors import MutationFailed, RefreshTimeout

PG_TEST_URL = os.getenv("PG_TEST_URL")

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(not PG_TEST_URL, reason="PG_TEST_URL not set"),
]


@pytest.fixture
def pg():
    client = DatabaseClient.from_url(PG_TEST_URL)
    yield client
    client.dispose()


@pytest.fixture
def accounts(pg: DatabaseClient):
    table = f"accounts_{uuid.uuid4().hex[:8]}"
    with pg.begin() as conn:
        conn.execute(
            text(
                f'CREATE TABLE "{table}" ('
                "  region TEXT NOT NULL,"
                "  account_id INTEGER NOT NULL,"
                "  balance NUMERIC(12, 2) NOT NULL,"
                "  note TEXT,"
                "  PRIMARY KEY (region, account_id))"
            )
        )
        conn.execute(
            text(f'INSERT INTO "{table}" VALUES (:r, :a, :b, :n)'),
            [
                {"r": "eu", "a": 1, "b": 10, "n": "first"},
                {"r": "eu", "a": 2, "b": 20, "n": None},
                {"r": "us", "a": 1, "b": 30, "n": "x,\"quoted\""},
            ],
        )
    yield table
    with pg.begin() as conn:
        conn.execute(text(f'DROP TABLE IF EXISTS "{table}"'))


def _rows(pg: DatabaseClient, table: str):
    with pg.connect() as conn:
        return [tuple(r) for r in conn.execute(text(f'SELECT * FROM "{table}" ORDER BY 1, 2')).fetchall()]


def test_copy_refresh_commits(pg: DatabaseClient, accounts: str) -> None:
    refresher = StagingRefresher.for_database(pg)
    assert isinstance(refresher.loader, CopyStagingLoader)
    assert isinstance(refresher.lock, AdvisoryXactLock)

    result = refresher.refresh(
        accounts,
        [
            {"region": "eu", "account_id": 2, "balance": 25.5, "note": 'comma, and "quote"'},
            {"region": "us", "account_id": 9, "balance": 1, "note": None},
        ],
        key_columns=["region", "account_id"],
    )

    rows = _rows(pg, accounts)
    assert [(r[0], r[1], float(r[2]), r[3]) for r in rows] == [
        ("eu", 1, 10.0, "first"),
        ("eu", 2, 25.5, 'comma, and "quote"'),
        ("us", 1, 30.0, 'x,"quoted"'),
        ("us", 9, 1.0, None),
    ]
    assert result.rows_deleted == 1
    assert pg.list_tables(f"stg_{accounts}") == []


def test_constraint_violation_rolls_back(pg: DatabaseClient, accounts: str) -> None:
    before = _rows(pg, accounts)
    refresher = StagingRefresher.for_database(pg)

    with pytest.raises(MutationFailed):
        refresher.refresh(
            accounts,
            [{"region": "eu", "account_id": 1, "balance": None, "note": "n"}],
            key_columns=["region", "account_id"],
        )

    assert _rows(pg, accounts) == before
    assert pg.list_tables(f"stg_{accounts}") == []


def test_statement_timeout_rolls_back(pg: DatabaseClient, accounts: str) -> None:
    before = _rows(pg, accounts)
    refresher = StagingRefresher.for_database(pg, RefreshSettings(timeout_seconds=0.5))
    acquired = threading.Event()
    release = threading.Event()

    # hold the advisory lock so the refresh blocks until statement_timeout fires
    def _hold() -> None:
        with pg.begin() as conn:
            AdvisoryXactLock().acquire(conn, f"refresh:{accounts}")
            acquired.set()
            release.wait(5)

    holder = threading.Thread(target=_hold)
    holder.start()
    assert acquired.wait(5)
    try:
        with pytest.raises(RefreshTimeout):
            refresher.refresh(
                accounts,
                [{"region": "eu", "account_id": 1, "balance": 1, "note": None}],
                key_columns=["region", "account_id"],
            )
    finally:
        release.set()
        holder.join()

    assert _rows(pg, accounts) == before


def test_copy_keeps_nullable_integers_and_text_markers(pg: DatabaseClient) -> None:
    table = f"lineups_{uuid.uuid4().hex[:8]}"
    with pg.begin() as conn:
        conn.execute(text(f'CREATE TABLE "{table}" (id INTEGER PRIMARY KEY, minutes INTEGER, label TEXT)'))
    try:
        StagingRefresher.for_database(pg).refresh(
            table,
            [
                {"id": 1, "minutes": 90, "label": "\\N"},
                {"id": 2, "minutes": None, "label": ""},
                {"id": 3, "minutes": 45, "label": None},
            ],
            key_columns=["id"],
        )

        assert _rows(pg, table) == [(1, 90, "\\N"), (2, None, ""), (3, 45, None)]
    finally:
        with pg.begin() as conn:
            conn.execute(text(f'DROP TABLE IF EXISTS "{table}"'))
