"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

MEMORY_DB = ":memory:"

SCHEMA_SQL = """
-- Sequences for auto-increment IDs
CREATE SEQUENCE IF NOT EXISTS user_seq START 1;
CREATE SEQUENCE IF NOT EXISTS event_seq START 1;
CREATE SEQUENCE IF NOT EXISTS outcome_seq START 1;
CREATE SEQUENCE IF NOT EXISTS position_seq START 1;
CREATE SEQUENCE IF NOT EXISTS tx_seq START 1;
CREATE SEQUENCE IF NOT EXISTS snap_seq START 1;
CREATE SEQUENCE IF NOT EXISTS activity_seq START 1;

CREATE TABLE IF NOT EXISTS users (
    user_id         BIGINT PRIMARY KEY DEFAULT nextval('user_seq'),
    username        VARCHAR NOT NULL,
    balance         BIGINT NOT NULL,
    is_admin        BOOLEAN NOT NULL DEFAULT FALSE,
    created_at      BIGINT NOT NULL
);

-- Market questions, status is 'open' or 'resolved'
CREATE TABLE IF NOT EXISTS events (
    event_id            BIGINT PRIMARY KEY DEFAULT nextval('event_seq'),
    title               VARCHAR NOT NULL,
    description         VARCHAR NOT NULL DEFAULT '',
    event_type          VARCHAR NOT NULL,
    status              VARCHAR NOT NULL,
    winning_outcome_id  BIGINT,
    created_at          BIGINT NOT NULL,
    resolved_at         BIGINT
);

CREATE TABLE IF NOT EXISTS outcomes (
    outcome_id      BIGINT PRIMARY KEY DEFAULT nextval('outcome_seq'),
    event_id        BIGINT NOT NULL,
    label           VARCHAR NOT NULL
);

-- One row per (user, event, outcome) with open exposure
CREATE TABLE IF NOT EXISTS positions (
    position_id     BIGINT PRIMARY KEY DEFAULT nextval('position_seq'),
    user_id         BIGINT NOT NULL,
    event_id        BIGINT NOT NULL,
    outcome_id      BIGINT NOT NULL,
    shares          DOUBLE NOT NULL,
    avg_price       DOUBLE NOT NULL,
    created_at      BIGINT NOT NULL
);

-- Balance audit log (append-only)
CREATE TABLE IF NOT EXISTS transactions (
    tx_id           BIGINT PRIMARY KEY DEFAULT nextval('tx_seq'),
    user_id         BIGINT NOT NULL,
    event_id        BIGINT NOT NULL,
    outcome_id      BIGINT NOT NULL,
    tx_type         VARCHAR NOT NULL,
    shares          DOUBLE NOT NULL,
    points          BIGINT NOT NULL,
    created_at      BIGINT NOT NULL
);

CREATE TABLE IF NOT EXISTS odds_snapshots (
    snapshot_id     BIGINT PRIMARY KEY DEFAULT nextval('snap_seq'),
    event_id        BIGINT NOT NULL,
    outcome_id      BIGINT NOT NULL,
    odds            DOUBLE NOT NULL,
    created_at      BIGINT NOT NULL
);

CREATE TABLE IF NOT EXISTS activity (
    activity_id     BIGINT PRIMARY KEY DEFAULT nextval('activity_seq'),
    kind            VARCHAR NOT NULL,
    message         VARCHAR NOT NULL,
    user_id         BIGINT,
    event_id        BIGINT,
    created_at      BIGINT NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    db_path may be ':memory:' for a throwaway database (tests, dry runs)."""
    if str(db_path) == MEMORY_DB:
        return duckdb.connect(MEMORY_DB)
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def _statements(sql: str) -> list[str]:
    """Split on ";" after dropping "--" comment lines, which may contain one."""
    body = "\n".join(line for line in sql.splitlines() if not line.lstrip().startswith("--"))
    return [s.strip() for s in body.split(";")]


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in _statements(SCHEMA_SQL):
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
