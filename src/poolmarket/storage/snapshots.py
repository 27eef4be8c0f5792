"""Persist odds snapshots (history charts only) to DuckDB."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from poolmarket.models import OddsSnapshot, OutcomeOdds

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def append_odds(conn: DuckDBPyConnection, event_id: int, odds: list[OutcomeOdds]) -> None:
    """Append one odds_snapshots row per outcome, all stamped with the same time."""
    if not odds:
        return
    now_ms = int(time.time() * 1000)
    conn.executemany(
        "INSERT INTO odds_snapshots (event_id, outcome_id, odds, created_at) VALUES (?, ?, ?, ?)",
        [[event_id, o.outcome_id, o.odds, now_ms] for o in odds],
    )


def get_by_event(conn: DuckDBPyConnection, event_id: int) -> list[OddsSnapshot]:
    rows = conn.execute(
        """
        SELECT snapshot_id, event_id, outcome_id, odds, created_at
        FROM odds_snapshots WHERE event_id = ? ORDER BY snapshot_id
        """,
        [event_id],
    ).fetchall()
    return [
        OddsSnapshot(snapshot_id=r[0], event_id=r[1], outcome_id=r[2], odds=r[3], created_at=r[4])
        for r in rows
    ]


def last_snapshot_by_event(conn: DuckDBPyConnection) -> dict[int, int]:
    """Latest snapshot time per event_id (a proxy for last trade time)."""
    rows = conn.execute(
        "SELECT event_id, MAX(created_at) FROM odds_snapshots GROUP BY event_id"
    ).fetchall()
    return {r[0]: r[1] for r in rows}


def delete_by_event(conn: DuckDBPyConnection, event_id: int) -> None:
    conn.execute("DELETE FROM odds_snapshots WHERE event_id = ?", [event_id])
