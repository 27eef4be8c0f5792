"""Position persistence: (user, event, outcome) -> shares, avg_price."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from poolmarket.models import Position

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = "position_id, user_id, event_id, outcome_id, shares, avg_price, created_at"


def _row_to_position(row: tuple) -> Position:
    return Position(
        position_id=row[0],
        user_id=row[1],
        event_id=row[2],
        outcome_id=row[3],
        shares=row[4],
        avg_price=row[5],
        created_at=row[6],
    )


def _select(conn: DuckDBPyConnection, where: str, params: list) -> list[Position]:
    rows = conn.execute(
        f"SELECT {_COLUMNS} FROM positions WHERE {where} ORDER BY position_id", params
    ).fetchall()
    return [_row_to_position(r) for r in rows]


def get_position(
    conn: DuckDBPyConnection, user_id: int, event_id: int, outcome_id: int
) -> Position | None:
    found = _select(conn, "user_id = ? AND event_id = ? AND outcome_id = ?", [user_id, event_id, outcome_id])
    return found[0] if found else None


def get_by_event(conn: DuckDBPyConnection, event_id: int) -> list[Position]:
    return _select(conn, "event_id = ?", [event_id])


def get_by_user(conn: DuckDBPyConnection, user_id: int) -> list[Position]:
    return _select(conn, "user_id = ?", [user_id])


def get_by_user_and_event(conn: DuckDBPyConnection, user_id: int, event_id: int) -> list[Position]:
    return _select(conn, "user_id = ? AND event_id = ?", [user_id, event_id])


def create_position(conn: DuckDBPyConnection, position: Position) -> Position:
    """Insert a position and return a copy carrying its id and timestamp."""
    now_ms = int(time.time() * 1000)
    position_id = conn.execute(
        """
        INSERT INTO positions (user_id, event_id, outcome_id, shares, avg_price, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        RETURNING position_id
        """,
        [position.user_id, position.event_id, position.outcome_id, position.shares, position.avg_price, now_ms],
    ).fetchone()[0]
    return position.model_copy(update={"position_id": position_id, "created_at": now_ms})


def update_position(conn: DuckDBPyConnection, position: Position) -> None:
    conn.execute(
        "UPDATE positions SET shares = ?, avg_price = ? WHERE position_id = ?",
        [position.shares, position.avg_price, position.position_id],
    )


def delete_position(conn: DuckDBPyConnection, position_id: int) -> None:
    conn.execute("DELETE FROM positions WHERE position_id = ?", [position_id])


def delete_by_event(conn: DuckDBPyConnection, event_id: int) -> None:
    conn.execute("DELETE FROM positions WHERE event_id = ?", [event_id])
