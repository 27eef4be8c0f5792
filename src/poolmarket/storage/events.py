"""Event and outcome persistence."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from poolmarket.models import Event, EventStatus, EventType, Outcome

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_EVENT_COLUMNS = "event_id, title, description, event_type, status, winning_outcome_id, created_at, resolved_at"


def _row_to_event(row: tuple) -> Event:
    return Event(
        event_id=row[0],
        title=row[1],
        description=row[2] or "",
        event_type=EventType(row[3]),
        status=EventStatus(row[4]),
        winning_outcome_id=row[5],
        created_at=row[6],
        resolved_at=row[7],
    )


def get_event(conn: DuckDBPyConnection, event_id: int) -> Event | None:
    row = conn.execute(f"SELECT {_EVENT_COLUMNS} FROM events WHERE event_id = ?", [event_id]).fetchone()
    return _row_to_event(row) if row else None


def list_events(conn: DuckDBPyConnection) -> list[Event]:
    rows = conn.execute(f"SELECT {_EVENT_COLUMNS} FROM events ORDER BY event_id").fetchall()
    return [_row_to_event(r) for r in rows]


def create_event(
    conn: DuckDBPyConnection,
    title: str,
    description: str,
    event_type: EventType,
) -> Event:
    """Insert an open event and return it with its assigned id."""
    now_ms = int(time.time() * 1000)
    event_id = conn.execute(
        """
        INSERT INTO events (title, description, event_type, status, created_at)
        VALUES (?, ?, ?, ?, ?)
        RETURNING event_id
        """,
        [title, description, event_type.value, EventStatus.OPEN.value, now_ms],
    ).fetchone()[0]
    return Event(
        event_id=event_id,
        title=title,
        description=description,
        event_type=event_type,
        status=EventStatus.OPEN,
        created_at=now_ms,
    )


def update_event_text(conn: DuckDBPyConnection, event_id: int, title: str, description: str) -> None:
    conn.execute(
        "UPDATE events SET title = ?, description = ? WHERE event_id = ?",
        [title, description, event_id],
    )


def mark_resolved(conn: DuckDBPyConnection, event_id: int, winning_outcome_id: int, resolved_at: int) -> None:
    conn.execute(
        "UPDATE events SET status = ?, winning_outcome_id = ?, resolved_at = ? WHERE event_id = ?",
        [EventStatus.RESOLVED.value, winning_outcome_id, resolved_at, event_id],
    )


def mark_open(conn: DuckDBPyConnection, event_id: int) -> None:
    """Reopen an event, clearing its winner and resolution time."""
    conn.execute(
        "UPDATE events SET status = ?, winning_outcome_id = NULL, resolved_at = NULL WHERE event_id = ?",
        [EventStatus.OPEN.value, event_id],
    )


def delete_event(conn: DuckDBPyConnection, event_id: int) -> None:
    conn.execute("DELETE FROM events WHERE event_id = ?", [event_id])


def get_outcomes(conn: DuckDBPyConnection, event_id: int) -> list[Outcome]:
    """Outcomes of an event in creation order."""
    rows = conn.execute(
        "SELECT outcome_id, event_id, label FROM outcomes WHERE event_id = ? ORDER BY outcome_id",
        [event_id],
    ).fetchall()
    return [Outcome(outcome_id=r[0], event_id=r[1], label=r[2]) for r in rows]


def create_outcome(conn: DuckDBPyConnection, event_id: int, label: str) -> Outcome:
    outcome_id = conn.execute(
        "INSERT INTO outcomes (event_id, label) VALUES (?, ?) RETURNING outcome_id",
        [event_id, label],
    ).fetchone()[0]
    return Outcome(outcome_id=outcome_id, event_id=event_id, label=label)


def delete_outcomes(conn: DuckDBPyConnection, event_id: int) -> None:
    conn.execute("DELETE FROM outcomes WHERE event_id = ?", [event_id])
