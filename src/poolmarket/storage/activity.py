"""Public activity feed persistence."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from poolmarket.models import ActivityEntry

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def append_activity(
    conn: DuckDBPyConnection,
    kind: str,
    message: str,
    user_id: int | None = None,
    event_id: int | None = None,
) -> ActivityEntry:
    now_ms = int(time.time() * 1000)
    activity_id = conn.execute(
        """
        INSERT INTO activity (kind, message, user_id, event_id, created_at)
        VALUES (?, ?, ?, ?, ?)
        RETURNING activity_id
        """,
        [kind, message, user_id, event_id, now_ms],
    ).fetchone()[0]
    return ActivityEntry(
        activity_id=activity_id,
        kind=kind,
        message=message,
        user_id=user_id,
        event_id=event_id,
        created_at=now_ms,
    )


def recent_activity(conn: DuckDBPyConnection, limit: int = 50) -> list[ActivityEntry]:
    """Newest entries first."""
    rows = conn.execute(
        """
        SELECT activity_id, kind, message, user_id, event_id, created_at
        FROM activity ORDER BY activity_id DESC LIMIT ?
        """,
        [limit],
    ).fetchall()
    return [
        ActivityEntry(activity_id=r[0], kind=r[1], message=r[2], user_id=r[3], event_id=r[4], created_at=r[5])
        for r in rows
    ]
