"""Transaction log persistence (append-only audit trail)."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from poolmarket.models import Transaction, TxType

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def append_transaction(conn: DuckDBPyConnection, tx: Transaction) -> Transaction:
    now_ms = int(time.time() * 1000)
    tx_id = conn.execute(
        """
        INSERT INTO transactions (user_id, event_id, outcome_id, tx_type, shares, points, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        RETURNING tx_id
        """,
        [tx.user_id, tx.event_id, tx.outcome_id, tx.tx_type.value, tx.shares, tx.points, now_ms],
    ).fetchone()[0]
    return tx.model_copy(update={"tx_id": tx_id, "created_at": now_ms})


def append_transactions(conn: DuckDBPyConnection, txs: list[Transaction]) -> None:
    """Append multiple transactions sharing one timestamp."""
    if not txs:
        return
    now_ms = int(time.time() * 1000)
    conn.executemany(
        """
        INSERT INTO transactions (user_id, event_id, outcome_id, tx_type, shares, points, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [[t.user_id, t.event_id, t.outcome_id, t.tx_type.value, t.shares, t.points, now_ms] for t in txs],
    )


def get_by_user(conn: DuckDBPyConnection, user_id: int) -> list[Transaction]:
    """Transactions of a user, oldest first."""
    rows = conn.execute(
        """
        SELECT tx_id, user_id, event_id, outcome_id, tx_type, shares, points, created_at
        FROM transactions WHERE user_id = ? ORDER BY tx_id
        """,
        [user_id],
    ).fetchall()
    return [
        Transaction(
            tx_id=r[0],
            user_id=r[1],
            event_id=r[2],
            outcome_id=r[3],
            tx_type=TxType(r[4]),
            shares=r[5],
            points=r[6],
            created_at=r[7],
        )
        for r in rows
    ]


def delete_by_event(conn: DuckDBPyConnection, event_id: int) -> None:
    """Only used when an admin deletes an event outright."""
    conn.execute("DELETE FROM transactions WHERE event_id = ?", [event_id])
