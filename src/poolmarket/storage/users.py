"""User persistence."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from poolmarket.models import User

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = "user_id, username, balance, is_admin, created_at"


def _row_to_user(row: tuple) -> User:
    return User(user_id=row[0], username=row[1], balance=row[2], is_admin=row[3], created_at=row[4])


def get_user(conn: DuckDBPyConnection, user_id: int) -> User | None:
    row = conn.execute(f"SELECT {_COLUMNS} FROM users WHERE user_id = ?", [user_id]).fetchone()
    return _row_to_user(row) if row else None


def get_user_by_username(conn: DuckDBPyConnection, username: str) -> User | None:
    row = conn.execute(f"SELECT {_COLUMNS} FROM users WHERE username = ?", [username]).fetchone()
    return _row_to_user(row) if row else None


def list_users(conn: DuckDBPyConnection) -> list[User]:
    rows = conn.execute(f"SELECT {_COLUMNS} FROM users ORDER BY user_id").fetchall()
    return [_row_to_user(r) for r in rows]


def create_user(conn: DuckDBPyConnection, username: str, balance: int, is_admin: bool = False) -> User:
    """Insert a user and return it with its assigned id."""
    now_ms = int(time.time() * 1000)
    user_id = conn.execute(
        "INSERT INTO users (username, balance, is_admin, created_at) VALUES (?, ?, ?, ?) RETURNING user_id",
        [username, balance, is_admin, now_ms],
    ).fetchone()[0]
    return User(user_id=user_id, username=username, balance=balance, is_admin=is_admin, created_at=now_ms)


def set_balance(conn: DuckDBPyConnection, user_id: int, balance: int) -> None:
    conn.execute("UPDATE users SET balance = ? WHERE user_id = ?", [balance, user_id])


def add_to_balance(conn: DuckDBPyConnection, user_id: int, delta: int) -> None:
    """Apply a signed balance delta in place."""
    conn.execute("UPDATE users SET balance = balance + ? WHERE user_id = ?", [delta, user_id])
