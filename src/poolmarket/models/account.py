"""User, Position, Transaction, ActivityEntry."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class User(BaseModel):
    user_id: int
    username: str
    balance: int
    is_admin: bool = False
    created_at: int  # ms epoch


class Position(BaseModel):
    """Accumulated exposure of one user on one outcome of one event."""

    position_id: int | None = None
    user_id: int
    event_id: int
    outcome_id: int
    shares: float = Field(..., ge=0)
    avg_price: float = Field(..., ge=0)
    created_at: int | None = None


class TxType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    PAYOUT = "payout"
    BONUS = "bonus"


class Transaction(BaseModel):
    """Append-only audit record of a balance-affecting event."""

    tx_id: int | None = None
    user_id: int
    event_id: int
    outcome_id: int
    tx_type: TxType
    shares: float = 0.0
    points: int = 0
    created_at: int | None = None


class ActivityEntry(BaseModel):
    """Public feed line (trade, event_created, event_resolved, payout)."""

    activity_id: int | None = None
    kind: str
    message: str
    user_id: int | None = None
    event_id: int | None = None
    created_at: int | None = None
