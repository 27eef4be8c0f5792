"""Engine operation results."""

from __future__ import annotations

from pydantic import BaseModel, Field

from poolmarket.models.market import OutcomeOdds


class TradeReceipt(BaseModel):
    """Outcome of a buy or sell. points is spent on buy, returned on sell."""

    event_id: int
    outcome_id: int
    shares: float
    points: int
    balance: int
    odds: list[OutcomeOdds] = Field(default_factory=list)


class UserOutcome(BaseModel):
    """Per-user resolution result, used for individual notifications."""

    user_id: int
    won: bool
    payout: int
    refund: bool = False


class ResolveResult(BaseModel):
    event_id: int
    winning_outcome_id: int
    user_outcomes: list[UserOutcome] = Field(default_factory=list)
