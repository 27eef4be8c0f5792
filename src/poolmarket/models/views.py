"""Read-side projections served by listings (events, portfolio, history, leaderboard)."""

from __future__ import annotations

from pydantic import BaseModel, Field

from poolmarket.models.market import Event, OutcomeOdds


class EventSummary(Event):
    odds: list[OutcomeOdds] = Field(default_factory=list)
    last_trade_at: int | None = None  # ms epoch of latest odds snapshot


class HeldPosition(BaseModel):
    outcome_id: int
    outcome_label: str
    shares: float
    avg_price: float


class EventDetail(EventSummary):
    user_positions: list[HeldPosition] = Field(default_factory=list)


class PortfolioPosition(HeldPosition):
    event_id: int
    event_title: str
    potential_payout: int


class Portfolio(BaseModel):
    positions: list[PortfolioPosition] = Field(default_factory=list)
    total_invested: int = 0
    total_potential: int = 0
    active_markets: int = 0


class HistoryEntry(BaseModel):
    tx_id: int
    event_id: int
    event_title: str
    outcome_id: int
    outcome_label: str
    tx_type: str
    shares: float
    points: int
    created_at: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    username: str
    balance: int
