"""Canonical schema (Pydantic) - users, events, positions, results."""

from poolmarket.models.account import ActivityEntry, Position, Transaction, TxType, User
from poolmarket.models.market import Event, EventStatus, EventType, OddsSnapshot, Outcome, OutcomeOdds
from poolmarket.models.results import ResolveResult, TradeReceipt, UserOutcome

__all__ = [
    "User",
    "Position",
    "Transaction",
    "TxType",
    "ActivityEntry",
    "Event",
    "EventStatus",
    "EventType",
    "Outcome",
    "OutcomeOdds",
    "OddsSnapshot",
    "TradeReceipt",
    "UserOutcome",
    "ResolveResult",
]
