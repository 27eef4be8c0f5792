"""Event, Outcome, OutcomeOdds, OddsSnapshot - market entities."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class EventStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class EventType(str, Enum):
    BINARY = "binary"
    MULTI = "multi"


class Outcome(BaseModel):
    """One mutually exclusive outcome of an event."""

    outcome_id: int
    event_id: int
    label: str


class Event(BaseModel):
    """Market question with lifecycle status."""

    event_id: int
    title: str
    description: str = ""
    event_type: EventType = EventType.BINARY
    status: EventStatus = EventStatus.OPEN
    winning_outcome_id: int | None = None
    created_at: int  # ms epoch
    resolved_at: int | None = None  # ms epoch

    @property
    def is_open(self) -> bool:
        return self.status == EventStatus.OPEN


class OutcomeOdds(BaseModel):
    """Live odds for one outcome: share of the event pool as a percentage."""

    outcome_id: int
    label: str
    odds: float = Field(..., ge=0, le=100, description="Percentage in [0, 100], 2 dp")
    shares: float = Field(..., ge=0)


class OddsSnapshot(BaseModel):
    """Point-in-time odds for charting; never read by the engine."""

    snapshot_id: int | None = None
    event_id: int
    outcome_id: int
    odds: float
    created_at: int | None = None
