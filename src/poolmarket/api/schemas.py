"""Request and response bodies for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from poolmarket.models import Event, OutcomeOdds


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"
    subscribers: int = 0


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. insufficient_balance, event_not_found")


# --- Users ---
class CreateUserRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)


class SetBalanceRequest(BaseModel):
    balance: int


# --- Trading ---
class BuyRequest(BaseModel):
    outcome_id: int
    amount: float = Field(..., description="Whole number of points to spend; one point buys one share")


class SellRequest(BaseModel):
    outcome_id: int
    shares: float = Field(..., description="Whole number of shares to sell")


class TradeResponse(BaseModel):
    message: str
    shares: float
    points: int = Field(..., description="Points spent (buy) or returned (sell)")
    balance: int
    odds: list[OutcomeOdds]


# --- Admin: events ---
class CreateEventRequest(BaseModel):
    title: str
    description: str = ""
    event_type: str = "binary"
    outcomes: list[str] = Field(default_factory=list, description="Labels for multi events; ignored for binary")


class CreateEventResponse(BaseModel):
    event: Event
    odds: list[OutcomeOdds]


class UpdateEventRequest(BaseModel):
    title: str
    description: str = ""
    outcomes: list[str] | None = Field(None, description="When set, replaces all outcomes")


class ResolveRequest(BaseModel):
    winning_outcome_id: int


class MessageResponse(BaseModel):
    message: str
