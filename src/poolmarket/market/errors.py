"""Domain validation failures. Each maps to a 4xx response; none is process-fatal."""

from __future__ import annotations


class MarketError(Exception):
    """Base for rejected market operations. Raised before any mutation."""

    code = "market_error"
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code.replace("_", " "))


class InvalidAmount(MarketError):
    code = "invalid_amount"


class UserNotFound(MarketError):
    code = "user_not_found"
    status_code = 404


class InsufficientBalance(MarketError):
    code = "insufficient_balance"


class EventNotFound(MarketError):
    code = "event_not_found"
    status_code = 404


class MarketClosed(MarketError):
    code = "market_closed"


class InvalidOutcome(MarketError):
    code = "invalid_outcome"


class ConflictingPosition(MarketError):
    code = "conflicting_position"
    status_code = 409


class FractionalShares(MarketError):
    code = "fractional_shares"


class InsufficientShares(MarketError):
    code = "insufficient_shares"


class AlreadyResolved(MarketError):
    code = "already_resolved"
    status_code = 409


class NotResolved(MarketError):
    code = "not_resolved"


class InvalidEvent(MarketError):
    code = "invalid_event"


class UsernameTaken(MarketError):
    code = "username_taken"
    status_code = 409


class Unauthorized(MarketError):
    code = "unauthorized"
    status_code = 401


class Forbidden(MarketError):
    code = "forbidden"
    status_code = 403


class InvalidUsername(MarketError):
    code = "invalid_username"
