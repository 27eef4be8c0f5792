"""Admin operations: users, event lifecycle, balance overrides."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from poolmarket.market.engine import compute_odds
from poolmarket.market.errors import (
    EventNotFound,
    InvalidEvent,
    InvalidUsername,
    NotResolved,
    UserNotFound,
    UsernameTaken,
)
from poolmarket.models import Event, EventStatus, EventType, OutcomeOdds, User
from poolmarket.notify.broker import ACTIVITY_NEW, EVENT_CREATED, EVENT_RESOLVED, NotificationSink, NullSink
from poolmarket.storage import activity, events, positions, snapshots, transactions, users

if TYPE_CHECKING:
    from poolmarket.storage.store import Store

log = structlog.get_logger(__name__)

BINARY_LABELS = ("Yes", "No")


def _outcome_labels(raw: list[str] | None) -> list[str]:
    """Stripped, non-blank labels. An event needs at least two."""
    labels = [label.strip() for label in (raw or []) if label and label.strip()]
    if len(labels) < 2:
        raise InvalidEvent("an event needs at least 2 outcomes")
    return labels


class AdminService:
    """Privileged mutations. Each call holds the exclusive store lock."""

    def __init__(self, store: Store, sink: NotificationSink | None = None, starting_balance: int = 1000) -> None:
        self.store = store
        self.sink = sink or NullSink()
        self.starting_balance = starting_balance

    def create_user(self, username: str, balance: int | None = None, is_admin: bool = False) -> User:
        username = (username or "").strip()
        if not username:
            raise InvalidUsername("username is required")
        with self.store.writing() as conn:
            if users.get_user_by_username(conn, username) is not None:
                raise UsernameTaken(f"username already taken: {username}")
            user = users.create_user(
                conn,
                username,
                self.starting_balance if balance is None else balance,
                is_admin=is_admin,
            )
        log.info("user_created", user_id=user.user_id, username=username, is_admin=is_admin)
        return user

    def bootstrap_admin(self, username: str = "admin") -> User:
        """Create the admin account on first start; return the existing one after that."""
        with self.store.writing() as conn:
            existing = users.get_user_by_username(conn, username)
            if existing is not None:
                return existing
            admin = users.create_user(conn, username, 0, is_admin=True)
        log.info("admin_created", user_id=admin.user_id, username=username)
        return admin

    def set_balance(self, user_id: int, balance: int) -> User:
        with self.store.writing() as conn:
            user = users.get_user(conn, user_id)
            if user is None:
                raise UserNotFound(f"user not found: {user_id}")
            users.set_balance(conn, user_id, balance)
        log.info("balance_overridden", user_id=user_id, old=user.balance, new=balance)
        return user.model_copy(update={"balance": balance})

    def create_event(
        self,
        title: str,
        description: str = "",
        event_type: EventType | str = EventType.BINARY,
        outcomes: list[str] | None = None,
    ) -> tuple[Event, list[OutcomeOdds]]:
        """Open a new market. Binary events always get Yes/No outcomes."""
        title = (title or "").strip()
        if not title:
            raise InvalidEvent("title is required")
        try:
            event_type = EventType(event_type)
        except ValueError:
            raise InvalidEvent("event_type must be 'binary' or 'multi'") from None
        if event_type == EventType.BINARY:
            labels = list(BINARY_LABELS)
        else:
            labels = _outcome_labels(outcomes)

        with self.store.writing() as conn, self.store.transaction(conn):
            event = events.create_event(conn, title, description, event_type)
            for label in labels:
                events.create_outcome(conn, event.event_id, label)
            odds = compute_odds(conn, event.event_id)
            snapshots.append_odds(conn, event.event_id, odds)
            entry = activity.append_activity(
                conn, "event_created", f"New market: '{event.title}'", event_id=event.event_id
            )

        log.info("event_created", event_id=event.event_id, event_type=event_type.value, outcomes=len(labels))
        self.sink.broadcast(
            EVENT_CREATED,
            {
                "event_id": event.event_id,
                "title": event.title,
                "description": event.description,
                "event_type": event.event_type.value,
                "odds": odds,
            },
        )
        self.sink.broadcast(ACTIVITY_NEW, entry)
        return event, odds

    def update_event(
        self,
        event_id: int,
        title: str,
        description: str = "",
        outcome_labels: list[str] | None = None,
    ) -> Event:
        """Edit text; when labels are given, replace all outcomes with new ones."""
        title = (title or "").strip()
        if not title:
            raise InvalidEvent("title is required")
        labels = _outcome_labels(outcome_labels) if outcome_labels else None
        with self.store.writing() as conn, self.store.transaction(conn):
            event = events.get_event(conn, event_id)
            if event is None:
                raise EventNotFound(f"event not found: {event_id}")
            events.update_event_text(conn, event_id, title, description)
            if labels:
                events.delete_outcomes(conn, event_id)
                for label in labels:
                    events.create_outcome(conn, event_id, label)

        log.info("event_updated", event_id=event_id, outcomes_replaced=labels is not None)
        self.sink.broadcast(EVENT_CREATED, {"event_id": event_id, "title": title})
        return event.model_copy(update={"title": title, "description": description})

    def delete_event(self, event_id: int) -> dict[int, int]:
        """Remove an event and everything under it, refunding open positions.

        Returns the refund paid to each user.
        """
        refunds: dict[int, int] = {}
        with self.store.writing() as conn, self.store.transaction(conn):
            if events.get_event(conn, event_id) is None:
                raise EventNotFound(f"event not found: {event_id}")
            for p in positions.get_by_event(conn, event_id):
                refund = int(p.shares)
                refunds[p.user_id] = refunds.get(p.user_id, 0) + refund
            for uid, refund in refunds.items():
                users.add_to_balance(conn, uid, refund)
            positions.delete_by_event(conn, event_id)
            events.delete_outcomes(conn, event_id)
            transactions.delete_by_event(conn, event_id)
            snapshots.delete_by_event(conn, event_id)
            events.delete_event(conn, event_id)

        log.info("event_deleted", event_id=event_id, refunded_users=len(refunds), refunded=sum(refunds.values()))
        self.sink.broadcast(EVENT_RESOLVED, {"event_id": event_id, "deleted": True})
        return refunds

    def unresolve_event(self, event_id: int) -> Event:
        """Reopen a resolved event. Payouts already made are not reversed."""
        with self.store.writing() as conn:
            event = events.get_event(conn, event_id)
            if event is None:
                raise EventNotFound(f"event not found: {event_id}")
            if event.status != EventStatus.RESOLVED:
                raise NotResolved("event is not resolved")
            events.mark_open(conn, event_id)

        log.info("event_unresolved", event_id=event_id)
        self.sink.broadcast(EVENT_CREATED, {"event_id": event_id, "title": event.title})
        return event.model_copy(update={"status": EventStatus.OPEN, "winning_outcome_id": None, "resolved_at": None})
