"""Market engine: live odds, buy/sell against the shared pool, and resolution payouts.

Pricing is pari-mutuel: one point buys one share, an outcome's odds are its
share of the event pool, and the pool is split among winning shares at
resolution. Every mutating call holds the store's exclusive lock and runs in
one store transaction, so a rejected or failed operation leaves nothing behind.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from poolmarket.market.errors import (
    AlreadyResolved,
    ConflictingPosition,
    EventNotFound,
    FractionalShares,
    InsufficientBalance,
    InsufficientShares,
    InvalidAmount,
    InvalidOutcome,
    MarketClosed,
    UserNotFound,
)
from poolmarket.market.rounding import round_half_away, round_points
from poolmarket.models import (
    ActivityEntry,
    EventStatus,
    OutcomeOdds,
    Position,
    ResolveResult,
    TradeReceipt,
    Transaction,
    TxType,
    UserOutcome,
)
from poolmarket.notify.broker import (
    ACTIVITY_NEW,
    EVENT_RESOLVED,
    ODDS_UPDATED,
    USER_RESOLVED,
    NotificationSink,
    NullSink,
)
from poolmarket.storage import activity, events, positions, snapshots, transactions, users
from poolmarket.storage.errors import RecordMissing

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from poolmarket.storage.store import Store

log = structlog.get_logger(__name__)

# Sellers get back 1/SELL_RETURN_DIVISOR of face value; the rest stays in the pool
SELL_RETURN_DIVISOR = 2
WINNER_BONUS = 50
# Positions with fewer shares than this are treated as closed
EMPTY_POSITION_EPSILON = 0.001


def compute_odds(conn: DuckDBPyConnection, event_id: int) -> list[OutcomeOdds]:
    """Odds per outcome as a percentage of the event's total shares.

    Uniform 100/N while nobody holds shares. Caller holds a store lock.
    """
    outcomes = events.get_outcomes(conn, event_id)
    shares_by_outcome: dict[int, float] = {}
    for p in positions.get_by_event(conn, event_id):
        shares_by_outcome[p.outcome_id] = shares_by_outcome.get(p.outcome_id, 0.0) + p.shares
    total = sum(shares_by_outcome.values())

    odds = []
    for o in outcomes:
        s = shares_by_outcome.get(o.outcome_id, 0.0)
        pct = 100.0 / len(outcomes) if total == 0 else (s / total) * 100
        odds.append(OutcomeOdds(outcome_id=o.outcome_id, label=o.label, odds=round_half_away(pct, 2), shares=s))
    return odds


def sell_return(shares: float) -> int:
    """Points returned for selling whole shares: half face value, at least 1."""
    points = int(math.floor(shares)) // SELL_RETURN_DIVISOR
    return max(points, 1)


@dataclass
class Settlement:
    """Everything a resolution will change, computed before anything is written."""

    event_id: int
    winning_outcome_id: int
    total_pool: float = 0.0
    winning_shares: float = 0.0
    credits: dict[int, int] = field(default_factory=dict)
    transactions: list[Transaction] = field(default_factory=list)
    results: dict[int, UserOutcome] = field(default_factory=dict)

    def credit(self, user_id: int, points: int) -> None:
        self.credits[user_id] = self.credits.get(user_id, 0) + points

    def record(self, outcome: UserOutcome) -> None:
        # First result seen for a user is the one reported
        self.results.setdefault(outcome.user_id, outcome)

    @property
    def refunded(self) -> bool:
        return self.total_pool > 0 and self.winning_shares == 0


def settle(event_id: int, winning_outcome_id: int, open_positions: list[Position]) -> Settlement:
    """Split the pool of an event among the holders of the winning outcome.

    Nobody on the winner means everyone gets their shares back as points.
    Otherwise losers get nothing and each winning position earns its
    proportional cut of the whole pool plus WINNER_BONUS.
    """
    s = Settlement(event_id=event_id, winning_outcome_id=winning_outcome_id)
    for p in open_positions:
        s.total_pool += p.shares
        if p.outcome_id == winning_outcome_id:
            s.winning_shares += p.shares

    if s.total_pool == 0:
        return s

    if s.winning_shares == 0:
        for p in open_positions:
            refund = round_points(p.shares)
            s.credit(p.user_id, refund)
            s.transactions.append(
                Transaction(
                    user_id=p.user_id,
                    event_id=event_id,
                    outcome_id=p.outcome_id,
                    tx_type=TxType.PAYOUT,
                    shares=p.shares,
                    points=refund,
                )
            )
            s.record(UserOutcome(user_id=p.user_id, won=False, payout=refund, refund=True))
        return s

    for p in open_positions:
        if p.outcome_id != winning_outcome_id:
            s.record(UserOutcome(user_id=p.user_id, won=False, payout=0))

    for p in open_positions:
        if p.outcome_id != winning_outcome_id:
            continue
        payout = round_points(s.total_pool * (p.shares / s.winning_shares))
        s.credit(p.user_id, payout + WINNER_BONUS)
        s.transactions.append(
            Transaction(
                user_id=p.user_id,
                event_id=event_id,
                outcome_id=p.outcome_id,
                tx_type=TxType.PAYOUT,
                shares=p.shares,
                points=payout,
            )
        )
        s.transactions.append(
            Transaction(
                user_id=p.user_id,
                event_id=event_id,
                outcome_id=p.outcome_id,
                tx_type=TxType.BONUS,
                shares=0.0,
                points=WINNER_BONUS,
            )
        )
        s.record(UserOutcome(user_id=p.user_id, won=True, payout=payout + WINNER_BONUS))
    return s


def _label_for(odds: list[OutcomeOdds], outcome_id: int) -> str:
    for o in odds:
        if o.outcome_id == outcome_id:
            return o.label
    return ""


class MarketEngine:
    """Executes trades and resolutions against a Store, notifying a sink afterwards."""

    def __init__(self, store: Store, sink: NotificationSink | None = None) -> None:
        self.store = store
        self.sink = sink or NullSink()

    def get_odds(self, event_id: int) -> list[OutcomeOdds]:
        with self.store.reading() as conn:
            return compute_odds(conn, event_id)

    def buy(self, user_id: int, event_id: int, outcome_id: int, amount: int | float) -> TradeReceipt:
        """Spend amount points on as many shares of one outcome.

        amount may arrive as a float (JSON numbers) but must be whole.
        """
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise InvalidAmount("amount must be a positive whole number of points")
        if not math.isfinite(amount) or amount <= 0 or amount != math.floor(amount):
            raise InvalidAmount("amount must be a positive whole number of points")
        amount = int(amount)

        with self.store.writing() as conn, self.store.transaction(conn):
            user = users.get_user(conn, user_id)
            if user is None:
                raise UserNotFound(f"user not found: {user_id}")
            if user.balance < amount:
                raise InsufficientBalance(f"balance {user.balance} is less than {amount}")
            event = events.get_event(conn, event_id)
            if event is None:
                raise EventNotFound(f"event not found: {event_id}")
            if event.status != EventStatus.OPEN:
                raise MarketClosed("event is not open for betting")
            outcomes = events.get_outcomes(conn, event_id)
            if not any(o.outcome_id == outcome_id for o in outcomes):
                raise InvalidOutcome("invalid outcome for this event")
            for held in positions.get_by_user_and_event(conn, user_id, event_id):
                if held.outcome_id != outcome_id:
                    raise ConflictingPosition("you already bet on a different outcome for this event")

            price = 0.0
            for o in compute_odds(conn, event_id):
                if o.outcome_id == outcome_id:
                    price = o.odds / 100
                    break
            if price == 0:
                price = 1.0 / len(outcomes)

            shares = float(amount)  # 1 point = 1 share
            pos = positions.get_position(conn, user_id, event_id, outcome_id)
            if pos is not None:
                total_cost = pos.avg_price * pos.shares + price * shares
                pos.shares += shares
                pos.avg_price = total_cost / pos.shares
                positions.update_position(conn, pos)
            else:
                positions.create_position(
                    conn,
                    Position(
                        user_id=user_id,
                        event_id=event_id,
                        outcome_id=outcome_id,
                        shares=shares,
                        avg_price=price,
                    ),
                )

            users.add_to_balance(conn, user_id, -amount)
            transactions.append_transaction(
                conn,
                Transaction(
                    user_id=user_id,
                    event_id=event_id,
                    outcome_id=outcome_id,
                    tx_type=TxType.BUY,
                    shares=shares,
                    points=amount,
                ),
            )

            odds = compute_odds(conn, event_id)
            snapshots.append_odds(conn, event_id, odds)
            entry = activity.append_activity(
                conn,
                "trade",
                f"{user.username} bought {amount} shares of {_label_for(odds, outcome_id)} on '{event.title}'",
                user_id=user_id,
                event_id=event_id,
            )
            balance = user.balance - amount

        log.info("buy_executed", user_id=user_id, event_id=event_id, outcome_id=outcome_id, amount=amount, price=price)
        self._announce_trade(event_id, odds, entry)
        return TradeReceipt(
            event_id=event_id, outcome_id=outcome_id, shares=shares, points=amount, balance=balance, odds=odds
        )

    def sell(self, user_id: int, event_id: int, outcome_id: int, shares: float) -> TradeReceipt:
        """Sell whole shares back for half their face value."""
        if not math.isfinite(shares) or shares <= 0:
            raise InvalidAmount("shares must be positive")
        if shares != math.floor(shares):
            raise FractionalShares("shares must be a whole number")

        with self.store.writing() as conn, self.store.transaction(conn):
            event = events.get_event(conn, event_id)
            if event is None:
                raise EventNotFound(f"event not found: {event_id}")
            if event.status != EventStatus.OPEN:
                raise MarketClosed("event is not open for trading")
            pos = positions.get_position(conn, user_id, event_id, outcome_id)
            if pos is None or pos.shares < shares:
                raise InsufficientShares("insufficient shares")
            user = users.get_user(conn, user_id)
            if user is None:
                raise UserNotFound(f"user not found: {user_id}")

            points = sell_return(shares)
            # Sold shares leave the position; avg_price is unchanged by a sell
            pos.shares -= shares
            if pos.shares < EMPTY_POSITION_EPSILON:
                positions.delete_position(conn, pos.position_id)
            else:
                positions.update_position(conn, pos)

            users.add_to_balance(conn, user_id, points)
            transactions.append_transaction(
                conn,
                Transaction(
                    user_id=user_id,
                    event_id=event_id,
                    outcome_id=outcome_id,
                    tx_type=TxType.SELL,
                    shares=shares,
                    points=points,
                ),
            )

            odds = compute_odds(conn, event_id)
            snapshots.append_odds(conn, event_id, odds)
            entry = activity.append_activity(
                conn,
                "trade",
                f"{user.username} sold {shares:.0f} shares of {_label_for(odds, outcome_id)} on '{event.title}'",
                user_id=user_id,
                event_id=event_id,
            )
            balance = user.balance + points

        log.info("sell_executed", user_id=user_id, event_id=event_id, outcome_id=outcome_id, shares=shares, points=points)
        self._announce_trade(event_id, odds, entry)
        return TradeReceipt(
            event_id=event_id, outcome_id=outcome_id, shares=shares, points=points, balance=balance, odds=odds
        )

    def resolve(self, event_id: int, winning_outcome_id: int) -> ResolveResult:
        """Close an event and pay out its pool. Applied all-or-nothing.

        winning_outcome_id is not checked against the event's outcomes; an
        unknown id has no shares on it and so takes the refund path.
        """
        with self.store.writing() as conn, self.store.transaction(conn):
            event = events.get_event(conn, event_id)
            if event is None:
                raise EventNotFound(f"event not found: {event_id}")
            if event.status == EventStatus.RESOLVED:
                raise AlreadyResolved("event already resolved")

            winner_label = _label_for(compute_odds(conn, event_id), winning_outcome_id)
            settlement = settle(event_id, winning_outcome_id, positions.get_by_event(conn, event_id))

            usernames: dict[int, str] = {}
            for uid, delta in settlement.credits.items():
                user = users.get_user(conn, uid)
                if user is None:
                    raise RecordMissing(f"user {uid} holds a position on event {event_id} but has no record")
                usernames[uid] = user.username
                users.add_to_balance(conn, uid, delta)
            transactions.append_transactions(conn, settlement.transactions)
            positions.delete_by_event(conn, event_id)
            events.mark_resolved(conn, event_id, winning_outcome_id, int(time.time() * 1000))

            feed = [
                activity.append_activity(
                    conn, "event_resolved", f"'{event.title}' resolved: {winner_label} wins!", event_id=event_id
                )
            ]
            for uo in settlement.results.values():
                if uo.won and uo.payout > 0:
                    feed.append(
                        activity.append_activity(
                            conn,
                            "payout",
                            f"{usernames[uo.user_id]} won {uo.payout} pts from '{event.title}'",
                            user_id=uo.user_id,
                            event_id=event_id,
                        )
                    )

        result = ResolveResult(
            event_id=event_id,
            winning_outcome_id=winning_outcome_id,
            user_outcomes=list(settlement.results.values()),
        )
        log.info(
            "event_resolved",
            event_id=event_id,
            winning_outcome_id=winning_outcome_id,
            total_pool=settlement.total_pool,
            winning_shares=settlement.winning_shares,
            refunded=settlement.refunded,
            holders=len(result.user_outcomes),
        )

        for uo in result.user_outcomes:
            self.sink.send_to(
                uo.user_id,
                USER_RESOLVED,
                {"event_id": event_id, "won": uo.won, "payout": uo.payout, "refund": uo.refund, "title": event.title},
            )
        self.sink.broadcast(
            EVENT_RESOLVED,
            {
                "event_id": event_id,
                "title": event.title,
                "winning_outcome_id": winning_outcome_id,
                "winner_label": winner_label,
            },
        )
        for entry in feed:
            self.sink.broadcast(ACTIVITY_NEW, entry)
        return result

    def _announce_trade(self, event_id: int, odds: list[OutcomeOdds], entry: ActivityEntry) -> None:
        self.sink.broadcast(ODDS_UPDATED, {"event_id": event_id, "odds": odds})
        self.sink.broadcast(ACTIVITY_NEW, entry)
