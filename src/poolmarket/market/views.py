"""Read-only listings. Callers hold the shared store lock and pass its connection."""

from __future__ import annotations

from typing import TYPE_CHECKING

from poolmarket.market.engine import WINNER_BONUS, compute_odds
from poolmarket.market.errors import EventNotFound
from poolmarket.market.rounding import round_points
from poolmarket.models import EventStatus
from poolmarket.models.views import (
    EventDetail,
    EventSummary,
    HeldPosition,
    HistoryEntry,
    LeaderboardEntry,
    Portfolio,
    PortfolioPosition,
)
from poolmarket.storage import events, positions, snapshots, transactions, users

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def list_events(conn: DuckDBPyConnection) -> list[EventSummary]:
    """All events with live odds, most recently traded (or created) first."""
    last_trades = snapshots.last_snapshot_by_event(conn)
    out = [
        EventSummary(
            **e.model_dump(),
            odds=compute_odds(conn, e.event_id),
            last_trade_at=last_trades.get(e.event_id),
        )
        for e in events.list_events(conn)
    ]
    out.sort(key=lambda s: s.last_trade_at or s.created_at, reverse=True)
    return out


def event_detail(conn: DuckDBPyConnection, event_id: int, user_id: int | None = None) -> EventDetail:
    event = events.get_event(conn, event_id)
    if event is None:
        raise EventNotFound(f"event not found: {event_id}")
    odds = compute_odds(conn, event_id)
    labels = {o.outcome_id: o.label for o in odds}
    held = []
    if user_id is not None:
        held = [
            HeldPosition(
                outcome_id=p.outcome_id,
                outcome_label=labels.get(p.outcome_id, ""),
                shares=p.shares,
                avg_price=p.avg_price,
            )
            for p in positions.get_by_user_and_event(conn, user_id, event_id)
        ]
    return EventDetail(
        **event.model_dump(),
        odds=odds,
        last_trade_at=snapshots.last_snapshot_by_event(conn).get(event_id),
        user_positions=held,
    )


def portfolio(conn: DuckDBPyConnection, user_id: int) -> Portfolio:
    """Open positions with what each would pay if its outcome won right now."""
    result = Portfolio()
    seen_events: set[int] = set()
    for p in positions.get_by_user(conn, user_id):
        event = events.get_event(conn, p.event_id)
        if event is None or event.status == EventStatus.RESOLVED:
            continue
        odds = compute_odds(conn, p.event_id)
        total_pool = sum(o.shares for o in odds)
        label = ""
        outcome_shares = 0.0
        for o in odds:
            if o.outcome_id == p.outcome_id:
                label = o.label
                outcome_shares = o.shares
        pool_payout = round_points(total_pool * (p.shares / outcome_shares)) if outcome_shares > 0 else 0
        potential = pool_payout + WINNER_BONUS

        result.positions.append(
            PortfolioPosition(
                event_id=p.event_id,
                event_title=event.title,
                outcome_id=p.outcome_id,
                outcome_label=label,
                shares=p.shares,
                avg_price=p.avg_price,
                potential_payout=potential,
            )
        )
        result.total_invested += round_points(p.shares)
        result.total_potential += potential
        if p.event_id not in seen_events:
            seen_events.add(p.event_id)
            result.active_markets += 1
    return result


def history(conn: DuckDBPyConnection, user_id: int) -> list[HistoryEntry]:
    """Transactions of a user, newest first, with event titles and outcome labels."""
    titles = {e.event_id: e.title for e in events.list_events(conn)}
    label_cache: dict[int, dict[int, str]] = {}
    out = []
    for tx in reversed(transactions.get_by_user(conn, user_id)):
        if tx.event_id not in label_cache:
            label_cache[tx.event_id] = {o.outcome_id: o.label for o in events.get_outcomes(conn, tx.event_id)}
        out.append(
            HistoryEntry(
                tx_id=tx.tx_id,
                event_id=tx.event_id,
                event_title=titles.get(tx.event_id, ""),
                outcome_id=tx.outcome_id,
                outcome_label=label_cache[tx.event_id].get(tx.outcome_id, ""),
                tx_type=tx.tx_type.value,
                shares=tx.shares,
                points=tx.points,
                created_at=tx.created_at,
            )
        )
    return out


def leaderboard(conn: DuckDBPyConnection) -> list[LeaderboardEntry]:
    """Non-admin users ranked by balance."""
    ranked = sorted((u for u in users.list_users(conn) if not u.is_admin), key=lambda u: u.balance, reverse=True)
    return [
        LeaderboardEntry(rank=i + 1, user_id=u.user_id, username=u.username, balance=u.balance)
        for i, u in enumerate(ranked)
    ]
