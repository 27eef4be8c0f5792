"""Buy and sell: preconditions, balances, positions."""

import asyncio

import pytest

from poolmarket.market.engine import sell_return
from poolmarket.market.errors import (
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
from poolmarket.storage import positions, transactions


def _position(store, user_id, event_id, outcome_id):
    with store.reading() as conn:
        return positions.get_position(conn, user_id, event_id, outcome_id)


def test_buy_debits_balance_and_opens_position(engine, store, alice, binary_event, balance):
    event, yes, _ = binary_event
    receipt = engine.buy(alice.user_id, event.event_id, yes, 100)
    assert receipt.shares == 100
    assert receipt.points == 100
    assert receipt.balance == 900
    assert balance(alice.user_id) == 900
    pos = _position(store, alice.user_id, event.event_id, yes)
    assert pos.shares == 100
    assert pos.avg_price == pytest.approx(0.5)
    with store.reading() as conn:
        txs = transactions.get_by_user(conn, alice.user_id)
    assert [(t.tx_type.value, t.points) for t in txs] == [("buy", 100)]


def test_buy_again_updates_volume_weighted_avg_price(engine, store, alice, binary_event):
    event, yes, _ = binary_event
    engine.buy(alice.user_id, event.event_id, yes, 100)  # at 50%
    engine.buy(alice.user_id, event.event_id, yes, 100)  # at 100%
    pos = _position(store, alice.user_id, event.event_id, yes)
    assert pos.shares == 200
    assert pos.avg_price == pytest.approx(0.75)


def test_zero_odds_outcome_prices_at_uniform(engine, store, alice, bob, binary_event):
    event, yes, no = binary_event
    engine.buy(alice.user_id, event.event_id, yes, 100)
    engine.buy(bob.user_id, event.event_id, no, 40)
    assert _position(store, bob.user_id, event.event_id, no).avg_price == pytest.approx(0.5)


@pytest.mark.parametrize("amount", [0, -5, True, 2.5, float("nan"), float("inf"), "10"])
def test_buy_rejects_bad_amount(engine, alice, binary_event, amount):
    event, yes, _ = binary_event
    with pytest.raises(InvalidAmount):
        engine.buy(alice.user_id, event.event_id, yes, amount)


def test_buy_precondition_errors(engine, admin, alice, bob, binary_event, balance):
    event, yes, no = binary_event
    with pytest.raises(UserNotFound):
        engine.buy(999, event.event_id, yes, 10)
    with pytest.raises(InsufficientBalance):
        engine.buy(alice.user_id, event.event_id, yes, 1001)
    with pytest.raises(EventNotFound):
        engine.buy(alice.user_id, 999, yes, 10)

    other, other_odds = admin.create_event("Another question")
    with pytest.raises(InvalidOutcome):
        engine.buy(alice.user_id, event.event_id, other_odds[0].outcome_id, 10)

    engine.buy(alice.user_id, event.event_id, yes, 10)
    with pytest.raises(ConflictingPosition):
        engine.buy(alice.user_id, event.event_id, no, 10)

    engine.resolve(other.event_id, other_odds[0].outcome_id)
    with pytest.raises(MarketClosed):
        engine.buy(bob.user_id, other.event_id, other_odds[0].outcome_id, 10)
    assert balance(alice.user_id) == 990
    assert balance(bob.user_id) == 1000


def test_buy_accepts_whole_float_amount(engine, alice, binary_event, balance):
    event, yes, _ = binary_event
    receipt = engine.buy(alice.user_id, event.event_id, yes, 10.0)
    assert receipt.points == 10
    assert isinstance(receipt.points, int)
    assert balance(alice.user_id) == 990


def test_rejected_buy_leaves_no_trace(engine, store, alice, binary_event, balance):
    event, yes, _ = binary_event
    with pytest.raises(InsufficientBalance):
        engine.buy(alice.user_id, event.event_id, yes, 5000)
    assert balance(alice.user_id) == 1000
    assert _position(store, alice.user_id, event.event_id, yes) is None
    with store.reading() as conn:
        assert transactions.get_by_user(conn, alice.user_id) == []


@pytest.mark.parametrize("amount", [1, 2, 7, 100, 101])
def test_buy_then_sell_all_returns_half(engine, store, alice, binary_event, balance, amount):
    event, yes, _ = binary_event
    engine.buy(alice.user_id, event.event_id, yes, amount)
    receipt = engine.sell(alice.user_id, event.event_id, yes, amount)
    assert receipt.points == max(amount // 2, 1)
    assert balance(alice.user_id) == 1000 - amount + max(amount // 2, 1)
    assert _position(store, alice.user_id, event.event_id, yes) is None


def test_partial_sell_keeps_avg_price(engine, store, alice, binary_event):
    event, yes, _ = binary_event
    engine.buy(alice.user_id, event.event_id, yes, 100)
    engine.sell(alice.user_id, event.event_id, yes, 40)
    pos = _position(store, alice.user_id, event.event_id, yes)
    assert pos.shares == 60
    assert pos.avg_price == pytest.approx(0.5)


def test_sell_rejections(engine, alice, bob, binary_event):
    event, yes, no = binary_event
    engine.buy(alice.user_id, event.event_id, yes, 100)
    with pytest.raises(FractionalShares):
        engine.sell(alice.user_id, event.event_id, yes, 2.5)
    with pytest.raises(InsufficientShares):
        engine.sell(alice.user_id, event.event_id, yes, 101)
    with pytest.raises(InsufficientShares):
        engine.sell(bob.user_id, event.event_id, no, 1)
    with pytest.raises(InvalidAmount):
        engine.sell(alice.user_id, event.event_id, yes, 0)
    with pytest.raises(InvalidAmount):
        engine.sell(alice.user_id, event.event_id, yes, float("nan"))
    with pytest.raises(EventNotFound):
        engine.sell(alice.user_id, 999, yes, 1)


def test_sell_on_resolved_event_is_closed(engine, admin, alice, binary_event):
    event, yes, _ = binary_event
    engine.buy(alice.user_id, event.event_id, yes, 10)
    engine.resolve(event.event_id, yes)
    with pytest.raises(MarketClosed):
        engine.sell(alice.user_id, event.event_id, yes, 10)


def test_trades_notify_subscribers(engine, broker, alice, binary_event):
    event, yes, _ = binary_event

    async def scenario():
        sub = broker.subscribe()
        engine.buy(alice.user_id, event.event_id, yes, 10)
        return [await sub.next(0.5), await sub.next(0.5)]

    kinds = asyncio.run(scenario())
    assert '"type": "odds_updated"' in kinds[0]
    assert '"type": "activity_new"' in kinds[1]


def test_sell_return_floor():
    assert sell_return(1) == 1
    assert sell_return(3) == 1
    assert sell_return(10) == 5
