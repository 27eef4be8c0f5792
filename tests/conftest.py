"""Shared fixtures: an in-memory store with a few funded users and open events."""

import pytest

from poolmarket.market.admin import AdminService
from poolmarket.market.engine import MarketEngine
from poolmarket.notify.broker import Broker
from poolmarket.storage import users
from poolmarket.storage.store import Store


@pytest.fixture
def store():
    s = Store(":memory:", lock_timeout_sec=2.0)
    yield s
    s.close()


@pytest.fixture
def broker():
    return Broker(queue_size=16)


@pytest.fixture
def admin(store, broker):
    return AdminService(store, broker, starting_balance=1000)


@pytest.fixture
def engine(store, broker):
    return MarketEngine(store, broker)


@pytest.fixture
def alice(admin):
    return admin.create_user("alice")


@pytest.fixture
def bob(admin):
    return admin.create_user("bob")


@pytest.fixture
def binary_event(admin):
    """Open Yes/No event; returns (event, yes_outcome_id, no_outcome_id)."""
    event, odds = admin.create_event("Will it rain on Friday?", "Office weather pool")
    return event, odds[0].outcome_id, odds[1].outcome_id


@pytest.fixture
def balance(store):
    """Current balance lookup by user id."""

    def _balance(user_id):
        with store.reading() as conn:
            return users.get_user(conn, user_id).balance

    return _balance
