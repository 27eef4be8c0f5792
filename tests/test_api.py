"""HTTP API: identity, trading, admin routes, error mapping."""

import pytest
from fastapi.testclient import TestClient

from poolmarket.api.main import create_app
from poolmarket.config import Settings

ADMIN = {"X-User-Id": "1"}


@pytest.fixture
def client():
    settings = Settings(storage={"db_path": ":memory:", "lock_timeout_sec": 2.0})
    with TestClient(create_app(settings)) as c:
        yield c


def _register(client, username):
    r = client.post("/users", json={"username": username})
    assert r.status_code == 201
    return r.json()["user_id"]


def _create_event(client, **body):
    r = client.post("/admin/events", json={"title": "Will the demo work?", **body}, headers=ADMIN)
    assert r.status_code == 201
    return r.json()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_register_and_me(client):
    uid = _register(client, "alice")
    r = client.get("/users/me", headers={"X-User-Id": str(uid)})
    assert r.status_code == 200
    assert r.json()["username"] == "alice"
    assert r.json()["balance"] == 1000

    dup = client.post("/users", json={"username": "alice"})
    assert dup.status_code == 409
    assert dup.json()["code"] == "username_taken"


def test_identity_required(client):
    assert client.get("/users/me").status_code == 401
    assert client.get("/users/me", headers={"X-User-Id": "999"}).status_code == 401
    assert client.get("/portfolio").json()["code"] == "unauthorized"


def test_admin_routes_need_admin(client):
    uid = _register(client, "mallory")
    r = client.post("/admin/events", json={"title": "x"}, headers={"X-User-Id": str(uid)})
    assert r.status_code == 403
    assert r.json() == {"detail": "admin only", "code": "forbidden"}


def test_trade_and_resolve_flow(client):
    alice = _register(client, "alice")
    bob = _register(client, "bob")
    created = _create_event(client)
    event_id = created["event"]["event_id"]
    yes, no = (o["outcome_id"] for o in created["odds"])

    r = client.post(f"/events/{event_id}/buy", json={"outcome_id": yes, "amount": 100}, headers={"X-User-Id": str(alice)})
    assert r.status_code == 200
    assert r.json()["balance"] == 900
    r = client.post(f"/events/{event_id}/buy", json={"outcome_id": no, "amount": 50}, headers={"X-User-Id": str(bob)})
    assert r.status_code == 200

    odds = client.get(f"/events/{event_id}/odds").json()
    assert [o["odds"] for o in odds] == [66.67, 33.33]
    assert len(client.get(f"/events/{event_id}/odds-history").json()) == 6

    detail = client.get(f"/events/{event_id}", headers={"X-User-Id": str(alice)}).json()
    assert detail["user_positions"][0]["shares"] == 100

    r = client.post(f"/admin/events/{event_id}/resolve", json={"winning_outcome_id": yes}, headers=ADMIN)
    assert r.status_code == 200
    outcomes = {uo["user_id"]: uo for uo in r.json()["user_outcomes"]}
    assert outcomes[alice]["payout"] == 200
    assert outcomes[bob]["won"] is False

    again = client.post(f"/admin/events/{event_id}/resolve", json={"winning_outcome_id": yes}, headers=ADMIN)
    assert again.status_code == 409
    assert again.json()["code"] == "already_resolved"

    board = client.get("/leaderboard").json()
    assert [e["username"] for e in board] == ["alice", "bob"]
    assert board[0]["balance"] == 1100


def test_sell_errors_map_to_4xx(client):
    alice = _register(client, "alice")
    created = _create_event(client)
    event_id = created["event"]["event_id"]
    yes = created["odds"][0]["outcome_id"]
    headers = {"X-User-Id": str(alice)}
    client.post(f"/events/{event_id}/buy", json={"outcome_id": yes, "amount": 10}, headers=headers)

    r = client.post(f"/events/{event_id}/sell", json={"outcome_id": yes, "shares": 2.5}, headers=headers)
    assert r.status_code == 400
    assert r.json()["code"] == "fractional_shares"
    r = client.post(f"/events/{event_id}/sell", json={"outcome_id": yes, "shares": 11}, headers=headers)
    assert r.json()["code"] == "insufficient_shares"
    r = client.post(f"/events/{event_id}/sell", json={"outcome_id": yes, "shares": 10}, headers=headers)
    assert r.status_code == 200
    assert r.json()["points"] == 5

    r = client.post("/events/999/buy", json={"outcome_id": yes, "amount": 1}, headers=headers)
    assert r.status_code == 404
    assert r.json()["code"] == "event_not_found"


def test_history_is_private(client):
    alice = _register(client, "alice")
    bob = _register(client, "bob")
    r = client.get(f"/users/{alice}/history", headers={"X-User-Id": str(bob)})
    assert r.status_code == 403
    assert client.get(f"/users/{alice}/history", headers={"X-User-Id": str(alice)}).json() == []
    assert client.get(f"/users/{alice}/history", headers=ADMIN).status_code == 200


def test_admin_event_lifecycle(client):
    alice = _register(client, "alice")
    created = _create_event(client, event_type="multi", outcomes=["Red", "Blue", "Green"])
    event_id = created["event"]["event_id"]
    red = created["odds"][0]["outcome_id"]
    assert len(created["odds"]) == 3

    bad = client.post("/admin/events", json={"title": "x", "event_type": "multi", "outcomes": ["A"]}, headers=ADMIN)
    assert bad.status_code == 400
    assert bad.json()["code"] == "invalid_event"

    r = client.put(f"/admin/events/{event_id}", json={"title": "Renamed"}, headers=ADMIN)
    assert r.status_code == 200
    assert client.get(f"/events/{event_id}").json()["title"] == "Renamed"

    client.post(f"/events/{event_id}/buy", json={"outcome_id": red, "amount": 40}, headers={"X-User-Id": str(alice)})
    assert client.delete(f"/admin/events/{event_id}", headers=ADMIN).status_code == 200
    assert client.get(f"/events/{event_id}").status_code == 404
    me = client.get("/users/me", headers={"X-User-Id": str(alice)}).json()
    assert me["balance"] == 1000


def test_admin_balance_and_unresolve(client):
    alice = _register(client, "alice")
    r = client.post(f"/admin/users/{alice}/balance", json={"balance": 5}, headers=ADMIN)
    assert r.json()["balance"] == 5
    assert [u["username"] for u in client.get("/admin/users", headers=ADMIN).json()] == ["admin", "alice"]

    event_id = _create_event(client)["event"]["event_id"]
    r = client.post(f"/admin/events/{event_id}/unresolve", headers=ADMIN)
    assert r.status_code == 400
    assert r.json()["code"] == "not_resolved"


def test_activity_feed(client):
    _create_event(client)
    feed = client.get("/activity", params={"limit": 5}).json()
    assert feed[0]["kind"] == "event_created"


def test_non_integer_buy_amount_is_invalid_amount(client):
    alice = _register(client, "alice")
    created = _create_event(client)
    event_id = created["event"]["event_id"]
    yes = created["odds"][0]["outcome_id"]
    headers = {"X-User-Id": str(alice)}

    for amount in (2.5, 0):
        r = client.post(f"/events/{event_id}/buy", json={"outcome_id": yes, "amount": amount}, headers=headers)
        assert r.status_code == 400
        assert r.json()["code"] == "invalid_amount"

    r = client.post(f"/events/{event_id}/buy", json={"outcome_id": yes, "amount": 25}, headers=headers)
    assert r.status_code == 200
    assert r.json()["points"] == 25


def test_malformed_body_uses_error_shape(client):
    alice = _register(client, "alice")
    r = client.post("/events/1/buy", json={"outcome_id": 1, "amount": "lots"}, headers={"X-User-Id": str(alice)})
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == "invalid_request"
    assert body["detail"].startswith("amount")
