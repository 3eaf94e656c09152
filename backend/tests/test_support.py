"""
Tests for support tickets.
"""
from bson import ObjectId

from bantah.extensions import db


def _open_ticket(client, user, message="I was charged twice for a deposit"):
    return client.post("/api/v1/support/tickets", json={"message": message}, headers=user.headers)


def test_one_active_ticket_at_a_time(client, make_user):
    user = make_user()

    resp = _open_ticket(client, user)
    assert resp.status_code == 201
    assert resp.get_json()["status"] == "open"
    assert _open_ticket(client, user).status_code == 409

    active = client.get("/api/v1/support/tickets/active", headers=user.headers).get_json()["ticket"]
    assert active["_id"] == resp.get_json()["_id"]


def test_empty_ticket_rejected(client, make_user):
    user = make_user()
    assert _open_ticket(client, user, message="   ").status_code == 400


def test_admin_reply_moves_ticket_in_progress(client, make_user):
    admin = make_user(admin=True)
    user = make_user()
    ticket = _open_ticket(client, user).get_json()
    url = f"/api/v1/support/tickets/{ticket['_id']}/messages"

    resp = client.post(url, json={"content": "Looking into it now"}, headers=admin.headers)
    assert resp.status_code == 201
    assert resp.get_json()["is_admin"] is True

    stored = db.support_tickets.find_one({"_id": ObjectId(ticket["_id"])})
    assert stored["status"] == "in_progress"
    assert db.notifications.find_one({"user_id": ObjectId(user.id), "title": "Support replied"})

    messages = client.get(url, headers=user.headers).get_json()["messages"]
    assert [m["is_admin"] for m in messages] == [False, True]


def test_other_users_cannot_see_ticket(client, make_user):
    user = make_user()
    snoop = make_user()
    ticket = _open_ticket(client, user).get_json()

    resp = client.get(f"/api/v1/support/tickets/{ticket['_id']}/messages", headers=snoop.headers)
    assert resp.status_code == 403


def test_resolving_closes_ticket(client, make_user):
    admin = make_user(admin=True)
    user = make_user()
    ticket = _open_ticket(client, user).get_json()
    status_url = f"/api/v1/support/tickets/{ticket['_id']}/status"

    assert client.put(status_url, json={"status": "resolved"}, headers=user.headers).status_code == 403
    resp = client.put(status_url, json={"status": "resolved"}, headers=admin.headers)
    assert resp.status_code == 200
    assert resp.get_json()["resolved_at"] is not None

    closed = client.post(
        f"/api/v1/support/tickets/{ticket['_id']}/messages", json={"content": "thanks"}, headers=user.headers
    )
    assert closed.status_code == 400
    assert client.get("/api/v1/support/tickets/active", headers=user.headers).get_json()["ticket"] is None
    assert _open_ticket(client, user).status_code == 201

    all_tickets = client.get("/api/v1/support/tickets", headers=admin.headers).get_json()["tickets"]
    assert len(all_tickets) == 2
