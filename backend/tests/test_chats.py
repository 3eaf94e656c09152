"""
Tests for private, group and event chats.
"""
from bson import ObjectId

from bantah.extensions import db


def _private_chat(client, a, b):
    resp = client.post("/api/v1/chats/private", json={"user_id": b.id}, headers=a.headers)
    assert resp.status_code == 200
    return resp.get_json()


def test_private_chat_is_reused(client, make_user):
    a = make_user()
    b = make_user()

    first = _private_chat(client, a, b)
    second = _private_chat(client, b, a)
    assert first["_id"] == second["_id"]

    resp = client.post("/api/v1/chats/private", json={"user_id": a.id}, headers=a.headers)
    assert resp.status_code == 400


def test_send_message_updates_last_message_and_notifies(client, make_user):
    a = make_user()
    b = make_user()
    chat = _private_chat(client, a, b)

    resp = client.post(f"/api/v1/chats/{chat['_id']}/messages", json={"content": "  How far?  "}, headers=a.headers)
    assert resp.status_code == 201
    assert resp.get_json()["content"] == "How far?"

    stored = db.chats.find_one({"_id": ObjectId(chat["_id"])})
    assert stored["last_message"]["content"] == "How far?"
    assert db.notifications.find_one({"user_id": ObjectId(b.id), "type": "direct_message"})

    listing = client.get("/api/v1/chats/", headers=b.headers).get_json()["chats"]
    assert listing[0]["unread_count"] == 1
    client.post(f"/api/v1/chats/{chat['_id']}/read", headers=b.headers)
    listing = client.get("/api/v1/chats/", headers=b.headers).get_json()["chats"]
    assert listing[0]["unread_count"] == 0


def test_message_validation(client, make_user):
    a = make_user()
    b = make_user()
    chat = _private_chat(client, a, b)
    url = f"/api/v1/chats/{chat['_id']}/messages"

    assert client.post(url, json={"content": "   "}, headers=a.headers).status_code == 400
    assert client.post(url, json={"content": "x" * 2001}, headers=a.headers).status_code == 400
    assert client.post(url, json={"content": "hi", "type": "system"}, headers=a.headers).status_code == 400


def test_non_member_cannot_read_or_post(client, make_user):
    a = make_user()
    b = make_user()
    outsider = make_user()
    chat = _private_chat(client, a, b)

    assert client.get(f"/api/v1/chats/{chat['_id']}/messages", headers=outsider.headers).status_code == 403
    resp = client.post(f"/api/v1/chats/{chat['_id']}/messages", json={"content": "hi"}, headers=outsider.headers)
    assert resp.status_code == 403


def test_messages_oldest_first_with_replies(client, make_user):
    a = make_user()
    b = make_user()
    chat = _private_chat(client, a, b)
    url = f"/api/v1/chats/{chat['_id']}/messages"

    first = client.post(url, json={"content": "one"}, headers=a.headers).get_json()
    client.post(url, json={"content": "two", "reply_to": first["_id"]}, headers=b.headers)

    messages = client.get(url, headers=a.headers).get_json()["messages"]
    assert [m["content"] for m in messages] == ["one", "two"]
    assert messages[1]["reply_to"] == first["_id"]
    assert messages[1]["sender"]["_id"] == b.id


def test_group_chat_membership(client, make_user):
    owner = make_user()
    friend = make_user()
    newcomer = make_user()

    resp = client.post(
        "/api/v1/chats/groups", json={"name": "Derby banter", "participant_ids": [friend.id]}, headers=owner.headers
    )
    assert resp.status_code == 201
    group = resp.get_json()
    assert set(group["participants"]) == {owner.id, friend.id}

    messages = client.get(f"/api/v1/chats/{group['_id']}/messages", headers=friend.headers).get_json()["messages"]
    assert messages[0]["type"] == "system"

    added = client.post(f"/api/v1/chats/{group['_id']}/members", json={"user_id": newcomer.id}, headers=friend.headers)
    assert added.status_code == 403
    added = client.post(f"/api/v1/chats/{group['_id']}/members", json={"user_id": newcomer.id}, headers=owner.headers)
    assert newcomer.id in added.get_json()["participants"]

    removed = client.delete(f"/api/v1/chats/{group['_id']}/members/{friend.id}", headers=owner.headers)
    assert friend.id not in removed.get_json()["participants"]


def test_group_name_required(client, make_user):
    owner = make_user()
    resp = client.post("/api/v1/chats/groups", json={"name": "  "}, headers=owner.headers)
    assert resp.status_code == 400


def test_event_chat_follows_participants(client, make_user, make_event):
    creator = make_user()
    player = make_user(balance=1000)
    outsider = make_user()
    event = make_event(creator)

    assert client.get(f"/api/v1/chats/events/{event['_id']}", headers=outsider.headers).status_code == 403

    chat = client.get(f"/api/v1/chats/events/{event['_id']}", headers=creator.headers).get_json()
    assert chat["participants"] == [creator.id]

    client.post(f"/api/v1/events/{event['_id']}/join", json={"prediction": True}, headers=player.headers)
    chat = client.get(f"/api/v1/chats/events/{event['_id']}", headers=player.headers).get_json()
    assert set(chat["participants"]) == {creator.id, player.id}
    assert chat["name"] == event["title"]
