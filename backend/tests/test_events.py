"""
Tests for event creation, joining, pools, cancellation and settlement.
"""
import pytest
from bson import ObjectId

from bantah.core import EventService, PlatformService, PoolService, WalletService
from bantah.extensions import db

from conftest import balance_of, end_event, iso_in


# ------------------ CREATION ------------------

def test_create_event_creates_active_event_and_pool(client, make_user, make_event):
    creator = make_user()
    event = make_event(creator, rules=["No late entries", "Official report decides"])

    assert event["status"] == "active"
    assert event["rules"] == ["No late entries", "Official report decides"]
    assert event["pool"]["total_amount"] == 0.0
    assert event["pool"]["participant_count"] == 0


@pytest.mark.parametrize("overrides, field", [
    ({"title": "ab"}, "title"),
    ({"start_time": iso_in(hours=-1)}, "start_time"),
    ({"end_time": iso_in(minutes=30)}, "end_time"),
    ({"wager_amount": 50}, "wager_amount"),
    ({"max_participants": 1}, "max_participants"),
    ({"max_participants": 101}, "max_participants"),
    ({"rules": ["   "]}, "rules"),
    ({"rules": ["x" * 201]}, "rules"),
])
def test_create_event_validation(client, make_user, overrides, field):
    creator = make_user()
    payload = {
        "title": "Valid title",
        "category": "sports",
        "start_time": iso_in(hours=1),
        "end_time": iso_in(hours=2),
        "wager_amount": 100,
    }
    payload.update(overrides)
    resp = client.post("/api/v1/events/", json=payload, headers=creator.headers)
    assert resp.status_code == 400
    assert field in resp.get_json()["errors"]


@pytest.mark.parametrize("raw", ["NaN", "Infinity", "-Infinity"])
def test_create_event_rejects_non_finite_wager(client, make_user, raw):
    creator = make_user()
    body = (
        '{"title": "Non-finite wager", "category": "sports", '
        f'"start_time": "{iso_in(hours=1)}", "end_time": "{iso_in(hours=2)}", '
        f'"wager_amount": {raw}}}'
    )
    resp = client.post("/api/v1/events/", data=body, content_type="application/json", headers=creator.headers)
    assert resp.status_code == 400
    assert "wager_amount" in resp.get_json()["errors"]
    assert db.events.count_documents({}) == 0


def test_list_and_search_events(client, make_user, make_event):
    creator = make_user()
    make_event(creator, title="Arsenal vs Chelsea", category="sports")
    make_event(creator, title="Grammy best album", category="music")

    resp = client.get("/api/v1/events/?q=arsenal", headers=creator.headers)
    body = resp.get_json()
    assert resp.status_code == 200
    assert [e["title"] for e in body["events"]] == ["Arsenal vs Chelsea"]
    assert body["pagination"]["total"] == 1

    resp = client.get("/api/v1/events/?category=music", headers=creator.headers)
    assert [e["category"] for e in resp.get_json()["events"]] == ["music"]

    cats = client.get("/api/v1/events/categories", headers=creator.headers).get_json()["categories"]
    assert {"category": "sports", "count": 1} in cats


# ------------------ JOINING ------------------

def test_join_debits_wallet_and_updates_pool(client, make_user, make_event):
    creator = make_user()
    player = make_user(balance=1000)
    event = make_event(creator)

    resp = client.post(f"/api/v1/events/{event['_id']}/join", json={"prediction": True}, headers=player.headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["participant"]["admin_fee"] == 5.0
    assert body["participant"]["net_amount"] == 95.0
    assert body["pool"]["yes_pool"] == 95.0
    assert body["pool"]["admin_fee"] == 5.0
    assert balance_of(player) == 900.0

    mine = client.get(f"/api/v1/events/{event['_id']}/my-prediction", headers=player.headers)
    assert mine.get_json()["prediction"] is True


def test_pool_components_sum_to_total(client, make_user, make_event):
    creator = make_user()
    event = make_event(creator, wager_amount=133.33)
    for prediction in (True, False, False):
        player = make_user(balance=500)
        client.post(f"/api/v1/events/{event['_id']}/join", json={"prediction": prediction}, headers=player.headers)

    pool = PoolService.get_pool_state(event["_id"])
    assert round(pool["yes_pool"] + pool["no_pool"] + pool["admin_fee"], 2) == pool["total_amount"]
    assert pool["total_amount"] == round(133.33 * 3, 2)


def test_cannot_join_twice(client, make_user, make_event):
    creator = make_user()
    player = make_user(balance=1000)
    event = make_event(creator)
    url = f"/api/v1/events/{event['_id']}/join"

    assert client.post(url, json={"prediction": True}, headers=player.headers).status_code == 201
    resp = client.post(url, json={"prediction": False}, headers=player.headers)
    assert resp.status_code == 409
    assert balance_of(player) == 900.0


def test_join_requires_funds(client, make_user, make_event):
    creator = make_user()
    player = make_user(balance=50)
    event = make_event(creator)

    resp = client.post(f"/api/v1/events/{event['_id']}/join", json={"prediction": True}, headers=player.headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Insufficient funds to join event"
    assert db.event_participants.count_documents({}) == 0


def test_join_rejects_wrong_wager(client, make_user, make_event):
    creator = make_user()
    player = make_user(balance=1000)
    event = make_event(creator)

    resp = client.post(
        f"/api/v1/events/{event['_id']}/join",
        json={"prediction": True, "wager_amount": 150},
        headers=player.headers,
    )
    assert resp.status_code == 400
    assert balance_of(player) == 1000.0


def test_join_respects_capacity(client, make_user, make_event):
    creator = make_user()
    event = make_event(creator, max_participants=2)
    url = f"/api/v1/events/{event['_id']}/join"
    for _ in range(2):
        player = make_user(balance=100)
        assert client.post(url, json={"prediction": True}, headers=player.headers).status_code == 201

    late = make_user(balance=100)
    resp = client.post(url, json={"prediction": True}, headers=late.headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Event has reached maximum participants"


def test_cannot_join_ended_event(client, make_user, make_event):
    creator = make_user()
    player = make_user(balance=1000)
    event = make_event(creator)
    end_event(event["_id"])

    resp = client.post(f"/api/v1/events/{event['_id']}/join", json={"prediction": True}, headers=player.headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Event has already ended"


def test_join_releases_slot_when_funds_are_missing(client, make_user, make_event):
    creator = make_user()
    event = make_event(creator, max_participants=2)
    url = f"/api/v1/events/{event['_id']}/join"

    broke = make_user(balance=10)
    assert client.post(url, json={"prediction": True}, headers=broke.headers).status_code == 400
    assert db.events.find_one({"_id": ObjectId(event["_id"])})["participant_count"] == 0

    for _ in range(2):
        player = make_user(balance=100)
        assert client.post(url, json={"prediction": False}, headers=player.headers).status_code == 201
    assert db.events.find_one({"_id": ObjectId(event["_id"])})["participant_count"] == 2


def test_join_fails_when_slots_are_already_reserved(client, make_user, make_event):
    creator = make_user()
    player = make_user(balance=500)
    event = make_event(creator, max_participants=2)
    # two joins in flight hold both slots
    db.events.update_one({"_id": ObjectId(event["_id"])}, {"$set": {"participant_count": 2}})

    resp = client.post(f"/api/v1/events/{event['_id']}/join", json={"prediction": True}, headers=player.headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Event has reached maximum participants"
    assert balance_of(player) == 500.0


def test_join_landing_after_cancellation_is_refunded(client, make_user, make_event, monkeypatch):
    creator = make_user()
    player = make_user(balance=1000)
    event = make_event(creator)
    lock_funds = WalletService.lock_funds

    def lock_then_cancel(user_id, amount, reference, purpose):
        locked = lock_funds(user_id, amount, reference, purpose)
        EventService.cancel_event(event["_id"], {"_id": ObjectId(creator.id)})
        return locked

    monkeypatch.setattr(WalletService, "lock_funds", lock_then_cancel)

    resp = client.post(f"/api/v1/events/{event['_id']}/join", json={"prediction": True}, headers=player.headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Event is not active"
    assert balance_of(player) == 1000.0
    participant = db.event_participants.find_one({"user_id": ObjectId(player.id)})
    assert participant["status"] == "refunded"
    assert participant["payout"] == 100.0


def test_private_event_requires_accepted_request(client, make_user, make_event):
    creator = make_user()
    player = make_user(balance=1000)
    event = make_event(creator, is_private=True)
    join_url = f"/api/v1/events/{event['_id']}/join"

    resp = client.post(join_url, json={"prediction": True}, headers=player.headers)
    assert resp.status_code == 403

    req = client.post(
        f"/api/v1/events/{event['_id']}/join-requests", json={"message": "let me in"}, headers=player.headers
    )
    assert req.status_code == 201
    dup = client.post(f"/api/v1/events/{event['_id']}/join-requests", json={}, headers=player.headers)
    assert dup.status_code == 409

    pending = client.get(f"/api/v1/events/{event['_id']}/join-requests", headers=player.headers)
    assert pending.status_code == 403
    pending = client.get(f"/api/v1/events/{event['_id']}/join-requests", headers=creator.headers)
    assert len(pending.get_json()["requests"]) == 1

    resp = client.put(
        f"/api/v1/events/{event['_id']}/join-requests/{req.get_json()['_id']}",
        json={"status": "accepted"},
        headers=creator.headers,
    )
    assert resp.status_code == 200
    assert db.notifications.find_one({"user_id": ObjectId(player.id), "type": "join_response"})

    assert client.post(join_url, json={"prediction": True}, headers=player.headers).status_code == 201


def test_declined_request_can_be_renewed(client, make_user, make_event):
    creator = make_user()
    player = make_user(balance=1000)
    event = make_event(creator, is_private=True)
    requests_url = f"/api/v1/events/{event['_id']}/join-requests"

    first = client.post(requests_url, json={"message": "please"}, headers=player.headers).get_json()
    resp = client.put(
        f"{requests_url}/{first['_id']}",
        json={"status": "declined", "response_message": "Full already"},
        headers=creator.headers,
    )
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "declined"
    assert db.notifications.find_one({"user_id": ObjectId(player.id), "type": "join_response"})

    join_url = f"/api/v1/events/{event['_id']}/join"
    assert client.post(join_url, json={"prediction": True}, headers=player.headers).status_code == 403

    renewed = client.post(requests_url, json={"message": "one more try"}, headers=player.headers)
    assert renewed.status_code == 201
    assert renewed.get_json()["_id"] != first["_id"]
    assert db.event_join_requests.count_documents({"user_id": ObjectId(player.id)}) == 1

    resp = client.put(f"{requests_url}/{renewed.get_json()['_id']}", json={"status": "accepted"}, headers=creator.headers)
    assert resp.status_code == 200

    again = client.post(requests_url, json={}, headers=player.headers)
    assert again.status_code == 400
    assert again.get_json()["error"] == "Your join request was already accepted"


def test_private_events_hidden_from_strangers(client, make_user, make_event):
    creator = make_user()
    stranger = make_user()
    make_event(creator, is_private=True, title="Secret office pool")

    assert client.get("/api/v1/events/", headers=stranger.headers).get_json()["events"] == []
    assert len(client.get("/api/v1/events/", headers=creator.headers).get_json()["events"]) == 1


# ------------------ CANCELLATION ------------------

def test_cancel_refunds_full_wager(client, make_user, make_event):
    creator = make_user()
    player = make_user(balance=1000)
    event = make_event(creator)
    client.post(f"/api/v1/events/{event['_id']}/join", json={"prediction": False}, headers=player.headers)

    resp = client.post(f"/api/v1/events/{event['_id']}/cancel", headers=player.headers)
    assert resp.status_code == 403

    resp = client.post(f"/api/v1/events/{event['_id']}/cancel", headers=creator.headers)
    assert resp.status_code == 200
    assert resp.get_json()["refunded"] == 1
    assert balance_of(player) == 1000.0
    assert PoolService.get_pool(event["_id"])["status"] == "cancelled"

    again = client.post(f"/api/v1/events/{event['_id']}/cancel", headers=creator.headers)
    assert again.status_code == 400


# ------------------ SETTLEMENT ------------------

def _join_all(client, event, predictions, make_user, balance=1000):
    players = []
    for prediction in predictions:
        player = make_user(balance=balance)
        resp = client.post(
            f"/api/v1/events/{event['_id']}/join", json={"prediction": prediction}, headers=player.headers
        )
        assert resp.status_code == 201
        players.append(player)
    return players


def test_settlement_pays_single_winner_whole_pool(client, make_user, make_event):
    admin = make_user(admin=True)
    creator = make_user()
    event = make_event(creator)
    winner, loser_a, loser_b = _join_all(client, event, [True, False, False], make_user)
    end_event(event["_id"])

    resp = client.post(
        f"/api/v1/admin/events/{event['_id']}/outcome", json={"winning_prediction": True}, headers=admin.headers
    )
    assert resp.status_code == 200
    summary = resp.get_json()
    assert summary["winners"] == 1
    assert summary["losers"] == 2
    assert summary["payout_per_winner"] == 285.0
    assert summary["platform_fees"] == 15.0

    assert balance_of(winner) == 1185.0
    assert balance_of(loser_a) == 900.0
    assert PlatformService.get_settings()["fees_balance"] == 15.0

    participant = db.event_participants.find_one({"user_id": ObjectId(winner.id)})
    assert participant["status"] == "won"
    assert participant["payout"] == 285.0
    assert db.notifications.find_one({"user_id": ObjectId(loser_b.id), "type": "event_loss"})


def test_settlement_dust_goes_to_platform(client, make_user, make_event):
    admin = make_user(admin=True)
    creator = make_user()
    event = make_event(creator)
    winners = _join_all(client, event, [True, True, True, False], make_user)[:3]
    end_event(event["_id"])

    summary = client.post(
        f"/api/v1/admin/events/{event['_id']}/outcome", json={"winning_prediction": True}, headers=admin.headers
    ).get_json()

    assert summary["payout_per_winner"] == 126.66
    assert summary["platform_fees"] == 20.02
    for w in winners:
        assert balance_of(w) == 1026.66
    paid = 3 * 126.66 + summary["platform_fees"]
    assert round(paid, 2) == 400.0


def test_settlement_without_winners_refunds_net_stakes(client, make_user, make_event):
    admin = make_user(admin=True)
    creator = make_user()
    event = make_event(creator)
    players = _join_all(client, event, [False, False], make_user)
    end_event(event["_id"])

    summary = client.post(
        f"/api/v1/admin/events/{event['_id']}/outcome", json={"winning_prediction": True}, headers=admin.headers
    ).get_json()

    assert summary["winners"] == 0
    assert summary["refunded"] == 2
    assert summary["platform_fees"] == 10.0
    for p in players:
        assert balance_of(p) == 995.0


def test_settlement_in_coins(client, make_user, make_event):
    admin = make_user(admin=True)
    creator = make_user()
    event = make_event(creator)
    winner, _ = _join_all(client, event, [False, True], make_user)
    end_event(event["_id"])

    resp = client.post("/api/v1/admin/settlement-method", json={"use_coins": True}, headers=admin.headers)
    assert resp.get_json()["settlement_method"] == "coins"

    client.post(
        f"/api/v1/admin/events/{event['_id']}/outcome", json={"winning_prediction": False}, headers=admin.headers
    )
    wallet = db.wallets.find_one({"user_id": ObjectId(winner.id)})
    assert wallet["coins"] == 19
    assert balance_of(winner) == 900.0


def test_settlement_only_after_end_and_only_once(client, make_user, make_event):
    admin = make_user(admin=True)
    creator = make_user()
    event = make_event(creator)
    _join_all(client, event, [True, False], make_user)
    url = f"/api/v1/admin/events/{event['_id']}/outcome"

    early = client.post(url, json={"winning_prediction": True}, headers=admin.headers)
    assert early.status_code == 400
    assert early.get_json()["error"] == "Cannot set outcome before the event ends"

    pending = client.get("/api/v1/admin/events/pending-outcomes", headers=admin.headers).get_json()["events"]
    assert pending == []

    end_event(event["_id"])
    pending = client.get("/api/v1/admin/events/pending-outcomes", headers=admin.headers).get_json()["events"]
    assert [p["event_id"] for p in pending] == [event["_id"]]

    assert client.post(url, json={"winning_prediction": True}, headers=admin.headers).status_code == 200
    again = client.post(url, json={"winning_prediction": False}, headers=admin.headers)
    assert again.status_code == 409


def test_settlement_waits_for_joins_in_flight(client, make_user, make_event):
    admin = make_user(admin=True)
    creator = make_user()
    event = make_event(creator)
    _join_all(client, event, [True, False], make_user)
    end_event(event["_id"])
    url = f"/api/v1/admin/events/{event['_id']}/outcome"

    # a slot reserved by a join that has not written its participant row yet
    db.events.update_one({"_id": ObjectId(event["_id"])}, {"$inc": {"participant_count": 1}})
    resp = client.post(url, json={"winning_prediction": True}, headers=admin.headers)
    assert resp.status_code == 409
    assert db.events.find_one({"_id": ObjectId(event["_id"])})["status"] == "active"

    db.events.update_one({"_id": ObjectId(event["_id"])}, {"$inc": {"participant_count": -1}})
    assert client.post(url, json={"winning_prediction": True}, headers=admin.headers).status_code == 200


def test_non_admin_cannot_settle(client, make_user, make_event):
    creator = make_user()
    event = make_event(creator)
    end_event(event["_id"])
    resp = client.post(
        f"/api/v1/admin/events/{event['_id']}/outcome", json={"winning_prediction": True}, headers=creator.headers
    )
    assert resp.status_code == 403


def test_history_reports_outcomes(client, make_user, make_event):
    admin = make_user(admin=True)
    creator = make_user()
    event = make_event(creator)
    winner, loser = _join_all(client, event, [True, False], make_user)
    end_event(event["_id"])
    client.post(
        f"/api/v1/admin/events/{event['_id']}/outcome", json={"winning_prediction": True}, headers=admin.headers
    )

    history = client.get("/api/v1/events/history", headers=winner.headers).get_json()
    entry = history["participated"][0]
    assert entry["outcome"] == "won"
    assert entry["earnings"] == 90.0
    assert entry["match_status"] == "completed"

    loser_entry = client.get("/api/v1/events/history", headers=loser.headers).get_json()["participated"][0]
    assert loser_entry["outcome"] == "lost"

    created = client.get("/api/v1/events/history", headers=creator.headers).get_json()["created"]
    assert created[0]["participant_count"] == 2
    assert created[0]["is_editable"] is False
