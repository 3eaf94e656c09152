"""
Tests for peer-to-peer challenges: stakes, responses, expiry, evidence and payout.
"""
from datetime import timedelta

from bson import ObjectId

from bantah.core import ChallengeService, PlatformService
from bantah.core.challenge_service import SUPPORT_MESSAGE, format_time_left
from bantah.extensions import db
from bantah.utils.validators import utcnow

from conftest import balance_of


def _challenge(client, challenger, challenged, **overrides):
    payload = {"challenged_id": challenged.id, "title": "FIFA best of three", "amount": 100}
    payload.update(overrides)
    return client.post("/api/v1/challenges/", json=payload, headers=challenger.headers)


def _accepted_challenge(client, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user(balance=1000)
    challenge = _challenge(client, challenger, challenged).get_json()
    resp = client.post(
        f"/api/v1/challenges/{challenge['_id']}/respond", json={"accepted": True}, headers=challenged.headers
    )
    assert resp.status_code == 200
    return challenger, challenged, challenge


def test_format_time_left():
    assert format_time_left(0) == "Expired"
    assert format_time_left(-5) == "Expired"
    assert format_time_left(59) == "0:59"
    assert format_time_left(1800) == "30:00"
    assert format_time_left(3725) == "62:05"


def test_create_locks_challenger_stake_and_opens_chat(client, make_user):
    challenger = make_user(balance=500)
    challenged = make_user()

    resp = _challenge(client, challenger, challenged, expires_in=10)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["status"] == "pending"
    assert body["amount"] == 100.0
    assert 590 <= body["time_left_seconds"] <= 600
    assert balance_of(challenger) == 400.0

    chat = db.chats.find_one({"_id": ObjectId(body["chat_id"])})
    assert chat["type"] == "challenge"
    assert chat["support_added"] is False
    assert set(chat["participants"]) == {ObjectId(challenger.id), ObjectId(challenged.id)}
    assert db.notifications.find_one({"user_id": ObjectId(challenged.id), "type": "challenge"})


def test_create_without_funds_leaves_nothing_behind(client, make_user):
    challenger = make_user(balance=50)
    challenged = make_user()

    resp = _challenge(client, challenger, challenged)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Insufficient funds to create challenge"
    assert db.challenges.count_documents({}) == 0


def test_create_validation(client, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user()

    assert _challenge(client, challenger, challenger).status_code == 400
    assert _challenge(client, challenger, challenged, amount=10).status_code == 400
    resp = _challenge(client, challenger, challenged, expires_in=2)
    assert resp.status_code == 400
    assert "expires_in" in resp.get_json()["errors"]
    resp = _challenge(client, challenger, challenged, evidence_type="AUDIO")
    assert "evidence_type" in resp.get_json()["errors"]


def test_create_rejects_non_finite_amount(client, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user()

    for raw in ("NaN", "Infinity"):
        body = f'{{"challenged_id": "{challenged.id}", "title": "FIFA best of three", "amount": {raw}}}'
        resp = client.post("/api/v1/challenges/", data=body, content_type="application/json",
                           headers=challenger.headers)
        assert resp.status_code == 400
        assert "amount" in resp.get_json()["errors"]

    assert balance_of(challenger) == 1000.0
    assert db.challenges.count_documents({}) == 0


def test_service_rejects_non_finite_amount(app, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user()

    challenge, error = ChallengeService.create_challenge(challenger.id, challenged.id, "Darts", float("nan"))
    assert challenge is None
    assert error.startswith("Minimum challenge amount")
    assert balance_of(challenger) == 1000.0
    assert balance_of(challenger) == 1000.0


def test_accept_locks_both_stakes(client, make_user):
    challenger, challenged, challenge = _accepted_challenge(client, make_user)

    assert balance_of(challenger) == 900.0
    assert balance_of(challenged) == 900.0
    assert db.challenges.find_one({"_id": ObjectId(challenge["_id"])})["status"] == "accepted"
    assert db.notifications.find_one({"user_id": ObjectId(challenger.id), "type": "challenge_response"})


def test_only_challenged_user_can_respond(client, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user(balance=1000)
    challenge = _challenge(client, challenger, challenged).get_json()

    resp = client.post(
        f"/api/v1/challenges/{challenge['_id']}/respond", json={"accepted": True}, headers=challenger.headers
    )
    assert resp.status_code == 403


def test_decline_refunds_challenger(client, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user()
    challenge = _challenge(client, challenger, challenged).get_json()

    resp = client.post(
        f"/api/v1/challenges/{challenge['_id']}/respond", json={"accepted": False}, headers=challenged.headers
    )
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "declined"
    assert balance_of(challenger) == 1000.0


def test_accept_without_funds_keeps_challenge_pending(client, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user(balance=20)
    challenge = _challenge(client, challenger, challenged).get_json()

    resp = client.post(
        f"/api/v1/challenges/{challenge['_id']}/respond", json={"accepted": True}, headers=challenged.headers
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Insufficient funds to accept challenge"
    assert db.challenges.find_one({"_id": ObjectId(challenge["_id"])})["status"] == "pending"


def test_expired_challenge_refunds_and_cannot_be_accepted(client, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user(balance=1000)
    challenge = _challenge(client, challenger, challenged).get_json()
    db.challenges.update_one(
        {"_id": ObjectId(challenge["_id"])},
        {"$set": {"expires_at": utcnow() - timedelta(seconds=1)}}
    )

    resp = client.post(
        f"/api/v1/challenges/{challenge['_id']}/respond", json={"accepted": True}, headers=challenged.headers
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Challenge has expired"
    assert balance_of(challenger) == 1000.0
    assert balance_of(challenged) == 1000.0

    view = client.get(f"/api/v1/challenges/{challenge['_id']}", headers=challenger.headers).get_json()
    assert view["status"] == "expired"
    assert view["time_left"] == "Expired"


def test_expire_stale_refunds_exactly_once(client, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user()
    _challenge(client, challenger, challenged)

    later = utcnow() + timedelta(hours=2)
    assert ChallengeService.expire_stale(now=later) == 1
    assert ChallengeService.expire_stale(now=later) == 0
    assert balance_of(challenger) == 1000.0


def test_cancel_pending_challenge(client, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user()
    challenge = _challenge(client, challenger, challenged).get_json()
    url = f"/api/v1/challenges/{challenge['_id']}/cancel"

    assert client.post(url, headers=challenged.headers).status_code == 403
    resp = client.post(url, headers=challenger.headers)
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "cancelled"
    assert balance_of(challenger) == 1000.0
    assert client.post(url, headers=challenger.headers).status_code == 400


def test_list_only_shows_own_challenges(client, make_user):
    a = make_user(balance=1000)
    b = make_user()
    outsider = make_user()
    _challenge(client, a, b)

    assert len(client.get("/api/v1/challenges/", headers=b.headers).get_json()["challenges"]) == 1
    assert client.get("/api/v1/challenges/", headers=outsider.headers).get_json()["challenges"] == []


def test_evidence_requires_accepted_challenge(client, make_user):
    challenger = make_user(balance=1000)
    challenged = make_user()
    challenge = _challenge(client, challenger, challenged).get_json()

    resp = client.post(
        f"/api/v1/challenges/{challenge['_id']}/evidence",
        json={"url": "https://cdn.bantah.ng/proof.png"},
        headers=challenger.headers,
    )
    assert resp.status_code == 400


def test_evidence_submission_and_review(client, make_user):
    admin = make_user(admin=True)
    challenger, challenged, challenge = _accepted_challenge(client, make_user)

    resp = client.post(
        f"/api/v1/challenges/{challenge['_id']}/evidence",
        json={"url": "https://cdn.bantah.ng/proof.png", "type": "image"},
        headers=challenger.headers,
    )
    assert resp.status_code == 201
    assert db.notifications.find_one({"user_id": ObjectId(admin.id), "type": "evidence_submitted"})

    resp = client.post(
        f"/api/v1/admin/challenges/{challenge['_id']}/evidence/review",
        json={"approved": True, "checklist": {"timestamp_visible": True, "score_legible": False}},
        headers=admin.headers,
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["verification"]["status"] == "verified"
    assert body["verification"]["evidence_url"] == "https://cdn.bantah.ng/proof.png"
    assert len(body["reviews"]) == 1
    assert body["reviews"][0]["status"] == "approved"


def test_outcome_pays_winner_pot_minus_fee(client, make_user):
    admin = make_user(admin=True)
    challenger, challenged, challenge = _accepted_challenge(client, make_user)

    resp = client.post(
        f"/api/v1/admin/challenges/{challenge['_id']}/outcome",
        json={"winner_id": challenged.id},
        headers=admin.headers,
    )
    assert resp.status_code == 200
    assert resp.get_json() == {
        "challenge_id": challenge["_id"],
        "winner_id": challenged.id,
        "pot": 200.0,
        "platform_fee": 10.0,
        "payout": 190.0,
    }
    assert balance_of(challenged) == 1090.0
    assert balance_of(challenger) == 900.0
    assert PlatformService.get_settings()["fees_balance"] == 10.0

    again = client.post(
        f"/api/v1/admin/challenges/{challenge['_id']}/outcome",
        json={"winner_id": challenged.id},
        headers=admin.headers,
    )
    assert again.status_code == 400
    assert balance_of(challenged) == 1090.0


def test_outcome_winner_must_participate(client, make_user):
    admin = make_user(admin=True)
    _, _, challenge = _accepted_challenge(client, make_user)
    stranger = make_user()

    resp = client.post(
        f"/api/v1/admin/challenges/{challenge['_id']}/outcome",
        json={"winner_id": stranger.id},
        headers=admin.headers,
    )
    assert resp.status_code == 400


def test_request_support_posts_system_message(client, make_user):
    challenger, _, challenge = _accepted_challenge(client, make_user)

    resp = client.post(f"/api/v1/challenges/{challenge['_id']}/support", headers=challenger.headers)
    assert resp.status_code == 201
    assert resp.get_json()["content"] == SUPPORT_MESSAGE
    assert resp.get_json()["type"] == "system"
    assert db.chats.find_one({"_id": ObjectId(challenge["chat_id"])})["support_added"] is True


def test_report_challenge(client, make_user):
    challenger, challenged, challenge = _accepted_challenge(client, make_user)

    resp = client.post(
        f"/api/v1/challenges/{challenge['_id']}/report", json={"reason": "Fake screenshot"}, headers=challenged.headers
    )
    assert resp.status_code == 201
    report = db.reports.find_one({})
    assert report["type"] == "challenge"
    assert report["status"] == "pending"
    assert report["reported_id"] == ObjectId(challenger.id)
