"""
Tests for admin moderation, reports and platform accounting.
"""
from bson import ObjectId

from bantah.core import PlatformService
from bantah.extensions import db


def test_admin_routes_require_admin(client, make_user):
    user = make_user()
    resp = client.get("/api/v1/admin/stats", headers=user.headers)
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "Admin access required"


def test_block_and_unblock_user(client, make_user):
    admin = make_user(admin=True)
    user = make_user()

    assert client.post(f"/api/v1/admin/users/{user.id}/block", headers=admin.headers).status_code == 200
    assert client.get("/api/v1/auth/me", headers=user.headers).status_code == 403
    assert client.post(f"/api/v1/admin/users/{admin.id}/block", headers=admin.headers).status_code == 400

    assert client.post(f"/api/v1/admin/users/{user.id}/unblock", headers=admin.headers).status_code == 200
    assert client.get("/api/v1/auth/me", headers=user.headers).status_code == 200

    actions = client.get("/api/v1/admin/audit-log", headers=admin.headers).get_json()["actions"]
    assert {a["action_type"] for a in actions} == {"block_user", "unblock_user"}


def test_delete_group(client, make_user):
    admin = make_user(admin=True)
    owner = make_user()
    group = client.post(
        "/api/v1/chats/groups", json={"name": "Spam central"}, headers=owner.headers
    ).get_json()

    assert client.delete(f"/api/v1/admin/groups/{group['_id']}", headers=admin.headers).status_code == 200
    assert db.chats.find_one({"_id": ObjectId(group["_id"])}) is None
    assert db.messages.count_documents({"chat_id": ObjectId(group["_id"])}) == 0
    assert client.delete(f"/api/v1/admin/groups/{group['_id']}", headers=admin.headers).status_code == 404


def test_report_lifecycle(client, make_user):
    admin = make_user(admin=True)
    reporter = make_user()
    offender = make_user()

    resp = client.post(
        "/api/v1/reports/",
        json={"type": "user", "target_id": offender.id, "reported_id": offender.id, "reason": "Abusive messages"},
        headers=reporter.headers,
    )
    assert resp.status_code == 201
    report_id = resp.get_json()["_id"]

    bad = client.post(
        "/api/v1/reports/", json={"type": "weather", "target_id": offender.id, "reason": "x"}, headers=reporter.headers
    )
    assert bad.status_code == 400

    pending = client.get("/api/v1/admin/reports?status=pending", headers=admin.headers).get_json()["reports"]
    assert [r["_id"] for r in pending] == [report_id]
    assert client.get("/api/v1/admin/stats", headers=admin.headers).get_json()["pending_reports"] == 1

    resp = client.post(
        f"/api/v1/admin/reports/{report_id}/resolve", json={"resolution": "User warned"}, headers=admin.headers
    )
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "resolved"
    again = client.post(f"/api/v1/admin/reports/{report_id}/resolve", json={}, headers=admin.headers)
    assert again.status_code == 400


def test_platform_fee_withdrawal(client, make_user):
    admin = make_user(admin=True)
    PlatformService.add_fees(50.0, "test")

    too_much = client.post("/api/v1/admin/platform-fees/withdraw", json={"amount": 80}, headers=admin.headers)
    assert too_much.status_code == 400
    assert "Available: 50.00" in too_much.get_json()["error"]

    resp = client.post("/api/v1/admin/platform-fees/withdraw", json={"amount": 30}, headers=admin.headers)
    assert resp.status_code == 200
    assert resp.get_json() == {"withdrawn": 30.0, "fees_balance": 20.0}

    summary = client.get("/api/v1/admin/platform-summary", headers=admin.headers).get_json()
    assert summary["total_platform_fees"] == 50.0
    assert summary["platform_fee_balance"] == 20.0


def test_settlement_method_toggle(client, make_user):
    admin = make_user(admin=True)
    url = "/api/v1/admin/settlement-method"

    assert client.get(url, headers=admin.headers).get_json()["settlement_method"] == "fiat"
    assert client.post(url, json={"use_coins": "yes"}, headers=admin.headers).status_code == 400
    assert client.post(url, json={"use_coins": True}, headers=admin.headers).get_json()["settlement_method"] == "coins"
    assert client.post(url, json={"use_coins": False}, headers=admin.headers).get_json()["settlement_method"] == "fiat"


def test_admin_stats_counts(client, make_user, make_event):
    admin = make_user(admin=True)
    creator = make_user()
    make_event(creator)
    client.post("/api/v1/chats/groups", json={"name": "Fans"}, headers=creator.headers)

    stats = client.get("/api/v1/admin/stats", headers=admin.headers).get_json()
    assert stats["total_events"] == 1
    assert stats["active_users"] == 2
    assert stats["total_groups"] == 1
