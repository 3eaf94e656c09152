"""
Shared fixtures: a Flask app backed by mongomock, a test client and
helpers to register users, fund wallets and create events.
"""
from datetime import timedelta

import mongomock
import pytest
from bson import ObjectId

from bantah import create_app
from bantah.config import TestingConfig
from bantah.core import WalletService
from bantah.extensions import db
from bantah.utils.validators import utcnow


@pytest.fixture
def app(monkeypatch):
    monkeypatch.setattr("bantah.extensions.MongoClient", mongomock.MongoClient)
    app = create_app(TestingConfig)
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def iso_in(**delta):
    return (utcnow() + timedelta(**delta)).isoformat()


class UserHandle:
    def __init__(self, user_id, token, username, email):
        self.id = user_id
        self.token = token
        self.username = username
        self.email = email
        self.headers = {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(client):
    counter = {"n": 0}

    def _make(username=None, balance=0.0, admin=False, **extra):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        email = f"{username}@bantah.ng"
        payload = {"name": username.title(), "username": username, "email": email, "password": "password123"}
        payload.update(extra)
        resp = client.post("/api/v1/auth/register", json=payload)
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        user = UserHandle(body["user"]["_id"], body["access_token"], username, email)
        if balance:
            WalletService.credit_wallet(user.id, balance, "test_funding")
        if admin:
            db.users.update_one({"_id": ObjectId(user.id)}, {"$set": {"is_admin": True}})
        return user

    return _make


@pytest.fixture
def make_event(client):
    def _make(creator, **overrides):
        payload = {
            "title": "Will it rain in Lagos tomorrow?",
            "description": "Settled on the official weather report",
            "category": "weather",
            "start_time": iso_in(hours=1),
            "end_time": iso_in(hours=5),
            "wager_amount": 100,
            "max_participants": 10,
        }
        payload.update(overrides)
        resp = client.post("/api/v1/events/", json=payload, headers=creator.headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()

    return _make


def end_event(event_id):
    """Move an event's end time into the past so it can be settled."""
    db.events.update_one(
        {"_id": ObjectId(event_id)},
        {"$set": {"end_time": utcnow() - timedelta(minutes=1)}}
    )


def balance_of(user):
    return WalletService.get_wallet_balance(user.id)
