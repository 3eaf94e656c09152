"""JSON-safe conversion of MongoDB documents."""
from datetime import datetime

from bson import ObjectId


def serialize(value):
    """Recursively convert ObjectIds to strings and datetimes to ISO strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items() if k != "password_hash"}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value


def public_user(user):
    """The subset of a user document safe to show other users."""
    if not user:
        return None
    return {
        "_id": str(user["_id"]),
        "name": user.get("name") or "Anonymous User",
        "username": user.get("username"),
        "avatar_url": user.get("avatar_url") or f"https://api.dicebear.com/7.x/avataaars/svg?seed={user['_id']}",
    }
