"""Permission helpers."""
from functools import wraps

from flask import g, jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from bantah.extensions import db as mongo
from bantah.utils.validators import safe_object_id


def is_creator(user_id, obj):
    return obj.get("creator_id") == safe_object_id(user_id)


def _load_current_user():
    verify_jwt_in_request()
    user_oid = safe_object_id(get_jwt_identity())
    if not user_oid:
        return None, (jsonify({"error": "Invalid token identity"}), 401)
    user = mongo.users.find_one({"_id": user_oid}, {"password_hash": 0})
    if not user:
        return None, (jsonify({"error": "User not found"}), 404)
    if user.get("is_blocked"):
        return None, (jsonify({"error": "Your account has been blocked"}), 403)
    return user, None


def active_user_required(fn):
    """Require a valid token belonging to a user who is not blocked."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user, error = _load_current_user()
        if error:
            return error
        g.current_user = user
        return fn(*args, **kwargs)
    return wrapper


def admin_required(fn):
    """Require an authenticated, unblocked admin."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user, error = _load_current_user()
        if error:
            return error
        if not user.get("is_admin"):
            return jsonify({"error": "Admin access required"}), 403
        g.current_user = user
        return fn(*args, **kwargs)
    return wrapper


def current_user_id() -> str:
    return str(g.current_user["_id"])
