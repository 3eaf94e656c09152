import logging

from bcrypt import hashpw, gensalt, checkpw
from flask import Blueprint, request, jsonify, g
from flask_jwt_extended import create_access_token
from pymongo.errors import DuplicateKeyError

from bantah.core import ReferralService, StatsService, WalletService
from bantah.extensions import db
from bantah.users.forms import RegistrationForm, LoginForm
from bantah.utils.permissions import active_user_required
from bantah.utils.serializers import serialize
from bantah.utils.validators import bind_form, form_errors, utcnow

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


def _user_payload(user):
    return {
        "_id": str(user["_id"]),
        "name": user["name"],
        "username": user["username"],
        "email": user["email"],
        "avatar_url": user.get("avatar_url"),
        "is_admin": bool(user.get("is_admin")),
    }


@auth_bp.route("/register", methods=["POST"])
def register():
    form = bind_form(RegistrationForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Invalid registration details", "errors": form_errors(form)}), 400

    email = form.email.data.lower()
    username = form.username.data

    if db.users.find_one({"email": email}):
        return jsonify({"error": "User already exists"}), 409
    if db.users.find_one({"username": username}):
        return jsonify({"error": "Username is already taken"}), 409

    user = {
        "name": form.name.data,
        "username": username,
        "email": email,
        "password_hash": hashpw(form.password.data.encode(), gensalt()),
        "avatar_url": None,
        "bio": None,
        "is_admin": False,
        "is_blocked": False,
        "welcome_bonus_claimed": False,
        "created_at": utcnow(),
        "last_login_at": None
    }

    try:
        res = db.users.insert_one(user)
    except DuplicateKeyError:
        return jsonify({"error": "User already exists"}), 409
    user["_id"] = res.inserted_id
    user_id = str(res.inserted_id)

    WalletService.get_or_create_wallet(user_id)
    StatsService.ensure_user_stats(user_id)
    ReferralService.get_or_create_code(user_id)

    referral_error = None
    if form.referral_code.data:
        _, referral_error = ReferralService.apply_code(user_id, form.referral_code.data)
        if referral_error:
            logger.warning("Referral code ignored for %s: %s", user_id, referral_error)

    access_token = create_access_token(identity=user_id)
    logger.info("Registered user %s (%s)", user_id, username)

    body = {"access_token": access_token, "user": _user_payload(user)}
    if referral_error:
        body["referral_error"] = referral_error
    return jsonify(body), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    form = bind_form(LoginForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Email/username and password are required", "errors": form_errors(form)}), 400

    identifier = form.identifier.data
    user = db.users.find_one({"$or": [{"email": identifier.lower()}, {"username": identifier}]})

    if not user or not checkpw(form.password.data.encode(), user["password_hash"]):
        return jsonify({"error": "Invalid credentials"}), 401

    if user.get("is_blocked"):
        return jsonify({"error": "Your account has been blocked"}), 403

    db.users.update_one({"_id": user["_id"]}, {"$set": {"last_login_at": utcnow()}})
    token = create_access_token(identity=str(user["_id"]))

    return jsonify({
        "access_token": token,
        "user": _user_payload(user)
    })


@auth_bp.route("/me", methods=["GET"])
@active_user_required
def me():
    user = g.current_user
    wallet = WalletService.get_or_create_wallet(str(user["_id"]))

    data = serialize(user)
    data["balance"] = round(float(wallet.get("balance", 0)), 2)
    data["coins"] = int(wallet.get("coins", 0))
    return jsonify(data)
