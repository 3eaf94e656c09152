from flask import Blueprint, jsonify, request, g

from bantah.core import StatsService, UserService
from bantah.users.forms import ProfileForm
from bantah.utils.permissions import active_user_required, current_user_id
from bantah.utils.serializers import serialize
from bantah.utils.validators import bind_form, form_errors, safe_object_id

users_bp = Blueprint("users", __name__)


@users_bp.route("/profile", methods=["GET"])
@active_user_required
def profile():
    return jsonify(UserService.get_profile(g.current_user))


@users_bp.route("/profile", methods=["PUT", "PATCH"])
@active_user_required
def update_profile():
    payload = request.get_json(silent=True) or {}
    form = bind_form(ProfileForm, payload)
    if not form.validate():
        return jsonify({"error": "Invalid profile details", "errors": form_errors(form)}), 400

    user, error = UserService.update_profile(current_user_id(), {
        "name": form.name.data or None,
        "username": form.username.data or None,
        # an empty bio clears it
        "bio": (form.bio.data or "") if "bio" in payload else None,
        "avatar_url": form.avatar_url.data or None,
    })
    if error:
        status = 409 if "taken" in error else 400
        return jsonify({"error": error}), status

    return jsonify(serialize(user))


@users_bp.route("/search", methods=["GET"])
@active_user_required
def search_users():
    """Search for users by username or name."""
    users, error = UserService.search_users(request.args.get("q", ""), current_user_id())
    if error:
        return jsonify({"error": error, "users": []}), 400
    return jsonify({"users": users})


@users_bp.route("/<identifier>", methods=["GET"])
@active_user_required
def get_profile(identifier):
    user = UserService.find_user(identifier)
    if not user:
        return jsonify({"error": "User not found"}), 404
    return jsonify(UserService.get_profile(user, viewer_id=current_user_id()))


@users_bp.route("/<user_id>/stats", methods=["GET"])
@active_user_required
def user_stats(user_id):
    if not safe_object_id(user_id):
        return jsonify({"error": "Invalid user id"}), 400
    return jsonify(StatsService.get_user_stats(user_id))


@users_bp.route("/<user_id>/follow", methods=["POST"])
@active_user_required
def follow(user_id):
    if not safe_object_id(user_id):
        return jsonify({"error": "Invalid user id"}), 400

    ok, error = UserService.follow(current_user_id(), user_id)
    if not ok:
        status = 404 if error == "User not found" else 400
        return jsonify({"error": error}), status
    return jsonify({"message": "Followed"}), 201


@users_bp.route("/<user_id>/follow", methods=["DELETE"])
@active_user_required
def unfollow(user_id):
    if not safe_object_id(user_id):
        return jsonify({"error": "Invalid user id"}), 400

    ok, error = UserService.unfollow(current_user_id(), user_id)
    if not ok:
        return jsonify({"error": error}), 400
    return jsonify({"message": "Unfollowed"})


@users_bp.route("/<user_id>/followers", methods=["GET"])
@active_user_required
def followers(user_id):
    if not safe_object_id(user_id):
        return jsonify({"error": "Invalid user id"}), 400
    return jsonify({"followers": UserService.get_followers(user_id)})


@users_bp.route("/<user_id>/following", methods=["GET"])
@active_user_required
def following(user_id):
    if not safe_object_id(user_id):
        return jsonify({"error": "Invalid user id"}), 400
    return jsonify({"following": UserService.get_following(user_id)})
