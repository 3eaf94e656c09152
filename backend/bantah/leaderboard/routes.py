from flask import Blueprint, request, jsonify

from bantah.core import LeaderboardService
from bantah.utils.permissions import active_user_required, current_user_id

leaderboard_bp = Blueprint("leaderboard", __name__)


@leaderboard_bp.route("/", methods=["GET"])
@active_user_required
def leaderboard():
    limit = request.args.get("limit", 50, type=int)
    return jsonify({"leaderboard": LeaderboardService.get_leaderboard(limit)})


@leaderboard_bp.route("/me", methods=["GET"])
@active_user_required
def my_rank():
    entry = LeaderboardService.get_user_rank(current_user_id())
    if not entry:
        return jsonify({"error": "User not ranked"}), 404
    return jsonify(entry)
