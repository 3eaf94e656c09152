"""Admin routes: moderation, settlement and platform accounting."""
from flask import Blueprint, request, jsonify

from bantah.core import (
    ChallengeService, ChatService, PlatformService, PoolService,
    ReportService, StatsService, UserService
)
from bantah.extensions import db as mongo
from bantah.utils.enums import ReportStatus
from bantah.utils.permissions import admin_required, current_user_id
from bantah.utils.serializers import serialize
from bantah.utils.validators import parse_amount, safe_object_id

admin_bp = Blueprint("admin", __name__)


def _error_status(error):
    if error.endswith("not found"):
        return 404
    return 400


# ------------------ USERS & GROUPS ------------------

@admin_bp.route("/users/<user_id>/block", methods=["POST"])
@admin_required
def block_user(user_id):
    if not safe_object_id(user_id):
        return jsonify({"error": "Invalid user id"}), 400
    ok, error = UserService.set_blocked(user_id, current_user_id(), True)
    if not ok:
        return jsonify({"error": error}), _error_status(error)
    return jsonify({"message": "User blocked"})


@admin_bp.route("/users/<user_id>/unblock", methods=["POST"])
@admin_required
def unblock_user(user_id):
    if not safe_object_id(user_id):
        return jsonify({"error": "Invalid user id"}), 400
    ok, error = UserService.set_blocked(user_id, current_user_id(), False)
    if not ok:
        return jsonify({"error": error}), _error_status(error)
    return jsonify({"message": "User unblocked"})


@admin_bp.route("/groups/<chat_id>", methods=["DELETE"])
@admin_required
def delete_group(chat_id):
    if not safe_object_id(chat_id):
        return jsonify({"error": "Invalid group id"}), 400
    if not ChatService.delete_group(chat_id):
        return jsonify({"error": "Group not found"}), 404
    PlatformService.log_admin_action(current_user_id(), "delete_group", "chat", chat_id)
    return jsonify({"message": "Group deleted"})


# ------------------ REPORTS ------------------

@admin_bp.route("/reports", methods=["GET"])
@admin_required
def list_reports():
    status = request.args.get("status")
    if status and status not in [s.value for s in ReportStatus]:
        return jsonify({"error": "Invalid status filter"}), 400
    return jsonify({"reports": serialize(ReportService.list_reports(status))})


@admin_bp.route("/reports/<report_id>/resolve", methods=["POST"])
@admin_required
def resolve_report(report_id):
    if not safe_object_id(report_id):
        return jsonify({"error": "Invalid report id"}), 400
    data = request.get_json(silent=True) or {}
    report, error = ReportService.resolve_report(
        report_id, current_user_id(), data.get("resolution"),
        data.get("status", ReportStatus.RESOLVED.value)
    )
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(report))


# ------------------ DASHBOARD ------------------

@admin_bp.route("/audit-log", methods=["GET"])
@admin_required
def audit_log():
    limit = min(500, max(1, request.args.get("limit", 100, type=int)))
    actions = list(mongo.admin_actions.find({}).sort("created_at", -1).limit(limit))
    return jsonify({"actions": serialize(actions)})


@admin_bp.route("/stats", methods=["GET"])
@admin_required
def stats():
    return jsonify(StatsService.get_admin_stats())


@admin_bp.route("/platform-summary", methods=["GET"])
@admin_required
def platform_summary():
    return jsonify(StatsService.get_platform_summary())


# ------------------ SETTLEMENT ------------------

@admin_bp.route("/settlement-method", methods=["GET"])
@admin_required
def get_settlement_method():
    return jsonify({"settlement_method": PlatformService.get_settlement_method()})


@admin_bp.route("/settlement-method", methods=["POST"])
@admin_required
def toggle_settlement_method():
    data = request.get_json(silent=True) or {}
    use_coins = data.get("use_coins")
    if not isinstance(use_coins, bool):
        return jsonify({"error": "use_coins must be true or false"}), 400
    method = PlatformService.set_settlement_method(use_coins, current_user_id())
    return jsonify({"settlement_method": method})


@admin_bp.route("/platform-fees/withdraw", methods=["POST"])
@admin_required
def withdraw_platform_fees():
    data = request.get_json(silent=True) or {}
    amount = parse_amount(data.get("amount"))
    if amount is None:
        return jsonify({"error": "Amount must be a positive number"}), 400

    ok, error, remaining = PlatformService.withdraw_fees(amount, current_user_id())
    if not ok:
        return jsonify({"error": error}), 400
    return jsonify({"withdrawn": amount, "fees_balance": remaining})


@admin_bp.route("/events/pending-outcomes", methods=["GET"])
@admin_required
def pending_outcomes():
    return jsonify({"events": PoolService.get_pending_outcomes()})


@admin_bp.route("/events/<event_id>/outcome", methods=["POST"])
@admin_required
def set_event_outcome(event_id):
    if not safe_object_id(event_id):
        return jsonify({"error": "Invalid event id"}), 400

    data = request.get_json(silent=True) or {}
    winning_prediction = data.get("winning_prediction")
    if not isinstance(winning_prediction, bool):
        return jsonify({"error": "winning_prediction must be true (YES) or false (NO)"}), 400

    summary, error = PoolService.distribute_winnings(event_id, winning_prediction, current_user_id())
    if error:
        if error.startswith("Event is already") or error.startswith("Joins are still"):
            return jsonify({"error": error}), 409
        return jsonify({"error": error}), _error_status(error)
    return jsonify(summary)


@admin_bp.route("/challenges/<challenge_id>/outcome", methods=["POST"])
@admin_required
def set_challenge_outcome(challenge_id):
    data = request.get_json(silent=True) or {}
    winner_id = data.get("winner_id")
    if not safe_object_id(challenge_id) or not safe_object_id(winner_id):
        return jsonify({"error": "Invalid id"}), 400

    summary, error = ChallengeService.set_outcome(challenge_id, winner_id, current_user_id())
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(summary)


@admin_bp.route("/challenges/<challenge_id>/evidence/review", methods=["POST"])
@admin_required
def review_evidence(challenge_id):
    if not safe_object_id(challenge_id):
        return jsonify({"error": "Invalid challenge id"}), 400

    data = request.get_json(silent=True) or {}
    approved = data.get("approved")
    if not isinstance(approved, bool):
        return jsonify({"error": "approved must be true or false"}), 400
    checklist = data.get("checklist") or {}
    if not isinstance(checklist, dict):
        return jsonify({"error": "checklist must be an object"}), 400

    verification, error = ChallengeService.review_evidence(
        challenge_id, current_user_id(), approved, checklist, data.get("notes")
    )
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify({
        "verification": serialize(verification),
        "reviews": serialize(ChallengeService.get_evidence_reviews(challenge_id))
    })
