from flask import Blueprint, request, jsonify

from bantah.core import ReferralService
from bantah.utils.permissions import active_user_required, current_user_id
from bantah.utils.serializers import serialize

referrals_bp = Blueprint("referrals", __name__)


@referrals_bp.route("/code", methods=["GET"])
@active_user_required
def my_code():
    return jsonify({"code": ReferralService.get_or_create_code(current_user_id())})


@referrals_bp.route("/apply", methods=["POST"])
@active_user_required
def apply_code():
    data = request.get_json(silent=True) or {}
    code = data.get("code")
    if not isinstance(code, str):
        return jsonify({"error": "Referral code is required"}), 400

    referral, error = ReferralService.apply_code(current_user_id(), code)
    if error:
        status = 409 if error == "You have already been referred" else 400
        return jsonify({"error": error}), status
    return jsonify(serialize(referral)), 201


@referrals_bp.route("/stats", methods=["GET"])
@active_user_required
def stats():
    return jsonify(ReferralService.get_stats(current_user_id()))


@referrals_bp.route("/welcome-bonus", methods=["POST"])
@active_user_required
def claim_welcome_bonus():
    result, error = ReferralService.claim_welcome_bonus(current_user_id())
    if error:
        return jsonify({"error": error}), 409
    return jsonify(result)
