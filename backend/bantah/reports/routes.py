from flask import Blueprint, request, jsonify

from bantah.core import ReportService
from bantah.utils.permissions import active_user_required, current_user_id
from bantah.utils.serializers import serialize
from bantah.utils.validators import safe_object_id

reports_bp = Blueprint("reports", __name__)


@reports_bp.route("/", methods=["POST"])
@active_user_required
def create_report():
    data = request.get_json(silent=True) or {}
    target_id = data.get("target_id")
    reported_id = data.get("reported_id")
    if not safe_object_id(target_id):
        return jsonify({"error": "Invalid target id"}), 400
    if reported_id and not safe_object_id(reported_id):
        return jsonify({"error": "Invalid reported user id"}), 400

    reason = data.get("reason")
    report, error = ReportService.create_report(
        reporter_id=current_user_id(),
        report_type=data.get("type"),
        target_id=target_id,
        reason=reason if isinstance(reason, str) else "",
        reported_id=reported_id
    )
    if error:
        return jsonify({"error": error}), 400
    return jsonify(serialize(report)), 201
