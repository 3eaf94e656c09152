"""Notification routes for fetching and managing user notifications."""
from flask import Blueprint, request, jsonify

from bantah.core import NotificationService
from bantah.extensions import db as mongo
from bantah.utils.permissions import active_user_required, current_user_id
from bantah.utils.serializers import serialize
from bantah.utils.validators import safe_object_id

bp = Blueprint("notifications", __name__)


@bp.route("/", methods=["GET"])
@active_user_required
def get_notifications():
    """
    Get user's notifications with pagination.

    Query params:
    - page: Page number (default: 1)
    - per_page: Items per page (default: 20, max 100)
    - unread_only: If true, only unread notifications (default: false)
    """
    user_id = current_user_id()

    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(100, max(1, request.args.get("per_page", 20, type=int)))
    unread_only = request.args.get("unread_only", "false").lower() == "true"

    notifications = NotificationService.get_user_notifications(user_id, page, per_page, unread_only)

    query = {"user_id": safe_object_id(user_id)}
    if unread_only:
        query["read"] = False
    total = mongo.notifications.count_documents(query)

    return jsonify({
        "notifications": serialize(notifications),
        "unread_count": NotificationService.get_unread_count(user_id),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "has_next": page * per_page < total
        }
    })


@bp.route("/unread-count", methods=["GET"])
@active_user_required
def get_unread_count():
    return jsonify({"unread_count": NotificationService.get_unread_count(current_user_id())})


@bp.route("/<notification_id>/read", methods=["POST"])
@active_user_required
def mark_as_read(notification_id):
    if not safe_object_id(notification_id):
        return jsonify({"error": "Invalid notification id"}), 400

    if not NotificationService.mark_as_read(notification_id, current_user_id()):
        return jsonify({"error": "Notification not found"}), 404
    return jsonify({"message": "Marked as read"})


@bp.route("/read-all", methods=["POST"])
@active_user_required
def mark_all_as_read():
    count = NotificationService.mark_all_as_read(current_user_id())
    return jsonify({"message": f"Marked {count} notifications as read", "count": count})


@bp.route("/poll", methods=["GET"])
@active_user_required
def poll_notifications():
    """Realtime channel: notifications not yet delivered to this client."""
    limit = min(100, max(1, request.args.get("limit", 50, type=int)))
    notifications = NotificationService.drain_queue(current_user_id(), limit=limit)
    return jsonify({"notifications": serialize(notifications)})
