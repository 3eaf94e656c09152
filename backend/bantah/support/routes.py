from flask import Blueprint, request, jsonify, g

from bantah.core import SupportService
from bantah.extensions import db as mongo
from bantah.utils.enums import MessageType, TicketPriority, TicketStatus
from bantah.utils.permissions import active_user_required, admin_required, current_user_id
from bantah.utils.serializers import serialize
from bantah.utils.validators import safe_object_id

support_bp = Blueprint("support", __name__)


def _accessible_ticket(ticket_id):
    oid = safe_object_id(ticket_id)
    if not oid:
        return None, (jsonify({"error": "Invalid ticket id"}), 400)
    ticket = mongo.support_tickets.find_one({"_id": oid})
    if not ticket:
        return None, (jsonify({"error": "Ticket not found"}), 404)
    if ticket["user_id"] != g.current_user["_id"] and not g.current_user.get("is_admin"):
        return None, (jsonify({"error": "You do not have access to this ticket"}), 403)
    return ticket, None


@support_bp.route("/tickets/active", methods=["GET"])
@active_user_required
def active_ticket():
    ticket = SupportService.get_active_ticket(current_user_id())
    return jsonify({"ticket": serialize(ticket) if ticket else None})


@support_bp.route("/tickets", methods=["POST"])
@active_user_required
def create_ticket():
    data = request.get_json(silent=True) or {}
    ticket, error = SupportService.create_ticket(
        current_user_id(),
        data.get("message"),
        data.get("priority", TicketPriority.NORMAL.value)
    )
    if error:
        status = 409 if error.startswith("You already have") else 400
        return jsonify({"error": error}), status
    return jsonify(serialize(ticket)), 201


@support_bp.route("/tickets/<ticket_id>/messages", methods=["GET"])
@active_user_required
def get_messages(ticket_id):
    ticket, error = _accessible_ticket(ticket_id)
    if error:
        return error
    return jsonify({"messages": serialize(SupportService.get_messages(ticket_id))})


@support_bp.route("/tickets/<ticket_id>/messages", methods=["POST"])
@active_user_required
def send_message(ticket_id):
    ticket, error = _accessible_ticket(ticket_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    message_type = data.get("type", MessageType.TEXT.value)
    if message_type not in (MessageType.TEXT.value, MessageType.IMAGE.value, MessageType.FILE.value):
        return jsonify({"error": "Invalid message type"}), 400

    message, error = SupportService.send_message(ticket_id, g.current_user, data.get("content"), message_type)
    if error:
        return jsonify({"error": error}), 400
    return jsonify(serialize(message)), 201


@support_bp.route("/tickets/<ticket_id>/status", methods=["PUT"])
@admin_required
def update_status(ticket_id):
    if not safe_object_id(ticket_id):
        return jsonify({"error": "Invalid ticket id"}), 400

    data = request.get_json(silent=True) or {}
    ticket, error = SupportService.update_status(ticket_id, data.get("status"), current_user_id())
    if error:
        status = 404 if error == "Ticket not found" else 400
        return jsonify({"error": error}), status
    return jsonify(serialize(ticket))


@support_bp.route("/tickets", methods=["GET"])
@admin_required
def all_tickets():
    status = request.args.get("status")
    if status and status not in [s.value for s in TicketStatus]:
        return jsonify({"error": "Invalid status filter"}), 400
    return jsonify({"tickets": serialize(SupportService.get_all_tickets(status))})
