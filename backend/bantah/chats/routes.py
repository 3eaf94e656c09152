from flask import Blueprint, request, jsonify

from bantah.core import ChatService
from bantah.utils.enums import MessageType
from bantah.utils.permissions import active_user_required, current_user_id
from bantah.utils.serializers import serialize
from bantah.utils.validators import parse_datetime, safe_object_id

chats_bp = Blueprint("chats", __name__)


def _error_status(error):
    if error.endswith("not found"):
        return 404
    if error.startswith("Only ") or error.startswith("You are not"):
        return 403
    return 400


def _member_chat(chat_id):
    """Load a chat the caller belongs to, or return an error response."""
    if not safe_object_id(chat_id):
        return None, (jsonify({"error": "Invalid chat id"}), 400)
    chat = ChatService.get_chat(chat_id)
    if not chat or chat.get("is_blocked"):
        return None, (jsonify({"error": "Chat not found"}), 404)
    if not ChatService.is_member(chat, current_user_id()):
        return None, (jsonify({"error": "You are not a member of this chat"}), 403)
    return chat, None


@chats_bp.route("/", methods=["GET"])
@active_user_required
def list_chats():
    return jsonify({"chats": ChatService.list_chats(current_user_id())})


@chats_bp.route("/private", methods=["POST"])
@active_user_required
def create_private_chat():
    data = request.get_json(silent=True) or {}
    other_id = data.get("user_id")
    if not safe_object_id(other_id):
        return jsonify({"error": "Invalid user id"}), 400

    chat, error = ChatService.create_or_get_private_chat(current_user_id(), other_id)
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(chat))


@chats_bp.route("/groups", methods=["POST"])
@active_user_required
def create_group():
    data = request.get_json(silent=True) or {}
    participant_ids = data.get("participant_ids") or []
    if not isinstance(participant_ids, list) or not all(safe_object_id(p) for p in participant_ids):
        return jsonify({"error": "participant_ids must be a list of user ids"}), 400

    chat, error = ChatService.create_group_chat(current_user_id(), data.get("name"), participant_ids)
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(chat)), 201


@chats_bp.route("/events/<event_id>", methods=["GET"])
@active_user_required
def event_chat(event_id):
    if not safe_object_id(event_id):
        return jsonify({"error": "Invalid event id"}), 400

    chat, error = ChatService.get_event_chat(event_id, current_user_id())
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(chat))


@chats_bp.route("/<chat_id>/members", methods=["POST"])
@active_user_required
def add_member(chat_id):
    data = request.get_json(silent=True) or {}
    if not safe_object_id(chat_id) or not safe_object_id(data.get("user_id")):
        return jsonify({"error": "Invalid id"}), 400

    chat, error = ChatService.add_member(chat_id, current_user_id(), data["user_id"])
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(chat))


@chats_bp.route("/<chat_id>/members/<user_id>", methods=["DELETE"])
@active_user_required
def remove_member(chat_id, user_id):
    if not safe_object_id(chat_id) or not safe_object_id(user_id):
        return jsonify({"error": "Invalid id"}), 400

    chat, error = ChatService.remove_member(chat_id, current_user_id(), user_id)
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(chat))


@chats_bp.route("/<chat_id>/messages", methods=["GET"])
@active_user_required
def get_messages(chat_id):
    """
    Messages oldest first.

    Query params:
    - limit: number of messages (default 50, max 200)
    - before: ISO timestamp, only older messages
    """
    chat, error = _member_chat(chat_id)
    if error:
        return error

    limit = min(200, max(1, request.args.get("limit", 50, type=int)))
    before = None
    if request.args.get("before"):
        before = parse_datetime(request.args["before"])
        if before is None:
            return jsonify({"error": "before must be an ISO-8601 timestamp"}), 400

    return jsonify({"messages": ChatService.get_messages(chat_id, limit=limit, before=before)})


@chats_bp.route("/<chat_id>/messages", methods=["POST"])
@active_user_required
def send_message(chat_id):
    if not safe_object_id(chat_id):
        return jsonify({"error": "Invalid chat id"}), 400

    data = request.get_json(silent=True) or {}
    reply_to = data.get("reply_to")
    if reply_to and not safe_object_id(reply_to):
        return jsonify({"error": "Invalid reply_to id"}), 400

    message, error = ChatService.send_message(
        chat_id,
        current_user_id(),
        data.get("content"),
        data.get("type", MessageType.TEXT.value),
        reply_to
    )
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(message)), 201


@chats_bp.route("/<chat_id>/read", methods=["POST"])
@active_user_required
def mark_read(chat_id):
    chat, error = _member_chat(chat_id)
    if error:
        return error
    return jsonify({"marked": ChatService.mark_read(chat_id, current_user_id())})
