from flask import Blueprint, request, jsonify, g

from bantah.core import EventService, JoinRequestService, PoolService
from bantah.events.forms import EventForm
from bantah.utils.enums import EventStatus
from bantah.utils.permissions import active_user_required, current_user_id
from bantah.utils.serializers import serialize
from bantah.utils.validators import bind_form, form_errors, parse_amount, safe_object_id

events_bp = Blueprint("events", __name__)


def _error_status(error):
    if error.endswith("not found"):
        return 404
    if error.startswith("Only "):
        return 403
    return 400


# ------------------ EVENTS ------------------

@events_bp.route("/", methods=["POST"])
@active_user_required
def create_event():
    form = bind_form(EventForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Invalid event details", "errors": form_errors(form)}), 400

    event = EventService.create_event(current_user_id(), form.data)
    return jsonify(EventService.get_event_details(event)), 201


@events_bp.route("/", methods=["GET"])
@active_user_required
def list_events():
    """
    Search events, newest first.

    Query params:
    - q: matches title, description or category
    - category, status: exact filters
    - page (default 1), limit (default 20, max 50)
    """
    page = max(1, request.args.get("page", 1, type=int))
    limit = min(50, max(1, request.args.get("limit", 20, type=int)))
    status = request.args.get("status")
    if status and status not in [s.value for s in EventStatus]:
        return jsonify({"error": "Invalid status filter"}), 400

    events, total = EventService.list_events(
        search=request.args.get("q"),
        category=request.args.get("category"),
        status=status,
        page=page,
        limit=limit,
        viewer_id=current_user_id()
    )
    total_pages = (total + limit - 1) // limit

    items = []
    for event in events:
        item = serialize(event)
        item["pool"] = PoolService.get_pool_state(str(event["_id"]))
        items.append(item)

    return jsonify({
        "events": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1
        }
    })


@events_bp.route("/categories", methods=["GET"])
@active_user_required
def category_stats():
    return jsonify({"categories": EventService.get_category_stats()})


@events_bp.route("/history", methods=["GET"])
@active_user_required
def history():
    return jsonify(EventService.get_history(current_user_id()))


@events_bp.route("/<event_id>", methods=["GET"])
@active_user_required
def get_event(event_id):
    if not safe_object_id(event_id):
        return jsonify({"error": "Invalid event id"}), 400

    event = EventService.get_event(event_id)
    if not event:
        return jsonify({"error": "Event not found"}), 404

    details = EventService.get_event_details(event)
    details["my_prediction"] = EventService.get_user_prediction(event_id, current_user_id())
    return jsonify(details)


@events_bp.route("/<event_id>/join", methods=["POST"])
@active_user_required
def join_event(event_id):
    if not safe_object_id(event_id):
        return jsonify({"error": "Invalid event id"}), 400

    data = request.get_json(silent=True) or {}
    prediction = data.get("prediction")
    if not isinstance(prediction, bool):
        return jsonify({"error": "Prediction must be true (YES) or false (NO)"}), 400

    wager_amount = data.get("wager_amount")
    if wager_amount is not None:
        wager_amount = parse_amount(wager_amount)
        if wager_amount is None:
            return jsonify({"error": "Invalid wager amount"}), 400

    participant, error = EventService.join_event(event_id, current_user_id(), prediction, wager_amount)
    if error:
        if error.startswith("This is a private event"):
            return jsonify({"error": error}), 403
        if error == "You have already joined this event":
            return jsonify({"error": error}), 409
        return jsonify({"error": error}), _error_status(error)

    return jsonify({
        "participant": serialize(participant),
        "pool": PoolService.get_pool_state(event_id)
    }), 201


@events_bp.route("/<event_id>/participants", methods=["GET"])
@active_user_required
def participants(event_id):
    if not safe_object_id(event_id):
        return jsonify({"error": "Invalid event id"}), 400
    return jsonify({"participants": EventService.get_participants(event_id)})


@events_bp.route("/<event_id>/my-prediction", methods=["GET"])
@active_user_required
def my_prediction(event_id):
    if not safe_object_id(event_id):
        return jsonify({"error": "Invalid event id"}), 400
    return jsonify({"prediction": EventService.get_user_prediction(event_id, current_user_id())})


@events_bp.route("/<event_id>/pool", methods=["GET"])
@active_user_required
def pool(event_id):
    if not safe_object_id(event_id):
        return jsonify({"error": "Invalid event id"}), 400
    state = PoolService.get_pool_state(event_id)
    if not state:
        return jsonify({"error": "Pool not found"}), 404
    return jsonify(state)


@events_bp.route("/<event_id>/cancel", methods=["POST"])
@active_user_required
def cancel_event(event_id):
    if not safe_object_id(event_id):
        return jsonify({"error": "Invalid event id"}), 400

    result, error = EventService.cancel_event(event_id, g.current_user)
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(result)


# ------------------ JOIN REQUESTS ------------------

@events_bp.route("/<event_id>/join-requests", methods=["POST"])
@active_user_required
def request_to_join(event_id):
    if not safe_object_id(event_id):
        return jsonify({"error": "Invalid event id"}), 400

    data = request.get_json(silent=True) or {}
    join_request, error = JoinRequestService.create_join_request(event_id, current_user_id(), data.get("message"))
    if error:
        if error == "Join request already pending":
            return jsonify({"error": error}), 409
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(join_request)), 201


@events_bp.route("/<event_id>/join-requests", methods=["GET"])
@active_user_required
def pending_requests(event_id):
    if not safe_object_id(event_id):
        return jsonify({"error": "Invalid event id"}), 400

    requests, error = JoinRequestService.get_pending_requests(event_id, current_user_id())
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify({"requests": requests})


@events_bp.route("/<event_id>/join-requests/<request_id>", methods=["PUT"])
@active_user_required
def respond_to_request(event_id, request_id):
    if not safe_object_id(event_id) or not safe_object_id(request_id):
        return jsonify({"error": "Invalid id"}), 400

    data = request.get_json(silent=True) or {}
    join_request, error = JoinRequestService.respond_to_request(
        event_id, request_id, current_user_id(), data.get("status"), data.get("response_message")
    )
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(join_request))
