from flask import Blueprint, request, jsonify

from bantah.challenges.forms import ChallengeForm, EvidenceForm
from bantah.core import ChallengeService
from bantah.utils.enums import ChallengeStatus
from bantah.utils.permissions import active_user_required, current_user_id
from bantah.utils.serializers import serialize
from bantah.utils.validators import bind_form, form_errors, safe_object_id

challenges_bp = Blueprint("challenges", __name__)


def _error_status(error):
    if error.endswith("not found"):
        return 404
    if error.startswith("Only "):
        return 403
    return 400


@challenges_bp.route("/", methods=["POST"])
@active_user_required
def create_challenge():
    form = bind_form(ChallengeForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Invalid challenge details", "errors": form_errors(form)}), 400

    if not safe_object_id(form.challenged_id.data):
        return jsonify({"error": "Invalid opponent id"}), 400

    challenge, error = ChallengeService.create_challenge(
        challenger_id=current_user_id(),
        challenged_id=form.challenged_id.data,
        title=form.title.data,
        amount=form.amount.data,
        expires_in=form.expires_in.data,
        description=form.description.data or None,
        evidence_type=form.evidence_type.data or None
    )
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(ChallengeService.to_dict(challenge)), 201


@challenges_bp.route("/", methods=["GET"])
@active_user_required
def list_challenges():
    status = request.args.get("status")
    if status and status not in [s.value for s in ChallengeStatus]:
        return jsonify({"error": "Invalid status filter"}), 400
    return jsonify({"challenges": ChallengeService.list_user_challenges(current_user_id(), status)})


@challenges_bp.route("/<challenge_id>", methods=["GET"])
@active_user_required
def get_challenge(challenge_id):
    if not safe_object_id(challenge_id):
        return jsonify({"error": "Invalid challenge id"}), 400

    challenge = ChallengeService.get_challenge(challenge_id)
    if not challenge:
        return jsonify({"error": "Challenge not found"}), 404
    if not ChallengeService.is_participant(challenge, current_user_id()):
        return jsonify({"error": "Not authorized to view this challenge"}), 403
    return jsonify(ChallengeService.to_dict(challenge))


@challenges_bp.route("/<challenge_id>/respond", methods=["POST"])
@active_user_required
def respond(challenge_id):
    if not safe_object_id(challenge_id):
        return jsonify({"error": "Invalid challenge id"}), 400

    data = request.get_json(silent=True) or {}
    accepted = data.get("accepted")
    if not isinstance(accepted, bool):
        return jsonify({"error": "accepted must be true or false"}), 400

    challenge, error = ChallengeService.respond(challenge_id, current_user_id(), accepted)
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(ChallengeService.to_dict(challenge))


@challenges_bp.route("/<challenge_id>/cancel", methods=["POST"])
@active_user_required
def cancel(challenge_id):
    if not safe_object_id(challenge_id):
        return jsonify({"error": "Invalid challenge id"}), 400

    challenge, error = ChallengeService.cancel(challenge_id, current_user_id())
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(ChallengeService.to_dict(challenge))


@challenges_bp.route("/<challenge_id>/evidence", methods=["POST"])
@active_user_required
def submit_evidence(challenge_id):
    if not safe_object_id(challenge_id):
        return jsonify({"error": "Invalid challenge id"}), 400

    data = request.get_json(silent=True) or {}
    form = bind_form(EvidenceForm, {"url": data.get("url"), "type": data.get("type")})
    if not form.validate():
        return jsonify({"error": "Invalid evidence", "errors": form_errors(form)}), 400

    evidence, error = ChallengeService.submit_evidence(
        challenge_id, current_user_id(), form.url.data, form.type.data, data.get("metadata")
    )
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(evidence)), 201


@challenges_bp.route("/<challenge_id>/support", methods=["POST"])
@active_user_required
def request_support(challenge_id):
    if not safe_object_id(challenge_id):
        return jsonify({"error": "Invalid challenge id"}), 400

    message, error = ChallengeService.request_support(challenge_id, current_user_id())
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(message)), 201


@challenges_bp.route("/<challenge_id>/report", methods=["POST"])
@active_user_required
def report(challenge_id):
    if not safe_object_id(challenge_id):
        return jsonify({"error": "Invalid challenge id"}), 400

    data = request.get_json(silent=True) or {}
    report_doc, error = ChallengeService.report(challenge_id, current_user_id(), data.get("reason"))
    if error:
        return jsonify({"error": error}), _error_status(error)
    return jsonify(serialize(report_doc)), 201
