"""Matches: create, edit, cancel, sign up, organizer actions, guests."""
from flask import Blueprint, request, jsonify
from playerhoods.auth_utils import current_actor, login_required
from playerhoods.errors import MatchError
from playerhoods.services import match_service

matches_bp = Blueprint('matches', __name__)


@matches_bp.errorhandler(MatchError)
def _handle_match_error(error):
    return jsonify(error.to_dict()), error.status_code


def _json_payload():
    data = request.get_json(silent=True)
    return data if data is not None else {}


@matches_bp.route('', methods=['GET'])
def list_matches():
    """List active matches with their formation status."""
    limit = request.args.get('limit', 50, type=int)
    limit = max(1, min(limit or 50, 100))
    return jsonify({'matches': match_service.list_matches(limit=limit)})


@matches_bp.route('', methods=['POST'])
@login_required
def create_match():
    result = match_service.create_match(current_actor(), _json_payload())
    view = match_service.get_match_view(result.match_id, current_actor())
    return jsonify({**result.to_dict(), 'match': view['match']}), 201


@matches_bp.route('/<int:match_id>', methods=['GET'])
@login_required
def get_match(match_id):
    return jsonify(match_service.get_match_view(match_id, current_actor()))


@matches_bp.route('/<int:match_id>/history', methods=['GET'])
@login_required
def get_match_history(match_id):
    return jsonify({
        'match_id': match_id,
        'history': match_service.get_activity_feed(match_id),
    })


@matches_bp.route('/<int:match_id>', methods=['PUT'])
@login_required
def edit_match(match_id):
    """Organizer edits any field; formation is re-evaluated."""
    result = match_service.edit_match(match_id, current_actor(), _json_payload())
    return jsonify(result.to_dict())


@matches_bp.route('/<int:match_id>/cancel', methods=['POST'])
@login_required
def cancel_match(match_id):
    result = match_service.cancel_match(match_id, current_actor())
    return jsonify({**result.to_dict(), 'message': 'Match cancelled'})


@matches_bp.route('/<int:match_id>/signup', methods=['POST'])
@login_required
def signup(match_id):
    result = match_service.signup(match_id, current_actor())
    return jsonify({**result.to_dict(), 'message': 'Signed up, waiting for organizer confirmation'})


@matches_bp.route('/<int:match_id>/withdraw', methods=['POST'])
@login_required
def withdraw(match_id):
    result = match_service.withdraw(match_id, current_actor())
    message = 'Left match' if result.changed else 'Already withdrawn'
    return jsonify({**result.to_dict(), 'message': message})


@matches_bp.route('/<int:match_id>/participants/<int:participant_id>/confirm', methods=['POST'])
@login_required
def confirm_participant(match_id, participant_id):
    result = match_service.organizer_confirm(match_id, participant_id, current_actor())
    return jsonify(result.to_dict())


@matches_bp.route('/<int:match_id>/participants/<int:participant_id>/waitlist', methods=['POST'])
@login_required
def waitlist_participant(match_id, participant_id):
    result = match_service.organizer_waitlist(match_id, participant_id, current_actor())
    return jsonify(result.to_dict())


@matches_bp.route('/<int:match_id>/participants/<int:participant_id>/remove', methods=['POST'])
@login_required
def remove_participant(match_id, participant_id):
    result = match_service.organizer_remove(match_id, participant_id, current_actor())
    return jsonify(result.to_dict())


@matches_bp.route('/<int:match_id>/guests', methods=['POST'])
@login_required
def add_guest(match_id):
    data = _json_payload()
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    result = match_service.add_guest(
        match_id, data.get('email'), data.get('display_name'), current_actor(),
    )
    return jsonify(result.to_dict()), 201


@matches_bp.route('/<int:match_id>/guests/<int:guest_participation_id>', methods=['DELETE'])
@login_required
def remove_guest(match_id, guest_participation_id):
    result = match_service.remove_guest(match_id, guest_participation_id, current_actor())
    return jsonify(result.to_dict())
