from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from rookery.services.sessions.hub import get_hub
from rookery.services.sessions.invites import InviteAlreadyAnswered, InviteNotFound, RecipientNotFound
from rookery.services.sessions.registry import Identity

invites = Blueprint('invites', __name__)


def _me() -> Identity:
    return Identity(id=current_user.id, username=current_user.username)


@invites.route('/invite', methods=['POST'])
@login_required
def send_invite():
    data = request.get_json(silent=True) or {}
    to_user_id = data.get('toUserId')
    room_id = data.get('roomId')
    if not isinstance(to_user_id, int) or isinstance(to_user_id, bool) or not isinstance(room_id, str) or not room_id:
        return jsonify({'error': 'Invalid invite'}), 400
    try:
        invite = get_hub().invites.send(_me(), to_user_id, room_id)
    except RecipientNotFound:
        return jsonify({'error': 'User not found'}), 404
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    return jsonify(invite.to_dict()), 201


@invites.route('/inbox', methods=['GET'])
@login_required
def inbox():
    return jsonify([invite.to_dict() for invite in get_hub().invites.inbox(current_user.id)])


@invites.route('/invite/<string:invite_id>/respond', methods=['POST'])
@login_required
def respond_invite(invite_id):
    data = request.get_json(silent=True) or {}
    try:
        status, room_id = get_hub().invites.respond(invite_id, _me(), data.get('action'))
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    except InviteNotFound:
        return jsonify({'error': 'Invite not found'}), 404
    except InviteAlreadyAnswered as exc:
        return jsonify({'error': f'Invite already {exc.status}'}), 409
    return jsonify({'status': status, 'roomId': room_id})
