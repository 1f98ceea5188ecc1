from flask import Blueprint, jsonify

from rookery import db
from rookery.models import RoomSnapshot
from rookery.services.sessions.hub import get_hub

rooms = Blueprint('rooms', __name__)


@rooms.route('', methods=['POST'])
def create_room():
    """Mint a fresh room id for a private game; the room itself is created on first join."""
    room_id = get_hub().rooms.mint_room_id()
    return jsonify({'roomId': room_id}), 201


@rooms.route('/<string:room_id>', methods=['GET'])
def get_room_state(room_id):
    room = get_hub().rooms.get(room_id)
    if room is not None:
        payload = room.describe()
        payload['live'] = True
        return jsonify(payload)

    snapshot = db.session.get(RoomSnapshot, room_id)
    if snapshot is None:
        return jsonify({'error': 'Room not found'}), 404
    payload = snapshot.to_dict()
    payload['live'] = False
    return jsonify(payload)
