from flask import current_app, request
from flask_login import current_user
from typing import Optional, Tuple

from rookery import socketio
from rookery.services.sessions.hub import GLOBAL_NAMESPACE, MATCH_NAMESPACE, ROOM_NAMESPACE, get_hub
from rookery.services.sessions.registry import Identity
from rookery.services.sessions.room import RoomCoordinator

MAX_ROOM_ID_LENGTH = 64


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _current_identity() -> Optional[Identity]:
    if current_user and current_user.is_authenticated:
        return Identity(id=current_user.id, username=current_user.username)
    return None


def _drop(event: str) -> None:
    current_app.logger.debug(f"[frame-dropped] event={event} sid={_get_sid()}")


def _room_for(event: str, data) -> Tuple[Optional[RoomCoordinator], dict]:
    """Resolve the room a frame refers to. Unknown rooms resolve to None."""
    if not isinstance(data, dict):
        _drop(event)
        return None, {}
    room_id = data.get('roomId')
    if not isinstance(room_id, str) or not room_id:
        _drop(event)
        return None, data
    return get_hub().rooms.get(room_id), data


def _release(sid: str) -> None:
    """Connection cleanup; runs once per sid however the connection ended."""
    hub = get_hub()
    binding = hub.registry.unbind(sid)
    if binding is None:
        return
    hub.matchmaking.cancel(sid)
    if binding.room_id:
        room = hub.rooms.get(binding.room_id)
        if room is not None:
            room.leave(sid)
    current_app.logger.info(f"[disconnect] sid={sid} namespace={binding.namespace} room={binding.room_id}")


def handle_ping(data=None):
    socketio.emit('pong', data or {}, to=_get_sid(), namespace=request.namespace)


# ---- room namespace ----

def handle_room_connect(auth=None):
    get_hub().registry.bind(_get_sid(), ROOM_NAMESPACE, _current_identity())


def handle_disconnect(reason=None):
    _release(_get_sid())


def handle_join(data):
    if not isinstance(data, dict):
        return _drop('join')
    room_id = data.get('roomId')
    if not isinstance(room_id, str) or not room_id.strip() or len(room_id.strip()) > MAX_ROOM_ID_LENGTH:
        return _drop('join')
    room_id = room_id.strip()
    hub = get_hub()
    sid = _get_sid()
    binding = hub.registry.get(sid)
    if binding is None:
        return
    previous = hub.registry.attach_room(sid, room_id)
    if previous and previous != room_id:
        old_room = hub.rooms.get(previous)
        if old_room is not None:
            old_room.leave(sid)
    hub.rooms.get_or_create(room_id).join(sid, binding.identity)


def handle_move(data):
    room, data = _room_for('move', data)
    if room is None:
        return
    origin, target, position = data.get('from'), data.get('to'), data.get('resultingPosition')
    if not all(isinstance(value, str) for value in (origin, target, position)):
        return _drop('move')
    promotion = data.get('promotion')
    room.move(_get_sid(), origin, target, position, promotion if isinstance(promotion, str) else None)


def handle_chat(data):
    room, data = _room_for('chat', data)
    if room is None:
        return
    text, sender = data.get('text'), data.get('sender')
    if not isinstance(text, str) or not isinstance(sender, str):
        return _drop('chat')
    room.chat(_get_sid(), text, sender)


def handle_draw_request(data):
    room, data = _room_for('draw_request', data)
    if room is None:
        return
    sender = data.get('sender')
    if not isinstance(sender, str):
        return _drop('draw_request')
    room.draw_request(_get_sid(), sender)


def handle_draw_respond(data):
    room, data = _room_for('draw_respond', data)
    if room is None:
        return
    room.draw_respond(_get_sid(), bool(data.get('accepted')))


def handle_game_over(data):
    room, data = _room_for('game_over', data)
    if room is None:
        return
    result = data.get('result')
    if not isinstance(result, str) or not result:
        result = 'draw'
    winner_seat = data.get('winnerSeat')
    room.game_over(_get_sid(), result, winner_seat if winner_seat in ('w', 'b') else None)


def handle_voice_signal(data):
    room, data = _room_for('voice_signal', data)
    if room is None:
        return
    signal = data.get('signal')
    if not signal:
        return _drop('voice_signal')
    room.voice_signal(_get_sid(), signal, data.get('senderId'))


def handle_rematch(data):
    room, data = _room_for('rematch', data)
    if room is None:
        return
    room.rematch(_get_sid())


# ---- matchmaking namespace ----

def handle_match_connect(auth=None):
    get_hub().registry.bind(_get_sid(), MATCH_NAMESPACE, _current_identity())


def handle_find_match(data=None):
    hub = get_hub()
    sid = _get_sid()
    binding = hub.registry.get(sid)
    if binding is None:
        return
    hub.matchmaking.request_match(sid, binding.identity)


# ---- global notification namespace ----

def handle_global_connect(auth=None):
    identity = _current_identity()
    if identity is None:
        # Notifications are per user; anonymous clients have nothing to receive
        return False
    get_hub().registry.bind(_get_sid(), GLOBAL_NAMESPACE, identity)


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the room, matchmaking and global namespaces."""
    socketio.on_event('connect', handle_room_connect, namespace=ROOM_NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=ROOM_NAMESPACE)
    socketio.on_event('join', handle_join, namespace=ROOM_NAMESPACE)
    socketio.on_event('move', handle_move, namespace=ROOM_NAMESPACE)
    socketio.on_event('chat', handle_chat, namespace=ROOM_NAMESPACE)
    socketio.on_event('draw_request', handle_draw_request, namespace=ROOM_NAMESPACE)
    socketio.on_event('draw_respond', handle_draw_respond, namespace=ROOM_NAMESPACE)
    socketio.on_event('game_over', handle_game_over, namespace=ROOM_NAMESPACE)
    socketio.on_event('voice_signal', handle_voice_signal, namespace=ROOM_NAMESPACE)
    socketio.on_event('rematch', handle_rematch, namespace=ROOM_NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=ROOM_NAMESPACE)

    socketio.on_event('connect', handle_match_connect, namespace=MATCH_NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=MATCH_NAMESPACE)
    socketio.on_event('find_match', handle_find_match, namespace=MATCH_NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=MATCH_NAMESPACE)

    socketio.on_event('connect', handle_global_connect, namespace=GLOBAL_NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=GLOBAL_NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=GLOBAL_NAMESPACE)
