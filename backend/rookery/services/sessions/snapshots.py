import time
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rookery import db
from rookery.models import RoomSnapshot


def _identity(user_id, username) -> Optional[dict]:
    return {'id': user_id, 'username': username} if user_id else None


def load_snapshot(room_id: str) -> Optional[dict]:
    """Read a room's persisted state, or None when there is none (or the read fails)."""
    try:
        row = db.session.get(RoomSnapshot, room_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[snapshot-load-failed] room={room_id}: {exc}")
        return None
    if row is None:
        return None
    return {
        'room_id': row.room_id,
        'phase': row.phase,
        'white': _identity(row.white_id, row.white_username),
        'black': _identity(row.black_id, row.black_username),
        'white_player': _identity(row.white_player_id, row.white_player_username),
        'black_player': _identity(row.black_player_id, row.black_player_username),
        'position': row.position,
        'started': bool(row.started),
        'game_number': row.game_number or 0,
        'finished': bool(row.finished),
        'revision': row.revision or 0,
    }


def _row_values(data: dict) -> dict:
    white = data.get('white') or {}
    black = data.get('black') or {}
    white_player = data.get('white_player') or {}
    black_player = data.get('black_player') or {}
    return {
        'phase': data.get('phase') or 'empty',
        'white_id': white.get('id'),
        'white_username': white.get('username'),
        'black_id': black.get('id'),
        'black_username': black.get('username'),
        'white_player_id': white_player.get('id'),
        'white_player_username': white_player.get('username'),
        'black_player_id': black_player.get('id'),
        'black_player_username': black_player.get('username'),
        'position': data.get('position'),
        'started': bool(data.get('started')),
        'game_number': int(data.get('game_number') or 0),
        'finished': bool(data.get('finished')),
        'revision': int(data.get('revision') or 0),
        'updated_at': time.time(),
    }


def _write_if_newer(room_id: str, values: dict) -> bool:
    updated = RoomSnapshot.query.filter(
        RoomSnapshot.room_id == room_id,
        RoomSnapshot.revision < values['revision'],
    ).update(values, synchronize_session=False)
    if not updated:
        if db.session.get(RoomSnapshot, room_id) is not None:
            # A later revision is already stored
            db.session.rollback()
            return False
        db.session.add(RoomSnapshot(room_id=room_id, **values))
    db.session.commit()
    return True


def save_snapshot(data: dict) -> bool:
    """Store a room snapshot unless a newer revision is already stored.

    Writes may finish out of order; the highest revision wins. Failures are
    logged and play continues in memory.
    """
    room_id = data['room_id']
    values = _row_values(data)
    try:
        try:
            written = _write_if_newer(room_id, values)
        except IntegrityError:
            # Another write created the row first; compare revisions against it
            db.session.rollback()
            written = _write_if_newer(room_id, values)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[snapshot-save-failed] room={room_id}: {exc}")
        return False
    if not written:
        current_app.logger.debug(f"[snapshot-stale] room={room_id} revision={values['revision']}")
    return True


def snapshot_exists(room_id: str) -> bool:
    return db.session.get(RoomSnapshot, room_id) is not None
