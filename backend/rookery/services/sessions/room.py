"""Per-room session state machine.

One RoomCoordinator exists per room id. It owns seat assignment, the
position snapshot, the phase and the fan-out of events to every connection
in the room. Each coordinator serialises its own events with its own lock,
so rooms never contend with each other.

Moves and results reported by clients are trusted as-is: the coordinator
relays and persists positions, it does not check them against the rules.
"""

import logging
import random
import string
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .registry import Identity

WHITE = 'w'
BLACK = 'b'
SPECTATOR = 's'
SEATS = (WHITE, BLACK)

EMPTY = 'empty'
WAITING = 'waiting'
ACTIVE = 'active'
FINISHED = 'finished'

Send = Callable[[str, str, dict], None]


@dataclass
class Seat:
    sid: str
    identity: Optional[Identity] = None


def _identity_from(data) -> Optional[Identity]:
    if not data or data.get('id') is None:
        return None
    return Identity(id=int(data['id']), username=data.get('username') or '')


class RoomCoordinator:

    def __init__(self, room_id: str, send: Send, persist: Optional[Callable[[dict], None]] = None,
                 settle: Optional[Callable[[dict], None]] = None, snapshot: Optional[dict] = None,
                 logger: Optional[logging.Logger] = None, default_promotion: str = 'q') -> None:
        self.room_id = room_id
        self._send = send
        self._persist = persist
        self._settle = settle
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self.default_promotion = default_promotion
        self.seats: Dict[str, Optional[Seat]] = {WHITE: None, BLACK: None}
        self.spectators: List[str] = []
        # Identities that started the current game number; kept when a seat empties
        self.players: Dict[str, Optional[Identity]] = {WHITE: None, BLACK: None}
        self.position: Optional[str] = None
        self.started = False
        self.finished = False
        self.game_number = 0
        # Bumped on every persisted change; the store keeps the highest one
        self.revision = 0
        self.phase = EMPTY
        if snapshot:
            self._restore(snapshot)

    # ---- membership ----

    def members(self) -> List[str]:
        with self._lock:
            seated = [seat.sid for seat in self.seats.values() if seat is not None]
            return seated + list(self.spectators)

    def role_of(self, sid: str) -> Optional[str]:
        with self._lock:
            for color in SEATS:
                seat = self.seats[color]
                if seat is not None and seat.sid == sid:
                    return color
            if sid in self.spectators:
                return SPECTATOR
            return None

    def join(self, sid: str, identity: Optional[Identity] = None) -> Optional[str]:
        """Seat or spectate a connection. Returns the role, or None if already in the room."""
        with self._lock:
            if self.role_of(sid) is not None:
                return None
            if self.seats[WHITE] is None:
                role = WHITE
            elif self.seats[BLACK] is None:
                role = BLACK
            else:
                role = SPECTATOR
            if role == SPECTATOR:
                self.spectators.append(sid)
            else:
                self.seats[role] = Seat(sid=sid, identity=identity)
            self._refresh_phase()
            self._logger.info(f"[room-join] room={self.room_id} sid={sid} role={role} phase={self.phase}")

            self._broadcast_stats()
            both_seated = self._both_seated()
            self._deliver(sid, 'role', {'role': role, 'waiting': role != SPECTATOR and not both_seated})
            if self.position is not None:
                self._deliver(sid, 'state', {'position': self.position})
            if role == SPECTATOR:
                for color in SEATS:
                    seat = self.seats[color]
                    if seat is not None and seat.identity is not None:
                        self._deliver(sid, 'player_info', dict(seat=color, **seat.identity.to_dict()))
            if both_seated and not self.started:
                self._start()
            self._save()
            return role

    def leave(self, sid: str) -> bool:
        """Drop a connection from the room. Safe to call more than once."""
        with self._lock:
            role = self.role_of(sid)
            if role is None:
                return False
            if role == SPECTATOR:
                self.spectators.remove(sid)
            else:
                self.seats[role] = None
                self.started = False
            self._refresh_phase()
            self._logger.info(f"[room-leave] room={self.room_id} sid={sid} role={role} phase={self.phase}")
            self._broadcast_stats()
            if role != SPECTATOR:
                self._save()
            return True

    # ---- game events ----

    def move(self, sid: str, origin: str, target: str, resulting_position: str,
             promotion: Optional[str] = None) -> bool:
        with self._lock:
            if self.role_of(sid) not in SEATS or not self._in_play():
                return False
            self.position = resulting_position
            self._broadcast('move', {
                'from': origin,
                'to': target,
                'promotion': promotion or self.default_promotion,
                'position': resulting_position,
            }, exclude=sid)
            self._save()
            return True

    def chat(self, sid: str, text: str, sender: str) -> bool:
        with self._lock:
            if self.role_of(sid) is None:
                return False
            self._broadcast('chat', {'text': text, 'sender': sender}, exclude=sid)
            return True

    def draw_request(self, sid: str, sender: str) -> bool:
        with self._lock:
            if self.role_of(sid) not in SEATS:
                return False
            self._broadcast('draw_request', {'sender': sender}, exclude=sid)
            return True

    def draw_respond(self, sid: str, accepted: bool) -> bool:
        with self._lock:
            if self.role_of(sid) not in SEATS:
                return False
            # The requester learns the answer too
            self._broadcast('draw_respond', {'accepted': bool(accepted)})
            return True

    def voice_signal(self, sid: str, signal, sender_id=None) -> bool:
        with self._lock:
            if self.role_of(sid) is None:
                return False
            self._broadcast('voice_signal', {'signal': signal, 'senderId': sender_id}, exclude=sid)
            return True

    def game_over(self, sid: str, result: str, winner_seat: Optional[str] = None) -> bool:
        """Finish the current game. Returns True only for the report that finished it."""
        with self._lock:
            if self.role_of(sid) not in SEATS:
                return False
            finished_now = self._in_play()
            if finished_now:
                self.finished = True
                self._refresh_phase()
                self._logger.info(
                    f"[room-finish] room={self.room_id} game={self.game_number} result={result} winner={winner_seat}"
                )
            self._broadcast('game_over', {'result': result}, exclude=sid)
            if finished_now:
                self._schedule_settlement(result, winner_seat if winner_seat in SEATS else None)
                self._save()
            return finished_now

    def rematch(self, sid: str) -> bool:
        with self._lock:
            if self.role_of(sid) not in SEATS or not self.finished or not self._both_seated():
                return False
            self.started = False
            self._start()
            self._save()
            return True

    # ---- views ----

    def snapshot(self) -> dict:
        """Persisted form: current seat identities plus the current game's players."""
        with self._lock:
            return {
                'room_id': self.room_id,
                'phase': self.phase,
                'white': self._seat_identity(WHITE),
                'black': self._seat_identity(BLACK),
                'white_player': self.players[WHITE].to_dict() if self.players[WHITE] else None,
                'black_player': self.players[BLACK].to_dict() if self.players[BLACK] else None,
                'position': self.position,
                'started': self.started,
                'game_number': self.game_number,
                'finished': self.finished,
                'revision': self.revision,
            }

    def describe(self) -> dict:
        with self._lock:
            seats = {}
            for color in SEATS:
                seat = self.seats[color]
                seats[color] = {
                    'occupied': seat is not None,
                    'player': seat.identity.to_dict() if seat is not None and seat.identity else None,
                }
            return {
                'roomId': self.room_id,
                'phase': self.phase,
                'connectionCount': len(self.members()),
                'seats': seats,
                'spectators': len(self.spectators),
                'position': self.position,
                'gameNumber': self.game_number,
                'started': self.started,
            }

    # ---- internals ----

    def _seat_identity(self, color: str) -> Optional[dict]:
        seat = self.seats[color]
        if seat is None or seat.identity is None:
            return None
        return seat.identity.to_dict()

    def _both_seated(self) -> bool:
        return self.seats[WHITE] is not None and self.seats[BLACK] is not None

    def _in_play(self) -> bool:
        return self.game_number > 0 and not self.finished

    def _refresh_phase(self) -> None:
        if self.seats[WHITE] is None and self.seats[BLACK] is None:
            self.phase = EMPTY
        elif not self.started:
            self.phase = WAITING
        elif self.finished:
            self.phase = FINISHED
        else:
            self.phase = ACTIVE

    def _start(self) -> None:
        white, black = self.seats[WHITE], self.seats[BLACK]
        if self.finished or self.game_number == 0:
            if self.finished:
                self.position = None
            self.game_number += 1
            self.finished = False
        self.started = True
        self.players = {WHITE: white.identity, BLACK: black.identity}
        self._refresh_phase()
        self._logger.info(f"[room-start] room={self.room_id} game={self.game_number}")
        if white.identity is not None and black.identity is not None:
            self._deliver(white.sid, 'opponent_info', black.identity.to_dict())
            self._deliver(black.sid, 'opponent_info', white.identity.to_dict())
        self._deliver(white.sid, 'start_game', {'seat': WHITE})
        self._deliver(black.sid, 'start_game', {'seat': BLACK})

    def _schedule_settlement(self, result: str, winner_seat: Optional[str]) -> None:
        white, black = self.players[WHITE], self.players[BLACK]
        if self._settle is None:
            self._logger.info(f"[settle-skip] room={self.room_id} game={self.game_number} no settlement configured")
            return
        if white is None or black is None:
            self._logger.info(f"[settle-skip] room={self.room_id} game={self.game_number} anonymous seat")
            return
        if white.id == black.id:
            self._logger.info(f"[settle-skip] room={self.room_id} game={self.game_number} user={white.id} held both seats")
            return
        try:
            self._settle({
                'room_id': self.room_id,
                'game_number': self.game_number,
                'white_id': white.id,
                'black_id': black.id,
                'result': result,
                'winner_seat': winner_seat,
                'position': self.position,
            })
        except Exception as exc:
            self._logger.error(f"[settle-failed] room={self.room_id} game={self.game_number}: {exc}")

    def _restore(self, snapshot: dict) -> None:
        self.position = snapshot.get('position')
        self.game_number = int(snapshot.get('game_number') or 0)
        self.finished = bool(snapshot.get('finished'))
        self.revision = int(snapshot.get('revision') or 0)
        self.players = {
            WHITE: _identity_from(snapshot.get('white_player') or snapshot.get('white')),
            BLACK: _identity_from(snapshot.get('black_player') or snapshot.get('black')),
        }
        # Connections are not persisted, so a rehydrated room starts with empty seats
        self.started = False
        self.phase = EMPTY

    def _save(self) -> None:
        if self._persist is None:
            return
        self.revision += 1
        try:
            self._persist(self.snapshot())
        except Exception as exc:
            self._logger.error(f"[room-persist-failed] room={self.room_id} revision={self.revision}: {exc}")

    def _deliver(self, sid: str, event: str, payload: dict) -> bool:
        try:
            self._send(sid, event, payload)
            return True
        except Exception as exc:
            self._logger.warning(f"[room-send-failed] room={self.room_id} sid={sid} event={event}: {exc}")
            return False

    def _broadcast(self, event: str, payload: dict, exclude: Optional[str] = None) -> None:
        recipients = [sid for sid in self.members() if sid != exclude]
        for sid in recipients:
            self._deliver(sid, event, payload)

    def _broadcast_stats(self) -> None:
        self._broadcast('stats', {'connectionCount': len(self.members())})


class RoomDirectory:
    """Locates the coordinator for a room id, creating it on first use.

    The directory lock covers lookup and creation only; events are
    serialised inside each coordinator.
    """

    def __init__(self, factory: Callable[[str], RoomCoordinator], id_length: int = 7,
                 exists: Optional[Callable[[str], bool]] = None) -> None:
        self._factory = factory
        self._id_length = id_length
        self._exists = exists
        self._rooms: Dict[str, RoomCoordinator] = {}
        self._lock = threading.Lock()

    def get(self, room_id: str) -> Optional[RoomCoordinator]:
        with self._lock:
            return self._rooms.get(room_id)

    def get_or_create(self, room_id: str) -> RoomCoordinator:
        with self._lock:
            room = self._rooms.get(room_id)
        if room is not None:
            return room
        # Rehydration may hit the store; build outside the lock and keep the first one registered
        created = self._factory(room_id)
        with self._lock:
            return self._rooms.setdefault(room_id, created)

    def mint_room_id(self) -> str:
        """Generate an unused room id."""
        while True:
            code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=self._id_length))
            if code in self:
                continue
            if self._exists is not None and self._exists(code):
                continue
            return code

    def __contains__(self, room_id) -> bool:
        with self._lock:
            return room_id in self._rooms

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)
