from functools import partial
from typing import Optional

from flask import current_app

from .invites import InviteRelay
from .matchmaking import MatchmakingQueue
from .registry import Binding, ConnectionRegistry
from .room import RoomCoordinator, RoomDirectory
from .settlement import settle_game
from .snapshots import load_snapshot, save_snapshot, snapshot_exists

ROOM_NAMESPACE = '/room'
MATCH_NAMESPACE = '/match'
GLOBAL_NAMESPACE = '/global'


class SessionHub:
    """Per-application home of the registry, rooms, queue and invite relay."""

    def __init__(self, app, socketio) -> None:
        self.app = app
        self.socketio = socketio
        self.registry = ConnectionRegistry()
        self.rooms = RoomDirectory(
            self._build_room,
            id_length=int(app.config.get('ROOM_ID_LENGTH', 7)),
            exists=self._room_persisted,
        )
        self.matchmaking = MatchmakingQueue(
            send=partial(self.emit, namespace=MATCH_NAMESPACE),
            is_open=self.registry.is_open,
            mint_room_id=self.rooms.mint_room_id,
            logger=app.logger,
        )
        self.invites = InviteRelay(self.registry, self.push, logger=app.logger)

    def emit(self, sid: str, event: str, payload: dict, namespace: str = ROOM_NAMESPACE) -> None:
        self.socketio.emit(event, payload, to=sid, namespace=namespace)

    def push(self, binding: Binding, event: str, payload: dict) -> None:
        self.emit(binding.sid, event, payload, namespace=binding.namespace)

    def defer(self, fn, *args, **kwargs) -> None:
        """Run a store write off the event path.

        Runs inline under TESTING unless ENABLE_BACKGROUND_WRITES_IN_TESTS is set.
        """
        app = self.app

        def _runner():
            with app.app_context():
                fn(*args, **kwargs)

        if app.config.get('TESTING') and not app.config.get('ENABLE_BACKGROUND_WRITES_IN_TESTS'):
            _runner()
        else:
            self.socketio.start_background_task(_runner)

    def _build_room(self, room_id: str) -> RoomCoordinator:
        with self.app.app_context():
            snapshot = load_snapshot(room_id)
        if snapshot:
            self.app.logger.info(f"[room-rehydrate] room={room_id} game={snapshot.get('game_number')}")
        return RoomCoordinator(
            room_id,
            send=partial(self.emit, namespace=ROOM_NAMESPACE),
            persist=partial(self.defer, save_snapshot),
            settle=self._settle,
            snapshot=snapshot,
            logger=self.app.logger,
            default_promotion=self.app.config.get('DEFAULT_PROMOTION', 'q'),
        )

    def _settle(self, data: dict) -> None:
        self.defer(settle_game, **data)

    def _room_persisted(self, room_id: str) -> bool:
        with self.app.app_context():
            return snapshot_exists(room_id)


def get_hub(app=None) -> Optional[SessionHub]:
    app = app or current_app
    return app.extensions.get('sessions')
