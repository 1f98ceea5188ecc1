from rookery import db
from rookery.models import FinishedGame, RoomSnapshot, User


def received(sio, namespace='/room', name=None):
    """Drain a test client's queue into (event, payload) pairs."""
    out = []
    for pkt in sio.get_received(namespace):
        payload = pkt['args'][0] if pkt['args'] else None
        if name is None or pkt['name'] == name:
            out.append((pkt['name'], payload))
    return out


def payloads(events, name):
    return [payload for event, payload in events if event == name]


def join(sio, room_id):
    sio.emit('join', {'roomId': room_id}, namespace='/room')


def test_matchmaking_pairs_two_connections(connect):
    first = connect('/match')
    second = connect('/match')

    first.emit('find_match', namespace='/match')
    assert received(first, '/match', 'match_found') == []

    second.emit('find_match', namespace='/match')
    room_a = payloads(received(first, '/match'), 'match_found')
    room_b = payloads(received(second, '/match'), 'match_found')
    assert len(room_a) == 1
    assert room_a == room_b
    assert len(room_a[0]['roomId']) == 7


def test_disconnected_match_request_is_not_paired(connect):
    gone = connect('/match')
    gone.emit('find_match', namespace='/match')
    gone.disconnect(namespace='/match')

    waiting = connect('/match')
    waiting.emit('find_match', namespace='/match')
    assert received(waiting, '/match', 'match_found') == []


def test_room_session_end_to_end(connect):
    white = connect()
    black = connect()
    join(white, 'ROOMX')
    join(black, 'ROOMX')

    white_events = received(white)
    black_events = received(black)
    assert payloads(white_events, 'start_game') == [{'seat': 'w'}]
    assert payloads(black_events, 'start_game') == [{'seat': 'b'}]
    assert payloads(white_events, 'role') == [{'role': 'w', 'waiting': True}]

    white.emit('move', {'roomId': 'ROOMX', 'from': 'e2', 'to': 'e4', 'resultingPosition': 'P1'},
               namespace='/room')
    assert received(black) == [('move', {'from': 'e2', 'to': 'e4', 'promotion': 'q', 'position': 'P1'})]
    assert received(white) == []

    spectator = connect()
    join(spectator, 'ROOMX')
    spectator_events = received(spectator)
    assert payloads(spectator_events, 'role') == [{'role': 's', 'waiting': False}]
    assert payloads(spectator_events, 'state') == [{'position': 'P1'}]
    assert payloads(received(black), 'stats')[-1] == {'connectionCount': 3}

    # White drops out and a new connection takes the seat back
    white.disconnect(namespace='/room')
    assert payloads(received(black), 'stats')[-1] == {'connectionCount': 2}

    returning = connect()
    join(returning, 'ROOMX')
    returning_events = received(returning)
    assert payloads(returning_events, 'role') == [{'role': 'w', 'waiting': False}]
    assert payloads(returning_events, 'state') == [{'position': 'P1'}]
    assert payloads(returning_events, 'start_game') == [{'seat': 'w'}]
    assert payloads(received(black), 'start_game') == [{'seat': 'b'}]


def test_chat_and_draw_flow(connect):
    white = connect()
    black = connect()
    join(white, 'ROOMD')
    join(black, 'ROOMD')
    received(white)
    received(black)

    white.emit('chat', {'roomId': 'ROOMD', 'text': 'gl', 'sender': 'alice'}, namespace='/room')
    white.emit('draw_request', {'roomId': 'ROOMD', 'sender': 'alice'}, namespace='/room')
    assert received(black) == [('chat', {'text': 'gl', 'sender': 'alice'}), ('draw_request', {'sender': 'alice'})]
    assert received(white) == []

    black.emit('draw_respond', {'roomId': 'ROOMD', 'accepted': False}, namespace='/room')
    assert received(white) == [('draw_respond', {'accepted': False})]
    assert received(black) == [('draw_respond', {'accepted': False})]


def test_malformed_frames_are_dropped(connect):
    sio = connect()
    join(sio, 'ROOMM')
    received(sio)

    sio.emit('move', 'not a dict', namespace='/room')
    sio.emit('move', {'roomId': 'ROOMM', 'from': 1}, namespace='/room')
    sio.emit('chat', {'roomId': 'UNKNOWN', 'text': 'hi', 'sender': 'x'}, namespace='/room')
    sio.emit('join', {'roomId': ''}, namespace='/room')
    sio.emit('join', {'roomId': 'x' * 65}, namespace='/room')

    assert sio.is_connected('/room')
    assert received(sio) == []


def test_ping_answers_pong(connect):
    sio = connect()
    sio.emit('ping', {'n': 1}, namespace='/room')
    assert received(sio) == [('pong', {'n': 1})]


def test_opponent_info_for_logged_in_players(connect, make_user, login_client):
    make_user('alice')
    make_user('bob')
    white = connect(http=login_client('alice'))
    black = connect(http=login_client('bob'))
    join(white, 'ROOMO')
    join(black, 'ROOMO')

    assert payloads(received(white), 'opponent_info') == [{'id': 2, 'username': 'bob'}]
    assert payloads(received(black), 'opponent_info') == [{'id': 1, 'username': 'alice'}]


def test_game_over_settles_ratings_once(flask_app, connect, make_user, login_client):
    alice_id = make_user('alice')
    bob_id = make_user('bob')
    white = connect(http=login_client('alice'))
    black = connect(http=login_client('bob'))
    join(white, 'ROOMG')
    join(black, 'ROOMG')
    white.emit('move', {'roomId': 'ROOMG', 'from': 'f7', 'to': 'f8', 'resultingPosition': 'P9'},
               namespace='/room')
    received(white)
    received(black)

    white.emit('game_over', {'roomId': 'ROOMG', 'result': 'white wins', 'winnerSeat': 'w'}, namespace='/room')
    black.emit('game_over', {'roomId': 'ROOMG', 'result': 'white wins', 'winnerSeat': 'w'}, namespace='/room')
    assert payloads(received(black), 'game_over') == [{'result': 'white wins'}]
    assert payloads(received(white), 'game_over') == [{'result': 'white wins'}]

    with flask_app.app_context():
        alice = db.session.get(User, alice_id)
        bob = db.session.get(User, bob_id)
        assert (alice.rating, alice.wins, alice.games_played) == (3, 1, 1)
        assert (bob.rating, bob.losses, bob.games_played) == (0, 1, 1)
        record = FinishedGame.query.filter_by(room_id='ROOMG').one()
        assert record.game_number == 1
        assert record.position == 'P9'


def test_anonymous_game_over_is_not_settled(flask_app, connect):
    white = connect()
    black = connect()
    join(white, 'ROOMA')
    join(black, 'ROOMA')
    white.emit('game_over', {'roomId': 'ROOMA', 'result': 'draw'}, namespace='/room')
    assert payloads(received(black), 'game_over') == [{'result': 'draw'}]
    with flask_app.app_context():
        assert FinishedGame.query.count() == 0


def test_room_state_is_snapshotted(flask_app, connect):
    white = connect()
    black = connect()
    join(white, 'ROOMS')
    join(black, 'ROOMS')
    white.emit('move', {'roomId': 'ROOMS', 'from': 'd2', 'to': 'd4', 'resultingPosition': 'P2'},
               namespace='/room')

    with flask_app.app_context():
        snapshot = db.session.get(RoomSnapshot, 'ROOMS')
        assert snapshot.position == 'P2'
        assert snapshot.phase == 'active'
        assert snapshot.game_number == 1


def test_room_rehydrates_after_restart(flask_app, hub, connect):
    with flask_app.app_context():
        db.session.add(RoomSnapshot(room_id='ROOMR', phase='active', position='P5',
                                    started=True, game_number=2, finished=False))
        db.session.commit()

    sio = connect()
    join(sio, 'ROOMR')
    events = received(sio)
    assert payloads(events, 'state') == [{'position': 'P5'}]
    assert payloads(events, 'role') == [{'role': 'w', 'waiting': True}]
    assert hub.rooms.get('ROOMR').game_number == 2


def test_global_namespace_rejects_anonymous(connect):
    sio = connect('/global')
    assert not sio.is_connected('/global')


def test_invite_is_pushed_to_recipient(connect, make_user, login_client):
    make_user('alice')
    bob_id = make_user('bob')
    alice = login_client('alice')
    bob = login_client('bob')
    bob_global = connect('/global', http=bob)
    assert bob_global.is_connected('/global')

    res = alice.post('/api/invite', json={'toUserId': bob_id, 'roomId': 'ROOM42'})
    assert res.status_code == 201

    pushed = payloads(received(bob_global, '/global'), 'new_invite')
    assert len(pushed) == 1
    assert pushed[0]['invite']['roomId'] == 'ROOM42'
    assert pushed[0]['invite']['fromUsername'] == 'alice'


def test_game_over_reaches_peer_when_settlement_store_fails(flask_app, connect, make_user, login_client):
    make_user('alice')
    make_user('bob')
    white = connect(http=login_client('alice'))
    black = connect(http=login_client('bob'))
    join(white, 'ROOMF')
    join(black, 'ROOMF')
    received(black)
    with flask_app.app_context():
        FinishedGame.__table__.drop(db.engine)

    white.emit('game_over', {'roomId': 'ROOMF', 'result': 'white wins', 'winnerSeat': 'w'}, namespace='/room')
    assert payloads(received(black), 'game_over') == [{'result': 'white wins'}]
    assert white.is_connected('/room')


def test_background_writes_finishing_out_of_order_keep_latest_state(flask_app, hub, monkeypatch):
    flask_app.config['ENABLE_BACKGROUND_WRITES_IN_TESTS'] = True
    pending = []
    monkeypatch.setattr(hub.socketio, 'start_background_task', lambda fn, *args, **kwargs: pending.append(fn))

    room = hub.rooms.get_or_create('ROOMW')
    room.join('a')
    room.join('b')
    room.move('a', 'e2', 'e4', 'P1')
    room.move('b', 'e7', 'e5', 'P2')
    assert len(pending) == 4

    # Newest write lands first, the rest complete after it
    for task in reversed(pending):
        task()

    with flask_app.app_context():
        snapshot = db.session.get(RoomSnapshot, 'ROOMW')
        assert snapshot.position == 'P2'
        assert snapshot.revision == room.revision
