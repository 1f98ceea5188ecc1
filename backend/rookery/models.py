from rookery import db, bcrypt
from flask_login import UserMixin
import time
import uuid


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    email = db.Column(db.String(254), nullable=True)
    rating = db.Column(db.Integer, nullable=False, default=0, index=True)
    games_played = db.Column(db.Integer, nullable=False, default=0)
    wins = db.Column(db.Integer, nullable=False, default=0)
    losses = db.Column(db.Integer, nullable=False, default=0)
    draws = db.Column(db.Integer, nullable=False, default=0)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'rating': self.rating or 0,
            'gamesPlayed': self.games_played or 0,
            'wins': self.wins or 0,
            'losses': self.losses or 0,
            'draws': self.draws or 0,
        }


class FinishedGame(db.Model):
    """One settled game. (room_id, game_number) identifies a game instance."""
    __tablename__ = 'finished_game'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'game_number', name='uq_finished_game_room_number'),
    )
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.String(64), nullable=False, index=True)
    game_number = db.Column(db.Integer, nullable=False, default=1)
    white_player_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, index=True)
    black_player_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, index=True)
    position = db.Column(db.Text, nullable=True)
    result = db.Column(db.String(128), nullable=True)
    winner_seat = db.Column(db.String(1), nullable=True)
    created_at = db.Column(db.Float, nullable=False, default=time.time)

    def to_dict(self):
        return {
            'id': self.id,
            'roomId': self.room_id,
            'gameNumber': self.game_number,
            'whitePlayerId': self.white_player_id,
            'blackPlayerId': self.black_player_id,
            'position': self.position,
            'result': self.result,
            'winnerSeat': self.winner_seat,
            'createdAt': self.created_at,
        }


def generate_invite_id():
    return uuid.uuid4().hex[:8]


class Invite(db.Model):
    __tablename__ = 'invite'
    id = db.Column(db.String(8), primary_key=True, default=generate_invite_id)
    from_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    from_username = db.Column(db.String(64), nullable=False)
    to_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    room_id = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    status = db.Column(db.String(16), nullable=False, default='pending')  # pending, accepted, declined

    def to_dict(self):
        return {
            'id': self.id,
            'fromUserId': self.from_user_id,
            'fromUsername': self.from_username,
            'toUserId': self.to_user_id,
            'roomId': self.room_id,
            'createdAt': self.created_at,
            'status': self.status,
        }


class RoomSnapshot(db.Model):
    """Last known state of a room, used to rehydrate its coordinator."""
    __tablename__ = 'room_snapshot'
    room_id = db.Column(db.String(64), primary_key=True)
    phase = db.Column(db.String(16), nullable=False, default='empty')  # empty, waiting, active, finished
    white_id = db.Column(db.Integer, nullable=True)
    white_username = db.Column(db.String(64), nullable=True)
    black_id = db.Column(db.Integer, nullable=True)
    black_username = db.Column(db.String(64), nullable=True)
    # Players of the current game number; kept when their seat empties
    white_player_id = db.Column(db.Integer, nullable=True)
    white_player_username = db.Column(db.String(64), nullable=True)
    black_player_id = db.Column(db.Integer, nullable=True)
    black_player_username = db.Column(db.String(64), nullable=True)
    position = db.Column(db.Text, nullable=True)
    started = db.Column(db.Boolean, nullable=False, default=False)
    game_number = db.Column(db.Integer, nullable=False, default=0)
    finished = db.Column(db.Boolean, nullable=False, default=False)
    revision = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.Float, nullable=False, default=time.time)

    def to_dict(self):
        return {
            'roomId': self.room_id,
            'phase': self.phase,
            'white': {'id': self.white_id, 'username': self.white_username} if self.white_id else None,
            'black': {'id': self.black_id, 'username': self.black_username} if self.black_id else None,
            'players': {
                'w': {'id': self.white_player_id, 'username': self.white_player_username} if self.white_player_id else None,
                'b': {'id': self.black_player_id, 'username': self.black_player_username} if self.black_player_id else None,
            },
            'position': self.position,
            'started': bool(self.started),
            'gameNumber': self.game_number or 0,
            'finished': bool(self.finished),
        }
