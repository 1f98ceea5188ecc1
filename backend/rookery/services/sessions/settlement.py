from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rookery import db
from rookery.models import FinishedGame, User


def _apply_result(user_id: int, rating: int = 0, wins: int = 0, losses: int = 0, draws: int = 0) -> None:
    # Column arithmetic keeps concurrent settlements from other rooms from overwriting each other
    User.query.filter_by(id=user_id).update({
        User.rating: User.rating + rating,
        User.games_played: User.games_played + 1,
        User.wins: User.wins + wins,
        User.losses: User.losses + losses,
        User.draws: User.draws + draws,
    }, synchronize_session=False)


def settle_game(room_id: str, game_number: int, white_id: int, black_id: int, result: str,
                winner_seat: Optional[str] = None, position: Optional[str] = None,
                win_increment: Optional[int] = None, draw_increment: Optional[int] = None) -> Optional[FinishedGame]:
    """Record a finished game and update both players' counters.

    Winner: +win_increment rating, +1 win. Loser: +1 loss, rating unchanged.
    No winner seat means a draw: +1 draw each and +draw_increment rating.
    Both players get +1 games played.

    Applied at most once per (room_id, game_number); a repeat returns None.
    Store failures are logged and rolled back, and also return None.
    """
    cfg = current_app.config
    if win_increment is None:
        win_increment = int(cfg.get('WIN_RATING_INCREMENT', 3))
    if draw_increment is None:
        draw_increment = int(cfg.get('DRAW_RATING_INCREMENT', 0))

    try:
        if FinishedGame.query.filter_by(room_id=room_id, game_number=game_number).first():
            current_app.logger.info(f"[settle-dup] room={room_id} game={game_number} already settled")
            return None

        record = FinishedGame(
            room_id=room_id,
            game_number=game_number,
            white_player_id=white_id,
            black_player_id=black_id,
            position=position or '',
            result=result,
            winner_seat=winner_seat,
        )
        db.session.add(record)
        db.session.flush()
        if winner_seat == 'w':
            _apply_result(white_id, rating=win_increment, wins=1)
            _apply_result(black_id, losses=1)
        elif winner_seat == 'b':
            _apply_result(black_id, rating=win_increment, wins=1)
            _apply_result(white_id, losses=1)
        else:
            _apply_result(white_id, rating=draw_increment, draws=1)
            _apply_result(black_id, rating=draw_increment, draws=1)
        db.session.commit()
    except IntegrityError:
        # Another report for the same game won the race
        db.session.rollback()
        current_app.logger.info(f"[settle-dup] room={room_id} game={game_number} lost race")
        return None
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[settle-failed] room={room_id} game={game_number}: {exc}")
        return None

    current_app.logger.info(
        f"[settle] room={room_id} game={game_number} white={white_id} black={black_id} winner={winner_seat or 'draw'}"
    )
    return record
