from flask import current_app

from peekachoo.errors import NotFoundError, ValidationError
from peekachoo.models import NAME_LENGTH, GameSession, utcnow
from .locks import player_transaction
from .submission import load_stats_for_update


def start_session(session, user_id: int, game_id=None, now=None) -> GameSession:
    """Open a play session and count it as a game played."""
    if game_id is not None and (not isinstance(game_id, str) or len(game_id) > NAME_LENGTH):
        raise ValidationError(f'gameId must be a string of at most {NAME_LENGTH} characters')
    now = now or utcnow()
    with player_transaction(session, user_id):
        stats = load_stats_for_update(session, user_id, now)
        stats.total_games_played += 1
        game_session = GameSession(
            user_id=user_id,
            game_id=game_id,
            started_at=now,
            total_score=0,
            levels_completed=0,
            highest_level=0,
            max_streak=0,
        )
        session.add(game_session)
        session.flush()
        session_id = game_session.id
    current_app.logger.info(f"[session-start] user={user_id} session={session_id} game={game_id}")
    return game_session


def end_session(session, user_id: int, session_id: str, now=None) -> GameSession:
    """Close a session and fold its total into the player's best single game.

    Closing twice keeps the first end timestamp.
    """
    now = now or utcnow()
    with player_transaction(session, user_id):
        game_session = session.get(GameSession, session_id)
        if game_session is None or game_session.user_id != user_id:
            raise NotFoundError('Session not found')
        if game_session.ended_at is None:
            game_session.ended_at = now
        stats = load_stats_for_update(session, user_id, now)
        stats.best_single_game_score = max(stats.best_single_game_score, game_session.total_score)
    current_app.logger.info(
        f"[session-end] user={user_id} session={session_id} score={game_session.total_score} "
        f"levels={game_session.levels_completed}"
    )
    return game_session
