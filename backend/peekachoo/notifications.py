from flask import current_app

from peekachoo import socketio
from peekachoo.services.scoring.submission import TOP_RANK_BROADCAST

NAMESPACE = '/ws'
GLOBAL_ROOM = 'global'
# Scores ranked at or above this are announced to everyone, as are personal bests
LEADERBOARD_BROADCAST_RANK = 100


def user_room(user_id) -> str:
    return f"user:{user_id}"


def dispatch_events(events) -> int:
    """Push submission events to connected clients. Returns how many were delivered.

    Called after the submission has committed. A failed emit is logged and
    skipped; it never affects the stored score.
    """
    delivered = 0
    for event in events:
        payload = event.to_dict()
        try:
            socketio.emit(event.type, payload, to=user_room(event.user_id), namespace=NAMESPACE)
            rank = payload.get('rank')
            if event.type == 'score_submitted' and (
                (rank is not None and rank <= LEADERBOARD_BROADCAST_RANK) or payload.get('isNewPersonalBest')
            ):
                socketio.emit(
                    'leaderboard_update',
                    {
                        'userId': event.user_id,
                        'score': payload.get('score'),
                        'level': payload.get('level'),
                        'rank': rank,
                    },
                    to=GLOBAL_ROOM,
                    namespace=NAMESPACE,
                )
            if event.type == 'rank_change' and payload['newRank'] <= TOP_RANK_BROADCAST:
                socketio.emit(
                    'top_rank_change',
                    {'userId': event.user_id, 'newRank': payload['newRank']},
                    to=GLOBAL_ROOM,
                    namespace=NAMESPACE,
                )
            delivered += 1
        except Exception as exc:
            current_app.logger.warning(f"[notify-fail] type={event.type} user={event.user_id} {exc}")
    return delivered
