from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import select

from peekachoo import db
from peekachoo.errors import NotFoundError
from peekachoo.models import GameSession, PlayerStats, User
from peekachoo.services.scoring.profile import collection, session_history
from peekachoo.services.scoring.ranking import get_rank, percentile, period_rank, ranked_player_count

stats = Blueprint('stats', __name__)

RECENT_SESSIONS = 10
PUBLIC_STAT_KEYS = (
    'highestLevelReached', 'totalLevelsCompleted', 'totalGamesPlayed', 'totalScoreAllTime',
    'bestStreak', 'uniqueCollectiblesRevealed', 'lastPlayedAt',
)


def _collection_total():
    return int(current_app.config.get('COLLECTION_TOTAL', 151))


def _user_summary(user):
    return {
        'id': user.id,
        'username': user.username,
        'displayName': user.display_name or user.username,
        'createdAt': user.created_at.isoformat() if user.created_at else None,
    }


def _global_ranking(user_id):
    rank = get_rank(db.session, user_id)
    total = ranked_player_count(db.session)
    return {'rank': rank, 'total': total, 'percentile': percentile(rank, total)}


@stats.route('/me', methods=['GET'])
@login_required
def get_my_stats():
    row = db.session.get(PlayerStats, current_user.id)
    user = _user_summary(current_user)
    if row is None:
        return jsonify({
            'success': True,
            'data': {
                'user': user,
                'stats': None,
                'rankings': {
                    'global': {'rank': 0, 'total': 0, 'percentile': 0},
                    'weekly': {'rank': 0, 'total': 0},
                },
                'recentGames': [],
            },
        })

    recent = db.session.execute(
        select(GameSession)
        .where(GameSession.user_id == current_user.id)
        .order_by(GameSession.started_at.desc())
        .limit(RECENT_SESSIONS)
    ).scalars()

    payload = row.to_dict()
    payload['totalCollectibles'] = _collection_total()
    return jsonify({
        'success': True,
        'data': {
            'user': user,
            'stats': payload,
            'rankings': {
                'global': _global_ranking(current_user.id),
                'weekly': period_rank(db.session, current_user.id, 'weekly'),
            },
            'recentGames': [s.to_dict() for s in recent],
        },
    })


@stats.route('/player/<int:user_id>', methods=['GET'])
@login_required
def get_player_stats(user_id):
    """Public subset of another player's stats."""
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError('Player not found')
    row = db.session.get(PlayerStats, user_id)
    if row is None:
        return jsonify({
            'success': True,
            'data': {
                'user': _user_summary(user),
                'stats': None,
                'rankings': {'global': {'rank': 0, 'total': 0, 'percentile': 0}},
            },
        })

    full = row.to_dict()
    public = {key: full[key] for key in PUBLIC_STAT_KEYS}
    public['totalCollectibles'] = _collection_total()
    return jsonify({
        'success': True,
        'data': {
            'user': _user_summary(user),
            'stats': public,
            'rankings': {'global': _global_ranking(user_id)},
        },
    })


@stats.route('/history', methods=['GET'])
@login_required
def get_history():
    history = session_history(
        db.session,
        current_user.id,
        limit=request.args.get('limit', 20),
        offset=request.args.get('offset', 0),
        game_id=request.args.get('gameId'),
    )
    return jsonify({'success': True, 'data': history})


@stats.route('/collection', methods=['GET'])
@login_required
def get_collection():
    data = collection(
        db.session,
        current_user.id,
        total=_collection_total(),
        filter_by=request.args.get('filter', 'all'),
        sort_by=request.args.get('sortBy', 'id'),
        order=request.args.get('order', 'asc'),
    )
    return jsonify({'success': True, 'data': data})
