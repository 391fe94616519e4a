from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from peekachoo import db
from peekachoo.errors import ValidationError
from peekachoo.notifications import dispatch_events
from peekachoo.services.scoring import end_session, start_session, submit_score
from peekachoo.services.scoring.ranking import around_me, game_leaderboard, global_leaderboard, level_leaderboard
from peekachoo.socketio_events import is_user_online

leaderboard = Blueprint('leaderboard', __name__)

REQUIRED_SCORE_FIELDS = ('sessionId', 'level', 'territoryPercentage', 'timeTakenSeconds')


def _mark_online(entries):
    for entry in entries:
        entry['isOnline'] = is_user_online(entry['userId'])
    return entries


@leaderboard.route('/scores', methods=['POST'])
@login_required
def submit():
    data = request.get_json(silent=True) or {}
    missing = [f for f in REQUIRED_SCORE_FIELDS if data.get(f) is None]
    if missing:
        raise ValidationError('Missing required fields', details={'fields': missing})

    result = submit_score(
        db.session,
        current_user.id,
        session_id=data['sessionId'],
        level=data['level'],
        coverage_percent=data['territoryPercentage'],
        time_taken_seconds=data['timeTakenSeconds'],
        lives_remaining=data.get('livesRemaining', 0),
        quiz_attempts=data.get('quizAttempts', 1),
        collectible_id=data.get('pokemonId'),
        collectible_name=data.get('pokemonName'),
        game_id=data.get('gameId'),
    )
    # Outside the transaction: delivery problems never undo the score
    dispatch_events(result.events)
    return jsonify({'success': True, 'data': result.to_dict()}), 201


@leaderboard.route('/sessions', methods=['POST'])
@login_required
def create_session():
    data = request.get_json(silent=True) or {}
    game_session = start_session(db.session, current_user.id, game_id=data.get('gameId'))
    return jsonify({'success': True, 'data': {'sessionId': game_session.id}}), 201


@leaderboard.route('/sessions/<string:session_id>/end', methods=['POST'])
@login_required
def close_session(session_id):
    game_session = end_session(db.session, current_user.id, session_id)
    return jsonify({'success': True, 'data': game_session.to_dict()})


@leaderboard.route('/global', methods=['GET'])
@login_required
def get_global():
    board = global_leaderboard(
        db.session,
        limit=request.args.get('limit', 50),
        offset=request.args.get('offset', 0),
        sort_by=request.args.get('sortBy', 'score'),
        period=request.args.get('period', 'all_time'),
    )
    _mark_online(board['leaderboard'])
    return jsonify({'success': True, 'data': board})


@leaderboard.route('/level/<level>', methods=['GET'])
@login_required
def get_level(level):
    try:
        level_num = int(level)
    except ValueError:
        level_num = 0
    if level_num < 1:
        raise ValidationError('Invalid level')
    board = level_leaderboard(
        db.session,
        level_num,
        limit=request.args.get('limit', 50),
        offset=request.args.get('offset', 0),
    )
    return jsonify({'success': True, 'data': board})


@leaderboard.route('/around-me', methods=['GET'])
@login_required
def get_around_me():
    window = around_me(db.session, current_user.id, window=request.args.get('range', 5),
                        period=request.args.get('period', 'all_time'))
    _mark_online(window['above'])
    _mark_online(window['below'])
    return jsonify({'success': True, 'data': window})


@leaderboard.route('/game/<string:game_id>', methods=['GET'])
@login_required
def get_game(game_id):
    board = game_leaderboard(
        db.session,
        game_id,
        limit=request.args.get('limit', 50),
        offset=request.args.get('offset', 0),
    )
    return jsonify({'success': True, 'data': board})
