from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from peekachoo import db
from peekachoo.services.scoring.achievements import (
    achievement_detail, achievements_in_category, category_summary, list_player_achievements,
)

achievements = Blueprint('achievements', __name__)


@achievements.route('', methods=['GET'])
@login_required
def get_achievements():
    """Full catalog split into unlocked and locked for the caller."""
    return jsonify({'success': True, 'data': list_player_achievements(db.session, current_user.id)})


@achievements.route('/categories', methods=['GET'])
@login_required
def get_categories():
    return jsonify({'success': True, 'data': {'categories': category_summary(db.session, current_user.id)}})


@achievements.route('/category/<string:category>', methods=['GET'])
@login_required
def get_category(category):
    return jsonify({'success': True, 'data': achievements_in_category(db.session, current_user.id, category)})


@achievements.route('/<string:achievement_id>', methods=['GET'])
@login_required
def get_achievement(achievement_id):
    return jsonify({'success': True, 'data': achievement_detail(db.session, current_user.id, achievement_id)})
