from datetime import datetime

import pytest
from sqlalchemy import select

from peekachoo import db
from peekachoo.errors import NotFoundError
from peekachoo.models import Achievement, PlayerAchievement, PlayerStats
from peekachoo.services.scoring.achievements import (
    DEFAULT_CATALOG, achievement_detail, achievements_in_category, category_summary, evaluate,
    list_player_achievements, seed_achievements,
)


def _stats(user_id, **fields):
    stats = PlayerStats.blank(user_id)
    for key, value in fields.items():
        setattr(stats, key, value)
    return stats


def _row(user_id, achievement_id):
    return db.session.execute(
        select(PlayerAchievement).where(
            PlayerAchievement.user_id == user_id,
            PlayerAchievement.achievement_id == achievement_id,
        )
    ).scalar_one_or_none()


def test_seed_is_idempotent(flask_app):
    assert db.session.query(Achievement).count() == len(DEFAULT_CATALOG)
    assert seed_achievements(db.session) == 0


def test_first_completion_unlocks_first_steps(make_user):
    user_id = make_user()
    unlocked = evaluate(db.session, user_id, _stats(user_id, total_levels_completed=1, highest_level_reached=1))
    db.session.commit()
    assert [a.id for a in unlocked] == ['first_level']
    assert _row(user_id, 'first_level').unlocked_at is not None


def test_second_evaluation_unlocks_nothing(make_user):
    user_id = make_user()
    stats = _stats(user_id, total_levels_completed=1, best_streak=3, quiz_correct_total=10)
    first = evaluate(db.session, user_id, stats)
    second = evaluate(db.session, user_id, stats)
    assert {a.id for a in first} == {'first_level', 'streak_3', 'quiz_10'}
    assert second == []


def test_unlock_timestamp_is_never_overwritten(make_user):
    user_id = make_user()
    stamp = datetime(2026, 1, 1, 12, 0, 0)
    evaluate(db.session, user_id, _stats(user_id, total_levels_completed=1), now=stamp)
    evaluate(db.session, user_id, _stats(user_id, total_levels_completed=5), now=datetime(2026, 2, 1))
    db.session.commit()
    assert _row(user_id, 'first_level').unlocked_at == stamp


def test_progress_recorded_for_locked_achievements(make_user):
    user_id = make_user()
    evaluate(db.session, user_id, _stats(user_id, highest_level_reached=3, total_score_all_time=4200))
    db.session.commit()
    level_5 = _row(user_id, 'level_5')
    assert level_5.progress == 3
    assert level_5.unlocked_at is None
    assert _row(user_id, 'score_10k').progress == 4200


def test_results_follow_catalog_order(make_user):
    user_id = make_user()
    unlocked = evaluate(db.session, user_id, _stats(
        user_id,
        total_levels_completed=1,
        highest_level_reached=10,
        total_score_all_time=20000,
        best_streak=5,
    ))
    catalog_ids = [entry['id'] for entry in DEFAULT_CATALOG]
    ids = [a.id for a in unlocked]
    assert ids == sorted(ids, key=catalog_ids.index)
    assert ids == ['first_level', 'level_5', 'level_10', 'streak_3', 'streak_5', 'score_10k']


def test_fastest_level_lower_is_better(make_user):
    user_id = make_user()
    unlocked = evaluate(db.session, user_id, _stats(user_id, fastest_level_seconds=25))
    ids = {a.id for a in unlocked}
    assert 'speed_30' in ids
    assert 'speed_20' not in ids
    assert _row(user_id, 'speed_20').progress == 25


def test_fastest_level_never_unlocks_without_a_time(make_user):
    user_id = make_user()
    unlocked = evaluate(db.session, user_id, _stats(user_id, fastest_level_seconds=None))
    assert not {a.id for a in unlocked} & {'speed_30', 'speed_20'}
    assert _row(user_id, 'speed_30').progress is None


def test_best_coverage_measured_in_percent(make_user):
    user_id = make_user()
    unlocked = evaluate(db.session, user_id, _stats(user_id, best_coverage=0.85))
    assert 'coverage_80' in {a.id for a in unlocked}
    assert _row(user_id, 'coverage_90').progress == 85


def test_unique_collectibles_threshold(make_user):
    user_id = make_user()
    unlocked = evaluate(db.session, user_id, _stats(user_id, unique_collectibles_revealed=10))
    assert 'pokemon_10' in {a.id for a in unlocked}


def test_list_player_achievements_splits_locked_and_unlocked(make_user):
    user_id = make_user()
    evaluate(db.session, user_id, _stats(user_id, total_levels_completed=1, highest_level_reached=2))
    db.session.commit()
    listing = list_player_achievements(db.session, user_id)
    assert [a['id'] for a in listing['unlocked']] == ['first_level']
    assert len(listing['locked']) == len(DEFAULT_CATALOG) - 1
    level_5 = next(a for a in listing['locked'] if a['id'] == 'level_5')
    assert level_5['progress'] == {'current': 2, 'target': 5, 'percentage': 40}
    assert level_5['hint'] == 'Reach level 5'
    assert listing['totalPoints'] == 10
    assert listing['unlocked'][0]['rarity'] == 100.0


def test_achievement_detail_with_recent_unlockers(make_user):
    first = make_user('misty')
    second = make_user('brock')
    evaluate(db.session, first, _stats(first, total_levels_completed=1), now=datetime(2026, 3, 1))
    evaluate(db.session, second, _stats(second, total_levels_completed=1), now=datetime(2026, 3, 2))
    db.session.commit()

    detail = achievement_detail(db.session, first, 'first_level')
    assert detail['isUnlocked'] is True
    assert detail['unlockedAt'] == '2026-03-01T00:00:00'
    assert detail['rarity'] == 100.0
    assert [u['displayName'] for u in detail['recentUnlockers']] == ['brock', 'misty']

    locked = achievement_detail(db.session, first, 'level_5')
    assert locked['isUnlocked'] is False
    assert locked['recentUnlockers'] == []


def test_achievement_detail_unknown_id(make_user):
    with pytest.raises(NotFoundError):
        achievement_detail(db.session, make_user(), 'no_such_thing')


def test_category_listing_and_summary(make_user):
    user_id = make_user()
    evaluate(db.session, user_id, _stats(user_id, best_streak=5))
    db.session.commit()

    streak = achievements_in_category(db.session, user_id, 'streak')
    assert [a['id'] for a in streak['achievements']] == ['streak_3', 'streak_5', 'streak_10', 'streak_20']
    assert streak['summary'] == {'total': 4, 'unlocked': 2, 'percentage': 50}
    assert streak['achievements'][2]['progress'] == {'current': 5, 'target': 10, 'percentage': 50}

    categories = {c['category']: c for c in category_summary(db.session, user_id)}
    assert set(categories) == {'progress', 'performance', 'streak', 'quiz', 'territory', 'collection', 'score'}
    assert categories['streak']['earnedPoints'] == 15 + 30
    assert categories['streak']['totalPoints'] == 15 + 30 + 75 + 200
    assert categories['quiz']['unlocked'] == 0


def test_unknown_category(make_user):
    with pytest.raises(NotFoundError):
        achievements_in_category(db.session, make_user(), 'cooking')
