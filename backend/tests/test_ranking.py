from datetime import datetime

import pytest

from peekachoo import db
from peekachoo.errors import NotFoundError
from peekachoo.models import PlayerStats
from peekachoo.services.scoring.ranking import (
    around_me, game_leaderboard, get_rank, global_leaderboard, level_leaderboard, period_rank, period_start,
)


def _with_score(make_user, score, **fields):
    user_id = make_user()
    stats = PlayerStats.blank(user_id)
    stats.total_score_all_time = score
    for key, value in fields.items():
        setattr(stats, key, value)
    db.session.add(stats)
    db.session.commit()
    return user_id


def test_rank_orders_by_total_score(make_user):
    low = _with_score(make_user, 50)
    high = _with_score(make_user, 500)
    mid = _with_score(make_user, 200)
    assert get_rank(db.session, high) == 1
    assert get_rank(db.session, mid) == 2
    assert get_rank(db.session, low) == 3


def test_equal_scores_share_a_rank(make_user):
    a = _with_score(make_user, 100)
    b = _with_score(make_user, 100)
    c = _with_score(make_user, 40)
    assert get_rank(db.session, a) == get_rank(db.session, b) == 1
    assert get_rank(db.session, c) == 3


def test_rank_iff_score_strictly_greater(make_user):
    scores = [0, 10, 10, 30, 75, 75, 75, 1000]
    ids = {_with_score(make_user, s): s for s in scores}
    ranks = {uid: get_rank(db.session, uid) for uid in ids}
    for a, score_a in ids.items():
        for b, score_b in ids.items():
            assert (ranks[a] < ranks[b]) == (score_a > score_b)
            assert (ranks[a] == ranks[b]) == (score_a == score_b)


def test_player_without_stats_ranks_as_zero(make_user):
    _with_score(make_user, 10)
    _with_score(make_user, 0)
    newcomer = make_user()
    assert get_rank(db.session, newcomer) == 2


def test_global_leaderboard_skips_zero_scores_and_paginates(make_user):
    for score in (300, 0, 100, 200):
        _with_score(make_user, score)
    board = global_leaderboard(db.session, limit=2, offset=0)
    assert [e['totalScore'] for e in board['leaderboard']] == [300, 200]
    assert [e['rank'] for e in board['leaderboard']] == [1, 2]
    assert board['pagination'] == {'total': 3, 'limit': 2, 'offset': 0, 'hasMore': True}

    page2 = global_leaderboard(db.session, limit=2, offset=2)
    assert [e['totalScore'] for e in page2['leaderboard']] == [100]
    assert page2['pagination']['hasMore'] is False


def test_global_leaderboard_sort_by_streak(make_user):
    _with_score(make_user, 900, best_streak=1)
    _with_score(make_user, 100, best_streak=8)
    board = global_leaderboard(db.session, sort_by='streak')
    assert [e['bestStreak'] for e in board['leaderboard']] == [8, 1]


def test_global_leaderboard_clamps_limit(make_user):
    _with_score(make_user, 10)
    assert global_leaderboard(db.session, limit=10_000)['pagination']['limit'] == 100
    assert global_leaderboard(db.session, limit='bogus')['pagination']['limit'] == 50


def test_around_me_window(make_user):
    ids = [_with_score(make_user, s) for s in (500, 400, 300, 200, 100)]
    window = around_me(db.session, ids[2], window=1)
    assert window['player']['rank'] == 3
    assert window['player']['totalScore'] == 300
    assert [e['totalScore'] for e in window['above']] == [400]
    assert [e['rank'] for e in window['above']] == [2]
    assert [e['totalScore'] for e in window['below']] == [200]
    assert [e['rank'] for e in window['below']] == [4]


def test_around_me_without_stats(make_user):
    user_id = make_user()
    window = around_me(db.session, user_id)
    assert window['player']['rank'] == 0
    assert window['above'] == [] and window['below'] == []


def test_level_leaderboard_uses_score_records(make_user, submit):
    a = make_user()
    b = make_user()
    submit(a, session_id='sa', level=2, coverage_percent=0.5)
    submit(b, session_id='sb', level=2, coverage_percent=0.9)
    submit(b, session_id='sb', level=3, coverage_percent=0.9)
    board = level_leaderboard(db.session, 2)
    assert [e['userId'] for e in board['leaderboard']] == [b, a]
    assert board['pagination']['total'] == 2


# A Wednesday afternoon; that week starts on Sunday 2026-10-18
NOW = datetime(2026, 10, 21, 15, 30)


@pytest.mark.parametrize('period,start', [
    ('daily', datetime(2026, 10, 21)),
    ('weekly', datetime(2026, 10, 18)),
    ('monthly', datetime(2026, 10, 1)),
    ('all_time', None),
])
def test_period_start(period, start):
    assert period_start(period, NOW) == start


def test_week_starting_on_sunday_keeps_that_day():
    assert period_start('weekly', datetime(2026, 10, 18, 8, 0)) == datetime(2026, 10, 18)


def _play_at(make_user, submit, when, level=1):
    user_id = make_user()
    submit(user_id, session_id=f'session-{user_id}', level=level, now=when)
    return user_id


def test_period_leaderboards_only_count_scores_inside_the_window(make_user, submit):
    today = _play_at(make_user, submit, datetime(2026, 10, 21, 9, 0), level=1)
    this_month = _play_at(make_user, submit, datetime(2026, 10, 2, 12, 0), level=3)
    last_month = _play_at(make_user, submit, datetime(2026, 9, 15, 12, 0), level=5)

    def user_ids(period):
        board = global_leaderboard(db.session, period=period, now=NOW)
        return [e['userId'] for e in board['leaderboard']]

    assert user_ids('daily') == [today]
    assert user_ids('weekly') == [today]
    assert user_ids('monthly') == [this_month, today]
    assert user_ids('all_time') == [last_month, this_month, today]

    weekly = global_leaderboard(db.session, period='weekly', now=NOW)
    assert weekly['period'] == 'weekly'
    assert weekly['periodStart'] == '2026-10-18T00:00:00'
    assert weekly['pagination']['total'] == 1
    assert weekly['leaderboard'][0]['totalScore'] == 2220
    assert weekly['leaderboard'][0]['gamesPlayed'] == 1


def test_unknown_period_falls_back_to_all_time(make_user, submit):
    _play_at(make_user, submit, datetime(2020, 1, 1))
    board = global_leaderboard(db.session, period='yearly', now=NOW)
    assert board['period'] == 'all_time'
    assert len(board['leaderboard']) == 1


def test_weekly_rank(make_user, submit):
    strong = _play_at(make_user, submit, datetime(2026, 10, 20), level=4)
    weak = _play_at(make_user, submit, datetime(2026, 10, 19), level=1)
    old = _play_at(make_user, submit, datetime(2026, 10, 10), level=9)
    assert period_rank(db.session, strong, 'weekly', NOW) == {'rank': 1, 'total': 2}
    assert period_rank(db.session, weak, 'weekly', NOW) == {'rank': 2, 'total': 2}
    assert period_rank(db.session, old, 'weekly', NOW) == {'rank': 3, 'total': 2}


def test_around_me_within_a_period(make_user, submit):
    top = _play_at(make_user, submit, datetime(2026, 10, 20), level=5)
    middle = _play_at(make_user, submit, datetime(2026, 10, 20), level=3)
    bottom = _play_at(make_user, submit, datetime(2026, 10, 20), level=1)
    _play_at(make_user, submit, datetime(2026, 9, 1), level=9)

    window = around_me(db.session, middle, window=1, period='weekly', now=NOW)
    assert window['period'] == 'weekly'
    assert window['player']['rank'] == 2
    assert [(e['userId'], e['rank']) for e in window['above']] == [(top, 1)]
    assert [(e['userId'], e['rank']) for e in window['below']] == [(bottom, 3)]

    idle = make_user()
    assert around_me(db.session, idle, period='weekly', now=NOW)['player']['rank'] == 0


def test_game_leaderboard(make_user, submit):
    a = make_user()
    b = make_user()
    submit(a, session_id='a1', game_id='custom-1', level=1)
    submit(a, session_id='a1', game_id='custom-1', level=2)
    submit(b, session_id='b1', game_id='custom-1', level=3)
    submit(b, session_id='b2', game_id='other', level=9)

    board = game_leaderboard(db.session, 'custom-1')
    assert board['game'] == {'id': 'custom-1', 'playCount': 2, 'playerCount': 2}
    assert [e['userId'] for e in board['leaderboard']] == [a, b]
    assert board['leaderboard'][0]['levelsCompleted'] == 2
    assert board['leaderboard'][1]['highestLevel'] == 3


def test_game_leaderboard_unknown_game(flask_app):
    with pytest.raises(NotFoundError):
        game_leaderboard(db.session, 'missing')
