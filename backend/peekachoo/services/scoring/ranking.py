"""Global rank and leaderboard reads over persisted player aggregates.

Ranks are snapshots: a concurrent submission by another player may land
between two reads, so callers treat them as best-effort.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select

from peekachoo.errors import NotFoundError
from peekachoo.models import PlayerAchievement, PlayerStats, ScoreRecord, User, utcnow

MAX_PAGE_SIZE = 100
MAX_WINDOW = 10

ALL_TIME = 'all_time'
PERIODS = (ALL_TIME, 'daily', 'weekly', 'monthly')

SORT_COLUMNS = {
    'score': PlayerStats.total_score_all_time,
    'level': PlayerStats.highest_level_reached,
    'streak': PlayerStats.best_streak,
}


def clamp(value, low: int, high: int, default: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, value))


def player_score(session, user_id: int) -> int:
    score = session.execute(
        select(PlayerStats.total_score_all_time).where(PlayerStats.user_id == user_id)
    ).scalar_one_or_none()
    return score or 0


def get_rank(session, user_id: int) -> int:
    """1 + number of players with a strictly greater all-time score. Ties share a rank."""
    mine = player_score(session, user_id)
    above = session.execute(
        select(func.count()).select_from(PlayerStats).where(PlayerStats.total_score_all_time > mine)
    ).scalar_one()
    return above + 1


def ranked_player_count(session) -> int:
    return session.execute(
        select(func.count()).select_from(PlayerStats).where(PlayerStats.total_score_all_time > 0)
    ).scalar_one()


def percentile(rank: int, total: int) -> float:
    total = total or 1
    return round((total - rank) / total * 100, 1)


def normalize_period(period) -> str:
    return period if period in PERIODS else ALL_TIME


def period_start(period: str, now=None):
    """Start of the current daily/weekly/monthly window (UTC). Weeks start on Sunday."""
    now = now or utcnow()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == 'daily':
        return midnight
    if period == 'weekly':
        return midnight - timedelta(days=(midnight.weekday() + 1) % 7)
    if period == 'monthly':
        return midnight.replace(day=1)
    return None


def _period_totals(start):
    """Per-player sums over score records created since ``start``."""
    return (
        select(
            ScoreRecord.user_id.label('user_id'),
            func.sum(ScoreRecord.total_score).label('total_score'),
            func.max(ScoreRecord.level).label('highest_level'),
            func.count(func.distinct(ScoreRecord.session_id)).label('games_played'),
            func.max(ScoreRecord.created_at).label('last_played_at'),
        )
        .where(ScoreRecord.created_at >= start)
        .group_by(ScoreRecord.user_id)
        .subquery()
    )


def _count_above(session, column, score) -> int:
    return session.execute(select(func.count()).where(column > score)).scalar_one()


def _unlocked_count_subquery(user_id_column):
    return (
        select(func.count())
        .select_from(PlayerAchievement)
        .where(PlayerAchievement.user_id == user_id_column, PlayerAchievement.unlocked_at.isnot(None))
        .scalar_subquery()
    )


def _board_entry(rank: int, user: User, total_score, highest_level, best_streak, games_played,
                 last_played_at, achievement_count=0) -> Dict[str, Any]:
    return {
        'rank': rank,
        'userId': user.id,
        'displayName': user.display_name or user.username,
        'totalScore': total_score or 0,
        'highestLevel': highest_level or 0,
        'bestStreak': best_streak or 0,
        'gamesPlayed': games_played or 0,
        'achievementCount': achievement_count or 0,
        'lastPlayedAt': last_played_at.isoformat() if last_played_at else None,
    }


def _entry(rank: int, user: User, stats: PlayerStats, achievement_count: int = 0) -> Dict[str, Any]:
    return _board_entry(
        rank, user, stats.total_score_all_time, stats.highest_level_reached, stats.best_streak,
        stats.total_games_played, stats.last_played_at, achievement_count,
    )


def _pagination(total: int, limit: int, offset: int, page_len: int) -> Dict[str, Any]:
    return {
        'total': total,
        'limit': limit,
        'offset': offset,
        'hasMore': offset + page_len < total,
    }


def global_leaderboard(session, limit=50, offset=0, sort_by: str = 'score',
                       period: str = ALL_TIME, now=None) -> Dict[str, Any]:
    """Paginated board. ``all_time`` reads player aggregates; other periods sum score records."""
    limit = clamp(limit, 1, MAX_PAGE_SIZE, 50)
    offset = clamp(offset, 0, 2 ** 31, 0)
    sort_by = sort_by if sort_by in SORT_COLUMNS else 'score'
    period = normalize_period(period)
    now = now or utcnow()

    if period == ALL_TIME:
        rows = session.execute(
            select(User, PlayerStats, _unlocked_count_subquery(PlayerStats.user_id))
            .join(PlayerStats, PlayerStats.user_id == User.id)
            .where(PlayerStats.total_score_all_time > 0)
            .order_by(SORT_COLUMNS[sort_by].desc(), PlayerStats.total_score_all_time.desc(), User.id)
            .limit(limit)
            .offset(offset)
        ).all()
        total = ranked_player_count(session)
        entries = [
            _entry(offset + idx + 1, user, stats, count)
            for idx, (user, stats, count) in enumerate(rows)
        ]
        start = None
    else:
        start = period_start(period, now)
        totals = _period_totals(start)
        best_streak = func.coalesce(PlayerStats.best_streak, 0)
        order = {
            'score': totals.c.total_score,
            'level': totals.c.highest_level,
            'streak': best_streak,
        }[sort_by]
        rows = session.execute(
            select(
                User, totals.c.total_score, totals.c.highest_level, best_streak,
                totals.c.games_played, totals.c.last_played_at, _unlocked_count_subquery(User.id),
            )
            .join(totals, totals.c.user_id == User.id)
            .outerjoin(PlayerStats, PlayerStats.user_id == User.id)
            .order_by(order.desc(), totals.c.total_score.desc(), User.id)
            .limit(limit)
            .offset(offset)
        ).all()
        total = session.execute(select(func.count()).select_from(totals)).scalar_one()
        entries = [
            _board_entry(offset + idx + 1, *row)
            for idx, row in enumerate(rows)
        ]

    return {
        'leaderboard': entries,
        'pagination': _pagination(total, limit, offset, len(rows)),
        'sortBy': sort_by,
        'period': period,
        'periodStart': start.isoformat() if start else None,
        'periodEnd': now.isoformat(),
    }


def period_rank(session, user_id: int, period: str, now=None) -> Dict[str, int]:
    """Rank by summed score within the current period, and how many players scored in it."""
    totals = _period_totals(period_start(period, now))
    mine = session.execute(
        select(totals.c.total_score).where(totals.c.user_id == user_id)
    ).scalar_one_or_none() or 0
    return {
        'rank': _count_above(session, totals.c.total_score, mine) + 1,
        'total': session.execute(select(func.count()).select_from(totals)).scalar_one(),
    }


def level_leaderboard(session, level: int, limit=50, offset=0) -> Dict[str, Any]:
    limit = clamp(limit, 1, MAX_PAGE_SIZE, 50)
    offset = clamp(offset, 0, 2 ** 31, 0)

    rows = session.execute(
        select(ScoreRecord, User)
        .join(User, User.id == ScoreRecord.user_id)
        .where(ScoreRecord.level == level)
        .order_by(ScoreRecord.total_score.desc(), ScoreRecord.created_at)
        .limit(limit)
        .offset(offset)
    ).all()
    total = session.execute(
        select(func.count()).select_from(ScoreRecord).where(ScoreRecord.level == level)
    ).scalar_one()

    return {
        'level': level,
        'leaderboard': [
            {
                'rank': offset + idx + 1,
                'userId': user.id,
                'displayName': user.display_name or user.username,
                'score': record.total_score,
                'territoryPercentage': record.territory_percentage,
                'timeTakenSeconds': record.time_taken_seconds,
                'achievedAt': record.created_at.isoformat() if record.created_at else None,
            }
            for idx, (record, user) in enumerate(rows)
        ],
        'pagination': _pagination(total, limit, offset, len(rows)),
    }


def game_leaderboard(session, game_id: str, limit=50, offset=0) -> Dict[str, Any]:
    """Players ranked by summed score within one custom game. Unknown game ids are a NotFoundError."""
    limit = clamp(limit, 1, MAX_PAGE_SIZE, 50)
    offset = clamp(offset, 0, 2 ** 31, 0)

    totals = (
        select(
            ScoreRecord.user_id.label('user_id'),
            func.sum(ScoreRecord.total_score).label('total_score'),
            func.max(ScoreRecord.level).label('highest_level'),
            func.count().label('levels_completed'),
        )
        .where(ScoreRecord.game_id == game_id)
        .group_by(ScoreRecord.user_id)
        .subquery()
    )
    total = session.execute(select(func.count()).select_from(totals)).scalar_one()
    if total == 0:
        raise NotFoundError('Game not found')

    rows = session.execute(
        select(User, totals.c.total_score, totals.c.highest_level, totals.c.levels_completed)
        .join(totals, totals.c.user_id == User.id)
        .order_by(totals.c.total_score.desc(), User.id)
        .limit(limit)
        .offset(offset)
    ).all()
    play_count = session.execute(
        select(func.count(func.distinct(ScoreRecord.session_id))).where(ScoreRecord.game_id == game_id)
    ).scalar_one()

    return {
        'game': {'id': game_id, 'playCount': play_count, 'playerCount': total},
        'leaderboard': [
            {
                'rank': offset + idx + 1,
                'userId': user.id,
                'displayName': user.display_name or user.username,
                'totalScore': score,
                'highestLevel': highest,
                'levelsCompleted': levels,
            }
            for idx, (user, score, highest, levels) in enumerate(rows)
        ],
        'pagination': _pagination(total, limit, offset, len(rows)),
    }


def _around_me_all_time(session, user_id: int, window: int) -> Optional[Tuple[Dict[str, Any], list, list]]:
    stats = session.get(PlayerStats, user_id)
    if stats is None:
        return None

    rank = get_rank(session, user_id)
    mine = stats.total_score_all_time

    above_rows = session.execute(
        select(User, PlayerStats)
        .join(PlayerStats, PlayerStats.user_id == User.id)
        .where(PlayerStats.total_score_all_time > mine)
        .order_by(PlayerStats.total_score_all_time.asc(), User.id)
        .limit(window)
    ).all()
    below_rows = session.execute(
        select(User, PlayerStats)
        .join(PlayerStats, PlayerStats.user_id == User.id)
        .where(PlayerStats.total_score_all_time < mine, PlayerStats.total_score_all_time > 0)
        .order_by(PlayerStats.total_score_all_time.desc(), User.id)
        .limit(window)
    ).all()

    above = [_entry(get_rank(session, user.id), user, other) for user, other in reversed(above_rows)]
    below = [_entry(get_rank(session, user.id), user, other) for user, other in below_rows]
    player = {
        'rank': rank,
        'totalScore': mine,
        'percentile': percentile(rank, ranked_player_count(session)),
    }
    return player, above, below


def _around_me_period(session, user_id: int, window: int, start) -> Optional[Tuple[Dict[str, Any], list, list]]:
    totals = _period_totals(start)
    mine = session.execute(
        select(totals.c.total_score).where(totals.c.user_id == user_id)
    ).scalar_one_or_none()
    if mine is None:
        return None

    best_streak = func.coalesce(PlayerStats.best_streak, 0)

    def neighbours(condition, order):
        return session.execute(
            select(
                User, totals.c.total_score, totals.c.highest_level, best_streak,
                totals.c.games_played, totals.c.last_played_at,
            )
            .join(totals, totals.c.user_id == User.id)
            .outerjoin(PlayerStats, PlayerStats.user_id == User.id)
            .where(condition)
            .order_by(order, User.id)
            .limit(window)
        ).all()

    def ranked(row):
        return _board_entry(_count_above(session, totals.c.total_score, row[1]) + 1, *row)

    above_rows = neighbours(totals.c.total_score > mine, totals.c.total_score.asc())
    below_rows = neighbours(
        (totals.c.total_score < mine) & (totals.c.total_score > 0), totals.c.total_score.desc()
    )
    rank = _count_above(session, totals.c.total_score, mine) + 1
    ranked_total = _count_above(session, totals.c.total_score, 0)
    player = {'rank': rank, 'totalScore': mine, 'percentile': percentile(rank, ranked_total)}
    return player, [ranked(row) for row in reversed(above_rows)], [ranked(row) for row in below_rows]


def around_me(session, user_id: int, window=5, period: str = ALL_TIME, now=None) -> Dict[str, Any]:
    """Players immediately above and below the caller by score within ``period``."""
    window = clamp(window, 1, MAX_WINDOW, 5)
    period = normalize_period(period)
    if period == ALL_TIME:
        found = _around_me_all_time(session, user_id, window)
    else:
        found = _around_me_period(session, user_id, window, period_start(period, now))

    if found is None:
        return {
            'player': {'rank': 0, 'totalScore': 0, 'percentile': 0},
            'above': [],
            'below': [],
            'period': period,
        }
    player, above, below = found
    return {'player': player, 'above': above, 'below': below, 'period': period}
