"""Achievement catalog, threshold evaluation and per-player progress."""

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select

from peekachoo.errors import NotFoundError
from peekachoo.models import Achievement, PlayerAchievement, User, utcnow

HIGHEST_LEVEL = 'highest_level'
LEVELS_COMPLETED = 'levels_completed'
TOTAL_SCORE = 'total_score'
BEST_COVERAGE = 'best_coverage'
FASTEST_LEVEL = 'fastest_level'
BEST_STREAK = 'best_streak'
QUIZ_CORRECT = 'quiz_correct'
TOTAL_TERRITORY = 'total_territory'
UNIQUE_COLLECTIBLES = 'unique_collectibles'

# Requirement types where a smaller value is better
LOWER_IS_BETTER = {FASTEST_LEVEL}

DEFAULT_CATALOG = [
    # Progress
    dict(id='first_level', name='First Steps', description='Complete your first level', icon='🏁',
         category='progress', points=10, requirement_type=LEVELS_COMPLETED, requirement_value=1),
    dict(id='level_5', name='Rising Star', description='Reach level 5', icon='⭐',
         category='progress', points=25, requirement_type=HIGHEST_LEVEL, requirement_value=5),
    dict(id='level_10', name='Veteran', description='Reach level 10', icon='🌟',
         category='progress', points=50, requirement_type=HIGHEST_LEVEL, requirement_value=10),
    dict(id='level_15', name='Elite', description='Reach level 15', icon='💫',
         category='progress', points=100, requirement_type=HIGHEST_LEVEL, requirement_value=15),
    dict(id='level_20', name='Legend', description='Reach level 20', icon='👑',
         category='progress', points=200, requirement_type=HIGHEST_LEVEL, requirement_value=20),
    # Performance
    dict(id='coverage_80', name='Perfectionist', description='Achieve 80% coverage in one level', icon='🎯',
         category='performance', points=25, requirement_type=BEST_COVERAGE, requirement_value=80),
    dict(id='coverage_90', name='Master Claimer', description='Achieve 90% coverage in one level', icon='💎',
         category='performance', points=50, requirement_type=BEST_COVERAGE, requirement_value=90),
    dict(id='speed_30', name='Speed Demon', description='Complete a level in under 30 seconds', icon='⚡',
         category='performance', points=30, requirement_type=FASTEST_LEVEL, requirement_value=30),
    dict(id='speed_20', name='Lightning Fast', description='Complete a level in under 20 seconds', icon='🚀',
         category='performance', points=75, requirement_type=FASTEST_LEVEL, requirement_value=20),
    # Streak
    dict(id='streak_3', name='Warming Up', description='Complete 3 levels in a row without dying', icon='🔥',
         category='streak', points=15, requirement_type=BEST_STREAK, requirement_value=3),
    dict(id='streak_5', name='On Fire', description='Complete 5 levels in a row without dying', icon='💪',
         category='streak', points=30, requirement_type=BEST_STREAK, requirement_value=5),
    dict(id='streak_10', name='Unstoppable', description='Complete 10 levels in a row without dying', icon='🌋',
         category='streak', points=75, requirement_type=BEST_STREAK, requirement_value=10),
    dict(id='streak_20', name='Immortal', description='Complete 20 levels in a row without dying', icon='☄️',
         category='streak', points=200, requirement_type=BEST_STREAK, requirement_value=20),
    # Quiz
    dict(id='quiz_10', name='Student', description='Answer 10 quiz questions correctly', icon='📚',
         category='quiz', points=10, requirement_type=QUIZ_CORRECT, requirement_value=10),
    dict(id='quiz_50', name='Professor', description='Answer 50 quiz questions correctly', icon='🧠',
         category='quiz', points=30, requirement_type=QUIZ_CORRECT, requirement_value=50),
    dict(id='quiz_100', name='Pokemon Master', description='Answer 100 quiz questions correctly', icon='🎓',
         category='quiz', points=75, requirement_type=QUIZ_CORRECT, requirement_value=100),
    # Territory
    dict(id='territory_100k', name='Homesteader', description='Claim 100,000 total pixels', icon='🏠',
         category='territory', points=15, requirement_type=TOTAL_TERRITORY, requirement_value=100000),
    dict(id='territory_1m', name='Land Baron', description='Claim 1,000,000 total pixels', icon='🏰',
         category='territory', points=50, requirement_type=TOTAL_TERRITORY, requirement_value=1000000),
    dict(id='territory_10m', name='World Dominator', description='Claim 10,000,000 total pixels', icon='🌍',
         category='territory', points=150, requirement_type=TOTAL_TERRITORY, requirement_value=10000000),
    # Collection
    dict(id='pokemon_10', name='Collector', description='Reveal 10 unique Pokemon', icon='🐾',
         category='collection', points=20, requirement_type=UNIQUE_COLLECTIBLES, requirement_value=10),
    dict(id='pokemon_50', name='Dex Filler', description='Reveal 50 unique Pokemon', icon='📖',
         category='collection', points=50, requirement_type=UNIQUE_COLLECTIBLES, requirement_value=50),
    dict(id='pokemon_100', name='Completionist', description='Reveal 100 unique Pokemon', icon='🏆',
         category='collection', points=150, requirement_type=UNIQUE_COLLECTIBLES, requirement_value=100),
    dict(id='pokemon_151', name='Gotta See Em All', description='Reveal all 151 Pokemon', icon='✨',
         category='collection', points=500, requirement_type=UNIQUE_COLLECTIBLES, requirement_value=151),
    # Score
    dict(id='score_10k', name='Point Scorer', description='Reach 10,000 total score', icon='💯',
         category='score', points=15, requirement_type=TOTAL_SCORE, requirement_value=10000),
    dict(id='score_100k', name='High Roller', description='Reach 100,000 total score', icon='💰',
         category='score', points=50, requirement_type=TOTAL_SCORE, requirement_value=100000),
    dict(id='score_1m', name='Millionaire', description='Reach 1,000,000 total score', icon='🤑',
         category='score', points=200, requirement_type=TOTAL_SCORE, requirement_value=1000000),
]

HINTS = {
    HIGHEST_LEVEL: 'Reach level {value}',
    LEVELS_COMPLETED: 'Complete {value} levels',
    TOTAL_SCORE: 'Score {value:,} total points',
    BEST_COVERAGE: 'Achieve {value}% coverage',
    FASTEST_LEVEL: 'Complete a level in under {value} seconds',
    BEST_STREAK: 'Get a {value}-level streak',
    QUIZ_CORRECT: 'Answer {value} quiz questions correctly',
    TOTAL_TERRITORY: 'Claim {value:,} pixels',
    UNIQUE_COLLECTIBLES: 'Reveal {value} unique Pokemon',
}


def seed_achievements(session, catalog=None) -> int:
    """Insert catalog entries that are not in the table yet. Existing rows are left untouched."""
    catalog = DEFAULT_CATALOG if catalog is None else catalog
    existing = set(session.execute(select(Achievement.id)).scalars())
    added = 0
    for order, entry in enumerate(catalog):
        if entry['id'] in existing:
            continue
        session.add(Achievement(sort_order=order, **entry))
        added += 1
    return added


def progress_for(requirement_type: str, stats) -> Optional[float]:
    """Read the stats field an achievement is measured against."""
    if requirement_type == HIGHEST_LEVEL:
        return stats.highest_level_reached
    if requirement_type == LEVELS_COMPLETED:
        return stats.total_levels_completed
    if requirement_type == TOTAL_SCORE:
        return stats.total_score_all_time
    if requirement_type == BEST_COVERAGE:
        # catalog thresholds are percentages
        return round((stats.best_coverage or 0) * 100, 4)
    if requirement_type == FASTEST_LEVEL:
        return stats.fastest_level_seconds
    if requirement_type == BEST_STREAK:
        return stats.best_streak
    if requirement_type == QUIZ_CORRECT:
        return stats.quiz_correct_total
    if requirement_type == TOTAL_TERRITORY:
        return stats.total_territory_claimed
    if requirement_type == UNIQUE_COLLECTIBLES:
        return stats.unique_collectibles_revealed
    return None


def is_met(requirement_type: str, progress: Optional[float], threshold: float) -> bool:
    if progress is None:
        return False
    if requirement_type in LOWER_IS_BETTER:
        return progress <= threshold
    return progress >= threshold


def catalog(session) -> List[Achievement]:
    return list(session.execute(
        select(Achievement).order_by(Achievement.sort_order, Achievement.id)
    ).scalars())


def evaluate(session, user_id: int, stats, now=None) -> List[Achievement]:
    """Update progress for every locked achievement and unlock those whose threshold is now met.

    Progress is written even for achievements that stay locked. Achievements
    already unlocked are skipped, so repeated calls never unlock twice.
    Returned achievements are in catalog order.
    """
    now = now or utcnow()
    rows = {
        row.achievement_id: row
        for row in session.execute(
            select(PlayerAchievement).where(PlayerAchievement.user_id == user_id)
        ).scalars()
    }

    unlocked: List[Achievement] = []
    for achievement in catalog(session):
        row = rows.get(achievement.id)
        if row is not None and row.unlocked_at is not None:
            continue

        progress = progress_for(achievement.requirement_type, stats)
        if row is None:
            row = PlayerAchievement(user_id=user_id, achievement_id=achievement.id)
            session.add(row)
            rows[achievement.id] = row
        row.progress = progress

        if is_met(achievement.requirement_type, progress, achievement.requirement_value):
            row.unlocked_at = now
            unlocked.append(achievement)

    return unlocked


def progress_info(achievement: Achievement, current: Optional[float]) -> Dict[str, Any]:
    target = achievement.requirement_value
    if current is None:
        pct = 0
    elif achievement.requirement_type in LOWER_IS_BETTER:
        pct = min(100, round(target / current * 100)) if current > 0 else 0
    else:
        pct = min(100, round(current / target * 100)) if target else 100
    return {'current': current or 0, 'target': target, 'percentage': pct}


def hint_for(achievement: Achievement) -> Optional[str]:
    if achievement.is_hidden:
        return None
    template = HINTS.get(achievement.requirement_type)
    if not template:
        return 'Keep playing to unlock!'
    return template.format(value=achievement.requirement_value)


def list_player_achievements(session, user_id: int) -> Dict[str, Any]:
    """Catalog split into unlocked and locked for one player, with rarity and totals."""
    achievements = catalog(session)
    progress_rows = _progress_rows(session, user_id)
    total_players = session.execute(select(func.count()).select_from(User)).scalar_one() or 1
    unlock_counts = dict(session.execute(
        select(PlayerAchievement.achievement_id, func.count())
        .where(PlayerAchievement.unlocked_at.isnot(None))
        .group_by(PlayerAchievement.achievement_id)
    ).all())

    unlocked, locked = [], []
    for achievement in achievements:
        row = progress_rows.get(achievement.id)
        entry = achievement.to_dict()
        entry['rarity'] = round(unlock_counts.get(achievement.id, 0) / total_players * 100, 1)
        if row is not None and row.unlocked_at is not None:
            entry['unlockedAt'] = row.unlocked_at.isoformat()
            unlocked.append(entry)
        else:
            entry['progress'] = progress_info(achievement, row.progress if row else None)
            entry['hint'] = hint_for(achievement)
            locked.append(entry)

    max_points = sum(a.points for a in achievements)
    total_points = sum(a['points'] for a in unlocked)
    completion = round(len(unlocked) / len(achievements) * 100, 1) if achievements else 0
    return {
        'unlocked': unlocked,
        'locked': locked,
        'totalPoints': total_points,
        'maxPoints': max_points,
        'completionPercentage': completion,
    }


RECENT_UNLOCKERS = 5


def _rarity(session, achievement_id: str) -> float:
    total_players = session.execute(select(func.count()).select_from(User)).scalar_one() or 1
    unlocked = session.execute(
        select(func.count()).select_from(PlayerAchievement).where(
            PlayerAchievement.achievement_id == achievement_id,
            PlayerAchievement.unlocked_at.isnot(None),
        )
    ).scalar_one()
    return round(unlocked / total_players * 100, 1)


def _progress_rows(session, user_id: int) -> Dict[str, PlayerAchievement]:
    return {
        row.achievement_id: row
        for row in session.execute(
            select(PlayerAchievement).where(PlayerAchievement.user_id == user_id)
        ).scalars()
    }


def achievement_detail(session, user_id: int, achievement_id: str) -> Dict[str, Any]:
    achievement = session.get(Achievement, achievement_id)
    if achievement is None:
        raise NotFoundError('Achievement not found')
    row = _progress_rows(session, user_id).get(achievement_id)
    unlocked_at = row.unlocked_at if row is not None else None

    recent = session.execute(
        select(User, PlayerAchievement.unlocked_at)
        .join(PlayerAchievement, PlayerAchievement.user_id == User.id)
        .where(PlayerAchievement.achievement_id == achievement_id, PlayerAchievement.unlocked_at.isnot(None))
        .order_by(PlayerAchievement.unlocked_at.desc())
        .limit(RECENT_UNLOCKERS)
    ).all()

    detail = achievement.to_dict()
    detail.update({
        'rarity': _rarity(session, achievement_id),
        'isUnlocked': unlocked_at is not None,
        'unlockedAt': unlocked_at.isoformat() if unlocked_at else None,
        'progress': progress_info(achievement, row.progress if row else None),
        'recentUnlockers': [
            {'displayName': user.display_name or user.username, 'unlockedAt': at.isoformat()}
            for user, at in recent
        ],
    })
    return detail


def achievements_in_category(session, user_id: int, category: str) -> Dict[str, Any]:
    members = [a for a in catalog(session) if a.category == category]
    if not members:
        raise NotFoundError('Category not found')
    rows = _progress_rows(session, user_id)

    entries = []
    for achievement in members:
        row = rows.get(achievement.id)
        unlocked_at = row.unlocked_at if row is not None else None
        entry = achievement.to_dict()
        entry.update({
            'isUnlocked': unlocked_at is not None,
            'unlockedAt': unlocked_at.isoformat() if unlocked_at else None,
            'progress': progress_info(achievement, row.progress if row else None),
        })
        entries.append(entry)

    unlocked = sum(1 for e in entries if e['isUnlocked'])
    return {
        'category': category,
        'achievements': entries,
        'summary': {
            'total': len(entries),
            'unlocked': unlocked,
            'percentage': round(unlocked / len(entries) * 100),
        },
    }


def category_summary(session, user_id: int) -> List[Dict[str, Any]]:
    """Per-category totals and the player's unlocked share, in catalog order."""
    rows = _progress_rows(session, user_id)
    summary: Dict[str, Dict[str, Any]] = {}
    for achievement in catalog(session):
        cat = summary.setdefault(achievement.category, {
            'category': achievement.category,
            'total': 0,
            'unlocked': 0,
            'totalPoints': 0,
            'earnedPoints': 0,
        })
        cat['total'] += 1
        cat['totalPoints'] += achievement.points
        row = rows.get(achievement.id)
        if row is not None and row.unlocked_at is not None:
            cat['unlocked'] += 1
            cat['earnedPoints'] += achievement.points

    for cat in summary.values():
        cat['percentage'] = round(cat['unlocked'] / cat['total'] * 100)
    return list(summary.values())
