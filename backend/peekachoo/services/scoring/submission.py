"""Level-completion submission: scoring, stats, sessions, collection, achievements and rank.

``submit_score`` is the single writer of player aggregates. It returns a
``SubmissionResult`` carrying the notification events a caller may push;
it never pushes them itself.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import select

from peekachoo.errors import AntiCheatRejection, NotFoundError, ValidationError
from peekachoo.models import (
    NAME_LENGTH, SESSION_ID_LENGTH, CollectionEntry, GameSession, PlayerStats, ScoreRecord, utcnow,
)
from .achievements import evaluate
from .formula import DEFAULT_SCORE_CONFIG, ScoreBreakdown, ScoreConfig, compute_breakdown
from .locks import player_transaction
from .ranking import get_rank
from .streak import next_streak

# Territory pixels are estimated against an 800x600 play area
PLAY_AREA_PIXELS = 800 * 600
TOP_RANK_BROADCAST = 10


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    user_id: int
    payload: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'userId': self.user_id, **self.payload}


@dataclass
class SubmissionResult:
    score_id: str
    breakdown: ScoreBreakdown
    session: Dict[str, Any]
    rankings: Dict[str, Any]
    unlocked_achievements: List[Dict[str, Any]]
    collectible: Dict[str, Any]
    events: List[NotificationEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scoreId': self.score_id,
            'breakdown': self.breakdown.to_dict(),
            'session': self.session,
            'rankings': self.rankings,
            'achievements': {'unlocked': self.unlocked_achievements},
            'pokemon': self.collectible,
        }


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_submission(
    session_id,
    level,
    coverage_percent,
    time_taken_seconds,
    lives_remaining,
    quiz_attempts,
    collectible_id=None,
    collectible_name=None,
    game_id=None,
    max_lives: int = 3,
    min_completion_seconds: int = 5,
) -> None:
    """Reject malformed input, then implausible input. Runs before anything is read or written."""
    if not session_id or not isinstance(session_id, str):
        raise ValidationError('sessionId is required')
    if len(session_id) > SESSION_ID_LENGTH:
        raise ValidationError(f'sessionId must be at most {SESSION_ID_LENGTH} characters')
    if game_id is not None and (not isinstance(game_id, str) or len(game_id) > NAME_LENGTH):
        raise ValidationError(f'gameId must be a string of at most {NAME_LENGTH} characters')
    if collectible_name is not None and (
        not isinstance(collectible_name, str) or len(collectible_name) > NAME_LENGTH
    ):
        raise ValidationError(f'pokemonName must be a string of at most {NAME_LENGTH} characters')
    if not _is_int(level) or level < 1:
        raise ValidationError('level must be an integer >= 1')
    if not _is_number(coverage_percent) or not 0 <= coverage_percent <= 1:
        raise ValidationError('Territory percentage must be between 0 and 1')
    if not _is_int(time_taken_seconds) or time_taken_seconds < 0:
        raise ValidationError('timeTakenSeconds must be a non-negative integer')
    if not _is_int(lives_remaining) or not 0 <= lives_remaining <= max_lives:
        raise ValidationError(f'livesRemaining must be between 0 and {max_lives}')
    if not _is_int(quiz_attempts) or quiz_attempts < 1:
        raise ValidationError('quizAttempts must be an integer >= 1')
    if collectible_id is not None and not _is_int(collectible_id):
        raise ValidationError('pokemonId must be an integer')

    if time_taken_seconds < min_completion_seconds:
        raise AntiCheatRejection('Completion time below minimum threshold')


def load_stats_for_update(session, user_id: int, now=None) -> PlayerStats:
    stats = session.execute(
        select(PlayerStats)
        .where(PlayerStats.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if stats is None:
        stats = PlayerStats.blank(user_id, now)
        session.add(stats)
    return stats


def apply_completion(stats: PlayerStats, level, coverage_percent, time_taken_seconds,
                     quiz_attempts, streak, total_score, now) -> None:
    stats.total_levels_completed += 1
    stats.total_score_all_time += total_score
    stats.highest_level_reached = max(stats.highest_level_reached, level)
    stats.best_coverage = max(stats.best_coverage, coverage_percent)
    if stats.fastest_level_seconds is None:
        stats.fastest_level_seconds = time_taken_seconds
    else:
        stats.fastest_level_seconds = min(stats.fastest_level_seconds, time_taken_seconds)

    stats.current_streak = streak
    stats.best_streak = max(stats.best_streak, streak)

    # sum/count rather than re-deriving from the previous average
    stats.coverage_total += coverage_percent
    stats.average_coverage = stats.coverage_total / stats.total_levels_completed
    stats.total_territory_claimed += round(PLAY_AREA_PIXELS * coverage_percent)

    stats.quiz_correct_total += 1 if quiz_attempts == 1 else 0
    stats.quiz_attempts_total += quiz_attempts
    stats.total_play_time_seconds += time_taken_seconds
    stats.last_played_at = now


def _owned_session(session, user_id: int, session_id: str) -> Optional[GameSession]:
    game_session = session.get(GameSession, session_id)
    if game_session is not None and game_session.user_id != user_id:
        raise NotFoundError('Session not found')
    return game_session


def apply_to_session(session, game_session, stats, user_id, session_id, game_id,
                     total_score, level, streak, now) -> GameSession:
    if game_session is None:
        game_session = GameSession(
            id=session_id,
            user_id=user_id,
            game_id=game_id,
            started_at=now,
            total_score=0,
            levels_completed=0,
            highest_level=0,
            max_streak=0,
        )
        session.add(game_session)
        stats.total_games_played += 1
    game_session.total_score += total_score
    game_session.levels_completed += 1
    game_session.highest_level = max(game_session.highest_level, level)
    game_session.max_streak = max(game_session.max_streak, streak)
    return game_session


def track_collectible(session, stats, user_id, collectible_id, collectible_name,
                      coverage_percent, time_taken_seconds, now) -> bool:
    """Record a collectible sighting. Returns True the first time this player reveals it."""
    entry = session.get(CollectionEntry, (user_id, collectible_id))
    if entry is not None:
        entry.times_revealed += 1
        entry.best_coverage = max(entry.best_coverage, coverage_percent)
        if entry.fastest_reveal_seconds is None:
            entry.fastest_reveal_seconds = time_taken_seconds
        else:
            entry.fastest_reveal_seconds = min(entry.fastest_reveal_seconds, time_taken_seconds)
        if collectible_name and not entry.collectible_name:
            entry.collectible_name = collectible_name
        return False

    session.add(CollectionEntry(
        user_id=user_id,
        collectible_id=collectible_id,
        collectible_name=collectible_name,
        first_revealed_at=now,
        times_revealed=1,
        best_coverage=coverage_percent,
        fastest_reveal_seconds=time_taken_seconds,
    ))
    stats.unique_collectibles_revealed += 1
    return True


def build_events(user_id: int, result: SubmissionResult, level: int) -> List[NotificationEvent]:
    rankings = result.rankings
    events = [NotificationEvent('score_submitted', user_id, {
        'score': result.breakdown.total_score,
        'level': level,
        'rank': rankings['globalRank'],
        'isNewPersonalBest': rankings['isNewPersonalBest'],
    })]

    old_rank, new_rank = rankings['previousRank'], rankings['globalRank']
    if new_rank != old_rank and (new_rank <= TOP_RANK_BROADCAST or new_rank < old_rank):
        events.append(NotificationEvent('rank_change', user_id, {'oldRank': old_rank, 'newRank': new_rank}))

    for achievement in result.unlocked_achievements:
        events.append(NotificationEvent('achievement_unlocked', user_id, {
            'achievementId': achievement['id'],
            'achievement': achievement,
        }))

    if result.collectible.get('isNewReveal'):
        events.append(NotificationEvent('collectible_revealed', user_id, {
            'collectibleId': result.collectible['pokemonId'],
            'collectibleName': result.collectible['pokemonName'],
            'collectionCount': result.collectible['collectionCount'],
            'collectionTotal': result.collectible['collectionTotal'],
        }))

    if result.breakdown.streak_bonus > 0:
        events.append(NotificationEvent('streak_milestone', user_id, {
            'streak': result.session['currentStreak'],
            'bonus': result.breakdown.streak_bonus,
        }))
    return events


def submit_score(
    session,
    user_id: int,
    session_id: str,
    level: int,
    coverage_percent: float,
    time_taken_seconds: int,
    lives_remaining: int,
    quiz_attempts: int,
    collectible_id: Optional[int] = None,
    collectible_name: Optional[str] = None,
    game_id: Optional[str] = None,
    now=None,
    score_config: ScoreConfig = DEFAULT_SCORE_CONFIG,
) -> SubmissionResult:
    """Score one level completion and persist every resulting change as one unit.

    Raises ValidationError or AntiCheatRejection before touching the store,
    NotFoundError when the session belongs to someone else, and
    PersistenceError when the store fails (nothing is kept in that case).
    """
    cfg = current_app.config
    max_lives = int(cfg.get('MAX_LIVES', 3))
    try:
        validate_submission(
            session_id, level, coverage_percent, time_taken_seconds, lives_remaining,
            quiz_attempts, collectible_id, collectible_name, game_id,
            max_lives=max_lives,
            min_completion_seconds=int(cfg.get('MIN_COMPLETION_SECONDS', 5)),
        )
    except AntiCheatRejection as exc:
        current_app.logger.warning(
            f"[anti-cheat] user={user_id} session={session_id} level={level} time={time_taken_seconds}s reason={exc.reason}"
        )
        raise

    now = now or utcnow()
    with player_transaction(session, user_id):
        stats = load_stats_for_update(session, user_id, now)
        game_session = _owned_session(session, user_id, session_id)
        prior_highest_level = stats.highest_level_reached
        prior_best_single = stats.best_single_game_score

        streak = next_streak(stats.current_streak, lives_remaining, max_lives)
        breakdown = compute_breakdown(
            level, coverage_percent, time_taken_seconds, lives_remaining,
            quiz_attempts, streak, score_config,
        )
        previous_rank = get_rank(session, user_id)

        record = ScoreRecord(
            user_id=user_id,
            game_id=game_id,
            session_id=session_id,
            level=level,
            territory_score=breakdown.territory_score,
            time_bonus=breakdown.time_bonus,
            life_bonus=breakdown.life_bonus,
            quiz_bonus=breakdown.quiz_bonus,
            streak_bonus=breakdown.streak_bonus,
            level_multiplier=breakdown.level_multiplier,
            total_score=breakdown.total_score,
            territory_percentage=coverage_percent,
            time_taken_seconds=time_taken_seconds,
            lives_remaining=lives_remaining,
            quiz_attempts=quiz_attempts,
            collectible_id=collectible_id,
            collectible_name=collectible_name,
            created_at=now,
        )
        session.add(record)

        apply_completion(stats, level, coverage_percent, time_taken_seconds,
                         quiz_attempts, streak, breakdown.total_score, now)
        game_session = apply_to_session(session, game_session, stats, user_id, session_id, game_id,
                                        breakdown.total_score, level, streak, now)

        is_new_reveal = False
        if collectible_id is not None:
            is_new_reveal = track_collectible(session, stats, user_id, collectible_id, collectible_name,
                                              coverage_percent, time_taken_seconds, now)

        unlocked = evaluate(session, user_id, stats, now)
        new_rank = get_rank(session, user_id)
        session.flush()

        result = SubmissionResult(
            score_id=record.id,
            breakdown=breakdown,
            session={
                'sessionId': game_session.id,
                'sessionScore': game_session.total_score,
                'levelsCompleted': game_session.levels_completed,
                'currentStreak': streak,
            },
            rankings={
                'globalRank': new_rank,
                'previousRank': previous_rank,
                'rankChange': previous_rank - new_rank,
                'isNewPersonalBest': breakdown.total_score > prior_best_single,
                'isNewLevelBest': level > prior_highest_level,
            },
            unlocked_achievements=[a.to_dict() for a in unlocked],
            collectible={
                'pokemonId': collectible_id,
                'pokemonName': collectible_name,
                'isNewReveal': is_new_reveal,
                'collectionCount': stats.unique_collectibles_revealed,
                'collectionTotal': int(cfg.get('COLLECTION_TOTAL', 151)),
            },
        )

    result.events = build_events(user_id, result, level)
    current_app.logger.info(
        f"[score] user={user_id} session={session_id} level={level} total={breakdown.total_score} "
        f"streak={streak} rank={previous_rank}->{new_rank} unlocked={len(unlocked)}"
    )
    for achievement in unlocked:
        current_app.logger.info(f"[achievement] user={user_id} unlocked={achievement.id}")
    return result
