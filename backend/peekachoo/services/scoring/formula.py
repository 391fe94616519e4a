import math
from dataclasses import asdict, dataclass, field
from typing import Dict, Tuple


@dataclass(frozen=True)
class ScoreConfig:
    territory_multiplier: int = 10
    time_bonus_base: int = 120
    time_bonus_multiplier: int = 5
    life_bonus: int = 200
    quiz_bonus_first_try: int = 500
    quiz_bonus_second_try: int = 200
    level_multiplier_base: float = 1.0
    level_multiplier_increment: float = 0.2
    # (threshold, bonus), highest threshold first
    streak_bonuses: Tuple[Tuple[int, int], ...] = field(
        default=((20, 6000), (15, 4000), (10, 2500), (5, 1000), (3, 500))
    )


DEFAULT_SCORE_CONFIG = ScoreConfig()


@dataclass(frozen=True)
class ScoreBreakdown:
    territory_score: int
    time_bonus: int
    life_bonus: int
    quiz_bonus: int
    subtotal: int
    level_multiplier: float
    level_score: int
    streak_bonus: int
    total_score: int

    def to_dict(self) -> Dict[str, float]:
        d = asdict(self)
        return {
            'territoryScore': d['territory_score'],
            'timeBonus': d['time_bonus'],
            'lifeBonus': d['life_bonus'],
            'quizBonus': d['quiz_bonus'],
            'subtotal': d['subtotal'],
            'levelMultiplier': d['level_multiplier'],
            'levelScore': d['level_score'],
            'streakBonus': d['streak_bonus'],
            'totalScore': d['total_score'],
        }


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def streak_bonus_for(current_streak: int, config: ScoreConfig = DEFAULT_SCORE_CONFIG) -> int:
    for threshold, bonus in sorted(config.streak_bonuses, reverse=True):
        if current_streak >= threshold:
            return bonus
    return 0


def compute_breakdown(
    level: int,
    coverage_percent: float,
    time_taken_seconds: int,
    lives_remaining: int,
    quiz_attempts: int,
    current_streak: int,
    config: ScoreConfig = DEFAULT_SCORE_CONFIG,
) -> ScoreBreakdown:
    """Score a single level completion.

    Pure and deterministic. Inputs are assumed validated by the caller.
    """
    territory_score = round_half_up(coverage_percent * 100 * config.territory_multiplier)
    time_bonus = max(0, round_half_up((config.time_bonus_base - time_taken_seconds) * config.time_bonus_multiplier))
    life_bonus = lives_remaining * config.life_bonus

    if quiz_attempts == 1:
        quiz_bonus = config.quiz_bonus_first_try
    elif quiz_attempts == 2:
        quiz_bonus = config.quiz_bonus_second_try
    else:
        quiz_bonus = 0

    level_multiplier = config.level_multiplier_base + level * config.level_multiplier_increment
    subtotal = territory_score + time_bonus + life_bonus + quiz_bonus
    level_score = round_half_up(subtotal * level_multiplier)
    streak_bonus = streak_bonus_for(current_streak, config)

    return ScoreBreakdown(
        territory_score=territory_score,
        time_bonus=time_bonus,
        life_bonus=life_bonus,
        quiz_bonus=quiz_bonus,
        subtotal=subtotal,
        level_multiplier=level_multiplier,
        level_score=level_score,
        streak_bonus=streak_bonus,
        total_score=level_score + streak_bonus,
    )
