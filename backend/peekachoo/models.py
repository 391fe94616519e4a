from peekachoo import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import uuid

# Client-supplied session ids (uuid4 strings are 36 characters)
SESSION_ID_LENGTH = 64
NAME_LENGTH = 64


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id():
    return uuid.uuid4().hex


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(64), nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'display_name': self.display_name or self.username,
        }


class PlayerStats(db.Model):
    """Per-player aggregates, one row per user. Written only by score submission and session lifecycle."""
    __tablename__ = 'player_stats'
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), primary_key=True)

    highest_level_reached = db.Column(db.Integer, default=0, nullable=False)
    total_levels_completed = db.Column(db.Integer, default=0, nullable=False)
    total_games_played = db.Column(db.Integer, default=0, nullable=False)

    total_score_all_time = db.Column(db.Integer, default=0, nullable=False, index=True)
    best_single_game_score = db.Column(db.Integer, default=0, nullable=False)

    total_territory_claimed = db.Column(db.Integer, default=0, nullable=False)
    # Running sum of per-level coverage; average_coverage is derived from it
    coverage_total = db.Column(db.Float, default=0.0, nullable=False)
    average_coverage = db.Column(db.Float, default=0.0, nullable=False)
    best_coverage = db.Column(db.Float, default=0.0, nullable=False)
    fastest_level_seconds = db.Column(db.Integer, nullable=True)  # NULL until a level is completed

    current_streak = db.Column(db.Integer, default=0, nullable=False)
    best_streak = db.Column(db.Integer, default=0, nullable=False)

    quiz_correct_total = db.Column(db.Integer, default=0, nullable=False)
    quiz_attempts_total = db.Column(db.Integer, default=0, nullable=False)

    total_play_time_seconds = db.Column(db.Integer, default=0, nullable=False)
    unique_collectibles_revealed = db.Column(db.Integer, default=0, nullable=False)

    first_played_at = db.Column(db.DateTime, nullable=True)
    last_played_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @classmethod
    def blank(cls, user_id, now=None):
        now = now or utcnow()
        return cls(
            user_id=user_id,
            highest_level_reached=0,
            total_levels_completed=0,
            total_games_played=0,
            total_score_all_time=0,
            best_single_game_score=0,
            total_territory_claimed=0,
            coverage_total=0.0,
            average_coverage=0.0,
            best_coverage=0.0,
            fastest_level_seconds=None,
            current_streak=0,
            best_streak=0,
            quiz_correct_total=0,
            quiz_attempts_total=0,
            total_play_time_seconds=0,
            unique_collectibles_revealed=0,
            first_played_at=now,
            last_played_at=now,
        )

    def to_dict(self):
        return {
            'highestLevelReached': self.highest_level_reached,
            'totalLevelsCompleted': self.total_levels_completed,
            'totalGamesPlayed': self.total_games_played,
            'totalScoreAllTime': self.total_score_all_time,
            'bestSingleGameScore': self.best_single_game_score,
            'averageScorePerGame': (
                round(self.total_score_all_time / self.total_games_played) if self.total_games_played else 0
            ),
            'totalTerritoryClaimed': self.total_territory_claimed,
            'averageCoverage': self.average_coverage,
            'bestCoverage': self.best_coverage,
            'fastestLevelSeconds': self.fastest_level_seconds,
            'currentStreak': self.current_streak,
            'bestStreak': self.best_streak,
            'quizCorrectTotal': self.quiz_correct_total,
            'quizAttemptsTotal': self.quiz_attempts_total,
            'quizAccuracy': (
                self.quiz_correct_total / self.quiz_attempts_total if self.quiz_attempts_total else 0
            ),
            'totalPlayTimeSeconds': self.total_play_time_seconds,
            'uniqueCollectiblesRevealed': self.unique_collectibles_revealed,
            'firstPlayedAt': _iso(self.first_played_at),
            'lastPlayedAt': _iso(self.last_played_at),
        }


class ScoreRecord(db.Model):
    """One row per level completion. Append-only."""
    __tablename__ = 'player_score'
    id = db.Column(db.String(32), primary_key=True, default=new_id)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    game_id = db.Column(db.String(NAME_LENGTH), nullable=True, index=True)
    session_id = db.Column(db.String(SESSION_ID_LENGTH), nullable=False, index=True)
    level = db.Column(db.Integer, nullable=False, index=True)

    territory_score = db.Column(db.Integer, nullable=False, default=0)
    time_bonus = db.Column(db.Integer, nullable=False, default=0)
    life_bonus = db.Column(db.Integer, nullable=False, default=0)
    quiz_bonus = db.Column(db.Integer, nullable=False, default=0)
    streak_bonus = db.Column(db.Integer, nullable=False, default=0)
    level_multiplier = db.Column(db.Float, nullable=False, default=1.0)
    total_score = db.Column(db.Integer, nullable=False, default=0)

    territory_percentage = db.Column(db.Float, nullable=False, default=0.0)
    time_taken_seconds = db.Column(db.Integer, nullable=False, default=0)
    lives_remaining = db.Column(db.Integer, nullable=False, default=0)
    quiz_attempts = db.Column(db.Integer, nullable=False, default=1)

    collectible_id = db.Column(db.Integer, nullable=True)
    collectible_name = db.Column(db.String(NAME_LENGTH), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship('User')


class GameSession(db.Model):
    __tablename__ = 'game_session'
    id = db.Column(db.String(SESSION_ID_LENGTH), primary_key=True, default=new_id)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    game_id = db.Column(db.String(NAME_LENGTH), nullable=True)
    started_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    ended_at = db.Column(db.DateTime, nullable=True)
    total_score = db.Column(db.Integer, default=0, nullable=False, index=True)
    levels_completed = db.Column(db.Integer, default=0, nullable=False)
    highest_level = db.Column(db.Integer, default=0, nullable=False)
    max_streak = db.Column(db.Integer, default=0, nullable=False)

    def to_dict(self):
        return {
            'sessionId': self.id,
            'gameId': self.game_id,
            'totalScore': self.total_score,
            'levelsCompleted': self.levels_completed,
            'highestLevel': self.highest_level,
            'maxStreak': self.max_streak,
            'startedAt': _iso(self.started_at),
            'endedAt': _iso(self.ended_at),
        }


class Achievement(db.Model):
    """Static catalog entry. Rows are seeded once and never modified."""
    __tablename__ = 'achievement'
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(256), nullable=False)
    icon = db.Column(db.String(16), nullable=False, default='')
    category = db.Column(db.String(32), nullable=False)
    points = db.Column(db.Integer, nullable=False, default=0)
    requirement_type = db.Column(db.String(32), nullable=False)
    requirement_value = db.Column(db.Integer, nullable=False)
    is_hidden = db.Column(db.Boolean, default=False, nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'icon': self.icon,
            'category': self.category,
            'points': self.points,
        }


class PlayerAchievement(db.Model):
    __tablename__ = 'player_achievement'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'achievement_id', name='uq_player_achievement'),
    )
    id = db.Column(db.String(32), primary_key=True, default=new_id)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    achievement_id = db.Column(db.String(64), db.ForeignKey('achievement.id'), nullable=False)
    progress = db.Column(db.Float, nullable=True)
    unlocked_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    achievement = db.relationship('Achievement')


class CollectionEntry(db.Model):
    """A collectible a player has revealed at least once."""
    __tablename__ = 'player_collection'
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), primary_key=True)
    collectible_id = db.Column(db.Integer, primary_key=True)
    collectible_name = db.Column(db.String(NAME_LENGTH), nullable=True)
    first_revealed_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    times_revealed = db.Column(db.Integer, default=1, nullable=False)
    best_coverage = db.Column(db.Float, default=0.0, nullable=False)
    fastest_reveal_seconds = db.Column(db.Integer, nullable=True)
