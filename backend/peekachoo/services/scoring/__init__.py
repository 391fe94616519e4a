"""Scoring domain services: score formula, streaks, ranks, achievements and submission.

HTTP routes and socket handlers import from here; nothing in this package
knows about requests or websocket transport.
"""

from .formula import DEFAULT_SCORE_CONFIG, ScoreBreakdown, ScoreConfig, compute_breakdown
from .streak import next_streak
from .ranking import get_rank
from .achievements import evaluate, seed_achievements
from .submission import NotificationEvent, SubmissionResult, submit_score
from .sessions import end_session, start_session
