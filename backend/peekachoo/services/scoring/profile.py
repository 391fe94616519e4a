"""Read-only player views: session history and the collectible collection."""

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select

from peekachoo.models import CollectionEntry, GameSession, ScoreRecord, utcnow
from .ranking import clamp

MAX_HISTORY_PAGE = 50
RECENTLY_REVEALED = 5
COLLECTION_FILTERS = ('all', 'revealed', 'hidden')
COLLECTION_SORT_KEYS = {
    'id': 'id',
    'name': 'name',
    'revealed_at': 'revealedAt',
    'times_revealed': 'timesRevealed',
}


def _iso(value):
    return value.isoformat() if value else None


def session_history(session, user_id: int, limit=20, offset=0, game_id: Optional[str] = None,
                    now=None) -> Dict[str, Any]:
    """Most recent sessions first, each with its level completions in level order."""
    limit = clamp(limit, 1, MAX_HISTORY_PAGE, 20)
    offset = clamp(offset, 0, 2 ** 31, 0)
    now = now or utcnow()

    conditions = [GameSession.user_id == user_id]
    if game_id:
        conditions.append(GameSession.game_id == game_id)

    sessions = list(session.execute(
        select(GameSession)
        .where(*conditions)
        .order_by(GameSession.started_at.desc(), GameSession.id)
        .limit(limit)
        .offset(offset)
    ).scalars())
    total = session.execute(select(func.count()).select_from(GameSession).where(*conditions)).scalar_one()

    history = []
    for game_session in sessions:
        levels = session.execute(
            select(ScoreRecord)
            .where(ScoreRecord.session_id == game_session.id, ScoreRecord.user_id == user_id)
            .order_by(ScoreRecord.level, ScoreRecord.created_at)
        ).scalars()
        entry = game_session.to_dict()
        entry['duration'] = int(((game_session.ended_at or now) - game_session.started_at).total_seconds())
        entry['levels'] = [
            {
                'level': record.level,
                'score': record.total_score,
                'territoryPercentage': record.territory_percentage,
                'timeTakenSeconds': record.time_taken_seconds,
                'livesRemaining': record.lives_remaining,
                'quizAttempts': record.quiz_attempts,
                'pokemonRevealed': record.collectible_name,
            }
            for record in levels
        ]
        history.append(entry)

    return {
        'history': history,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'hasMore': offset + len(sessions) < total,
        },
    }


def _collection_item(collectible_id: int, entry: Optional[CollectionEntry]) -> Dict[str, Any]:
    if entry is None:
        return {
            'id': collectible_id,
            'name': None,
            'isRevealed': False,
            'revealedAt': None,
            'timesRevealed': 0,
            'bestCoverage': None,
            'fastestReveal': None,
        }
    return {
        'id': collectible_id,
        'name': entry.collectible_name,
        'isRevealed': True,
        'revealedAt': _iso(entry.first_revealed_at),
        'timesRevealed': entry.times_revealed,
        'bestCoverage': entry.best_coverage,
        'fastestReveal': entry.fastest_reveal_seconds,
    }


def collection(session, user_id: int, total: int = 151, filter_by: str = 'all',
               sort_by: str = 'id', order: str = 'asc') -> Dict[str, Any]:
    """Every collectible id from 1 to ``total`` with the player's reveal status.

    Unrevealed entries sort after revealed ones whatever the order.
    """
    entries = {
        entry.collectible_id: entry
        for entry in session.execute(
            select(CollectionEntry).where(CollectionEntry.user_id == user_id)
        ).scalars()
    }
    ids = sorted(set(range(1, total + 1)) | set(entries))
    items = [_collection_item(cid, entries.get(cid)) for cid in ids]
    recent: List[Dict[str, Any]] = sorted(
        (i for i in items if i['isRevealed']), key=lambda i: i['revealedAt'], reverse=True,
    )

    filter_by = filter_by if filter_by in COLLECTION_FILTERS else 'all'
    if filter_by == 'revealed':
        items = [i for i in items if i['isRevealed']]
    elif filter_by == 'hidden':
        items = [i for i in items if not i['isRevealed']]

    key = COLLECTION_SORT_KEYS.get(sort_by, 'id')
    present = [i for i in items if i[key] is not None]
    missing = [i for i in items if i[key] is None]
    present.sort(key=lambda i: i[key], reverse=str(order).lower() == 'desc')

    revealed = len(entries)
    return {
        'summary': {
            'revealed': revealed,
            'total': total,
            'percentage': round(revealed / total * 100, 1) if total else 0,
        },
        'pokemon': present + missing,
        'recentlyRevealed': [
            {'id': i['id'], 'name': i['name'], 'revealedAt': i['revealedAt']}
            for i in recent[:RECENTLY_REVEALED]
        ],
    }
