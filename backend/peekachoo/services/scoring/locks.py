"""Per-player atomic unit for score writes.

Submissions for the same user run one at a time inside this process; the
stats row is additionally read FOR UPDATE so databases with row locks
serialize writers across processes. Everything done inside the block is
committed together or rolled back together.
"""

from contextlib import contextmanager
from threading import Lock, RLock
from weakref import WeakValueDictionary
from typing import Iterator

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from peekachoo.errors import PersistenceError

_registry_lock = Lock()
# Entries disappear once no transaction holds the lock
_player_locks: "WeakValueDictionary[int, RLock]" = WeakValueDictionary()


def player_lock(user_id: int) -> RLock:
    with _registry_lock:
        lock = _player_locks.get(user_id)
        if lock is None:
            lock = _player_locks[user_id] = RLock()
        return lock


@contextmanager
def player_transaction(session, user_id: int) -> Iterator[None]:
    """Serialize and commit a read-modify-write for one player.

    Any exception rolls the session back. Store failures surface as
    PersistenceError so callers can retry the whole unit.
    """
    with player_lock(user_id):
        try:
            yield
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            current_app.logger.error(f"[persist-fail] user={user_id} {type(exc).__name__}: {exc}")
            raise PersistenceError('Could not save score, please retry') from exc
        except Exception:
            session.rollback()
            raise
