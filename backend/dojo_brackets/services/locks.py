"""
Process-local category locks.

Regenerating a category and recording results in it must never interleave:
both take the lock of (tournament_id, category key) for their duration. The
bracket id is not used as the key because regeneration replaces it.
"""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Set, Tuple

from dojo_brackets.services.category_classifier import CategoryKey
from dojo_brackets.services.errors import StateConflictError

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = float(os.getenv("BRACKET_LOCK_TIMEOUT", "5"))

LockKey = Tuple[int, CategoryKey]


class _CategoryLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


_registry_lock = threading.Lock()
_category_locks: Dict[LockKey, _CategoryLock] = {}
_running_generations: Set[int] = set()


@contextmanager
def _lock_for(key: LockKey) -> Iterator[threading.Lock]:
    """Check out the lock of one category; entries with no holders or waiters are dropped."""
    with _registry_lock:
        entry = _category_locks.get(key)
        if entry is None:
            entry = _category_locks[key] = _CategoryLock()
        entry.users += 1
    try:
        yield entry.lock
    finally:
        with _registry_lock:
            entry.users -= 1
            if entry.users == 0:
                del _category_locks[key]


@contextmanager
def category_lock(
    tournament_id: int, key: CategoryKey, timeout: Optional[float] = None
) -> Iterator[None]:
    """Hold the category lock; timeout=0 fails immediately when it is held."""
    wait = LOCK_TIMEOUT_SECONDS if timeout is None else timeout
    with _lock_for((tournament_id, key)) as lock:
        acquired = lock.acquire(blocking=wait > 0, timeout=wait if wait > 0 else -1)
        if not acquired:
            logger.warning("Category %s of tournament %d is busy", key, tournament_id)
            raise StateConflictError(
                f"Category '{key.display_name}' is being modified; retry shortly",
                entity_id=key.display_name,
                kind="CATEGORY_BUSY",
            )
        try:
            yield
        finally:
            lock.release()


def claim_generation(tournament_id: int) -> None:
    """Mark a generation run as active; only one per tournament at a time."""
    with _registry_lock:
        if tournament_id in _running_generations:
            raise StateConflictError(
                f"Bracket generation already running for tournament {tournament_id}",
                entity_id=tournament_id,
                kind="GENERATION_RUNNING",
            )
        _running_generations.add(tournament_id)


def release_generation(tournament_id: int) -> None:
    with _registry_lock:
        _running_generations.discard(tournament_id)


@contextmanager
def generation_guard(tournament_id: int) -> Iterator[None]:
    claim_generation(tournament_id)
    try:
        yield
    finally:
        release_generation(tournament_id)
