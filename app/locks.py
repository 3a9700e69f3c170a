"""
Per-key mutual exclusion for check-then-act sequences

A process-local lock always guards the key. When Redis is configured a Redis
lock is taken as well so that several workers serialize on the same key.
Database unique constraints remain the final arbiter either way.
"""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator

import redis

from .rate_limiter import get_redis_client
from .shared.exceptions import Conflict

logger = logging.getLogger(__name__)

LOCK_WAIT_SECONDS = float(os.getenv("LOCK_WAIT_SECONDS", "10"))
# Upper bound on how long a crashed worker can hold a Redis lock
LOCK_TTL_SECONDS = int(os.getenv("LOCK_TTL_SECONDS", "30"))

# key -> [lock, number of holders and waiters]; entries are dropped at zero
_locks: dict[str, list] = {}
_locks_guard = threading.Lock()


def _get_local_lock(key: str) -> threading.Lock:
    """Get or create the process-local lock for a key and register a user"""
    with _locks_guard:
        entry = _locks.get(key)
        if entry is None:
            entry = _locks[key] = [threading.Lock(), 0]
        entry[1] += 1
        return entry[0]


def _put_local_lock(key: str) -> None:
    with _locks_guard:
        entry = _locks.get(key)
        if entry is None:
            return
        entry[1] -= 1
        if entry[1] <= 0:
            del _locks[key]


def slot_key(date: str, time_slot: str) -> str:
    return f"slot:{date}:{time_slot}"


@contextmanager
def key_lock(key: str, wait_seconds: float = LOCK_WAIT_SECONDS) -> Iterator[None]:
    local_lock = _get_local_lock(key)
    if not local_lock.acquire(timeout=wait_seconds):
        _put_local_lock(key)
        logger.warning(f"⏳ Timed out waiting for local lock {key}")
        raise Conflict("This item is busy right now. Please try again.")

    distributed = None
    try:
        client = get_redis_client()
        if client is not None:
            distributed = client.lock(
                f"lock:{key}", timeout=LOCK_TTL_SECONDS, blocking_timeout=wait_seconds
            )
            try:
                acquired = distributed.acquire()
            except redis.RedisError as e:
                logger.warning(f"⚠️ Redis lock unavailable for {key}, using local lock only: {e}")
                distributed = None
            else:
                if not acquired:
                    distributed = None
                    logger.warning(f"⏳ Timed out waiting for Redis lock {key}")
                    raise Conflict("This item is busy right now. Please try again.")
        yield
    finally:
        if distributed is not None:
            try:
                distributed.release()
            except redis.exceptions.LockError as e:
                logger.warning(f"⚠️ Redis lock {key} expired before release: {e}")
        local_lock.release()
        _put_local_lock(key)
