from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from uuid import uuid4

import redis

from tapworks.core.outcomes import ConcurrencyConflict, StorageUnavailable

logger = logging.getLogger(__name__)


def player_lock_key(player_id: str) -> str:
    return f"lock:player:{player_id}"


def _release(*, r: redis.Redis, key: str, token: str) -> None:
    """Delete the lock only if we still own it."""

    with r.pipeline() as pipe:
        try:
            pipe.watch(key)
            if pipe.get(key) != token:
                pipe.unwatch()
                return
            pipe.multi()
            pipe.delete(key)
            pipe.execute()
        except redis.WatchError:
            logger.debug("lock %s changed hands before release", key)


@contextmanager
def player_lock(*, r: redis.Redis, player_id: str, ttl_ms: int = 5_000, wait_ms: int = 2_000):
    """Per-player lock serializing mutations.

    Each holder gets a unique token so an expired holder can never release a
    lock that was re-acquired by someone else. The lock is advisory; writes are
    still guarded by the record version.
    """

    key = player_lock_key(player_id)
    token = uuid4().hex
    deadline = time.monotonic() + wait_ms / 1000
    delay = 0.005

    try:
        while not r.set(key, token, nx=True, px=ttl_ms):
            if time.monotonic() >= deadline:
                raise ConcurrencyConflict(f"Player {player_id} is busy")
            time.sleep(delay)
            delay = min(delay * 2, 0.1)
    except redis.RedisError as e:
        raise StorageUnavailable(f"Failed to lock player {player_id}: {e}") from e

    try:
        yield token
    finally:
        try:
            _release(r=r, key=key, token=token)
        except redis.RedisError:
            # The TTL frees the lock anyway.
            logger.exception("failed to release %s", key)
