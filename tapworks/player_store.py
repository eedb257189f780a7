from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from collections.abc import Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager

import redis

from tapworks.api.models import PlayerState
from tapworks.core.events import EngineEvent
from tapworks.core.outcomes import ConcurrencyConflict, StorageUnavailable
from tapworks.lock import player_lock
from tapworks.streams import STREAM_MAXLEN, append_events, read_events

logger = logging.getLogger(__name__)


PLAYERS_SET_KEY = "tapworks:players"
PLAYER_KEY_PREFIX = "tapworks:player:"  # + {player_id}


def _player_key(player_id: str) -> str:
    return f"{PLAYER_KEY_PREFIX}{player_id}"


class PlayerRepository(ABC):
    """Versioned storage for player records.

    `save` is a compare-and-swap: it only writes when the stored version still
    equals `expected_version`, and returns None otherwise. Events passed to
    `save` are committed together with the record.
    """

    @abstractmethod
    def load(self, player_id: str) -> PlayerState | None:
        raise NotImplementedError

    @abstractmethod
    def save(
        self,
        player: PlayerState,
        *,
        expected_version: int,
        events: Sequence[EngineEvent] = (),
    ) -> PlayerState | None:
        raise NotImplementedError

    @abstractmethod
    def lock(self, player_id: str) -> AbstractContextManager[object]:
        raise NotImplementedError

    @abstractmethod
    def list_ids(self) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def recent_events(self, player_id: str, *, count: int = 50) -> list[tuple[str, dict[str, str]]]:
        raise NotImplementedError


class InMemoryPlayerRepository(PlayerRepository):
    """Process-local repository for tests and single-process dev runs.

    Records are kept serialized so callers can never mutate stored state
    through a shared reference.
    """

    def __init__(self, *, lock_timeout_s: float = 2.0) -> None:
        self._records: dict[str, str] = {}
        self._events: dict[str, deque[tuple[str, dict[str, str]]]] = defaultdict(lambda: deque(maxlen=STREAM_MAXLEN))
        self._seq = 0
        self._store_lock = threading.Lock()
        self._player_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._lock_timeout_s = lock_timeout_s

    def load(self, player_id: str) -> PlayerState | None:
        with self._store_lock:
            raw = self._records.get(player_id)
        if raw is None:
            return None
        return PlayerState.model_validate_json(raw)

    def save(
        self,
        player: PlayerState,
        *,
        expected_version: int,
        events: Sequence[EngineEvent] = (),
    ) -> PlayerState | None:
        with self._store_lock:
            raw = self._records.get(player.player_id)
            current = 0 if raw is None else int(json.loads(raw)["version"])
            if current != expected_version:
                return None
            stored = player.model_copy(update={"version": expected_version + 1})
            self._records[player.player_id] = stored.model_dump_json()
            for event in events:
                self._seq += 1
                self._events[event.player_id].append((f"{self._seq}-0", event.as_fields()))
            return stored

    @contextmanager
    def lock(self, player_id: str) -> Iterator[None]:
        with self._store_lock:
            plock = self._player_locks[player_id]
        if not plock.acquire(timeout=self._lock_timeout_s):
            raise ConcurrencyConflict(f"Player {player_id} is busy")
        try:
            yield
        finally:
            plock.release()

    def list_ids(self) -> list[str]:
        with self._store_lock:
            return sorted(self._records)

    def recent_events(self, player_id: str, *, count: int = 50) -> list[tuple[str, dict[str, str]]]:
        with self._store_lock:
            entries = list(self._events.get(player_id, ()))
        return entries[-count:]


class RedisPlayerRepository(PlayerRepository):
    """Player records as JSON strings, one key per player.

    Writes use WATCH/MULTI/EXEC: the version check and the write (plus any
    event stream entries) either all apply or none do.
    """

    def __init__(self, *, r: redis.Redis, lock_ttl_ms: int = 5_000, lock_wait_ms: int = 2_000) -> None:
        self._r = r
        self._lock_ttl_ms = lock_ttl_ms
        self._lock_wait_ms = lock_wait_ms

    def load(self, player_id: str) -> PlayerState | None:
        try:
            raw = self._r.get(_player_key(player_id))
        except redis.RedisError as e:
            raise StorageUnavailable(f"Failed to load player {player_id}: {e}") from e
        if not raw:
            return None
        return PlayerState.model_validate_json(raw)

    def save(
        self,
        player: PlayerState,
        *,
        expected_version: int,
        events: Sequence[EngineEvent] = (),
    ) -> PlayerState | None:
        key = _player_key(player.player_id)
        stored = player.model_copy(update={"version": expected_version + 1})

        try:
            with self._r.pipeline() as pipe:
                pipe.watch(key)
                raw = pipe.get(key)
                current = 0 if raw is None else int(json.loads(raw)["version"])
                if current != expected_version:
                    logger.debug("version mismatch for %s: stored=%d expected=%d", player.player_id, current, expected_version)
                    pipe.unwatch()
                    return None

                pipe.multi()
                pipe.set(key, stored.model_dump_json())
                pipe.sadd(PLAYERS_SET_KEY, player.player_id)
                append_events(pipe=pipe, events=events)
                pipe.execute()
        except redis.WatchError:
            logger.debug("record %s changed during save", player.player_id)
            return None
        except redis.TimeoutError as e:
            # EXEC may or may not have applied; the caller cannot tell, so
            # report the store as unavailable and let the client re-read.
            raise StorageUnavailable(f"Timed out saving player {player.player_id}") from e
        except redis.RedisError as e:
            raise StorageUnavailable(f"Failed to save player {player.player_id}: {e}") from e

        return stored

    @contextmanager
    def lock(self, player_id: str) -> Iterator[str]:
        with player_lock(r=self._r, player_id=player_id, ttl_ms=self._lock_ttl_ms, wait_ms=self._lock_wait_ms) as token:
            yield token

    def list_ids(self) -> list[str]:
        try:
            return sorted(self._r.smembers(PLAYERS_SET_KEY))
        except redis.RedisError as e:
            raise StorageUnavailable(f"Failed to list players: {e}") from e

    def recent_events(self, player_id: str, *, count: int = 50) -> list[tuple[str, dict[str, str]]]:
        try:
            return read_events(r=self._r, player_id=player_id, count=count)
        except redis.RedisError as e:
            raise StorageUnavailable(f"Failed to read events for {player_id}: {e}") from e
