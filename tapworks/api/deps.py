from __future__ import annotations

import random
from collections.abc import Callable, Generator
from datetime import datetime

import redis
from fastapi import Depends

from tapworks.engine import ProgressionEngine, utc_now
from tapworks.infra.redis_client import create_redis
from tapworks.player_store import PlayerRepository, RedisPlayerRepository


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_rng() -> random.Random:
    return random.Random()


def get_repository(r: redis.Redis = Depends(get_redis)) -> PlayerRepository:
    return RedisPlayerRepository(r=r)


def get_engine(
    repo: PlayerRepository = Depends(get_repository),
    clock: Callable[[], datetime] = Depends(get_clock),
    rng: random.Random = Depends(get_rng),
) -> ProgressionEngine:
    return ProgressionEngine(repo=repo, clock=clock, rng=rng)
