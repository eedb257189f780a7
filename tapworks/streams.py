from __future__ import annotations

from collections.abc import Sequence
from typing import cast

import redis

from tapworks.core.events import EngineEvent

# Streams are trimmed approximately; the feed is for observers, not an audit log.
STREAM_MAXLEN = 1_000


def player_stream_key(player_id: str) -> str:
    return f"events:player:{player_id}"


def stream_entries(events: Sequence[EngineEvent]) -> list[tuple[str, dict[str, str]]]:
    return [(player_stream_key(e.player_id), e.as_fields()) for e in events]


def append_events(*, pipe: redis.client.Pipeline, events: Sequence[EngineEvent]) -> None:
    """Queue XADDs on a pipeline so events commit together with the record."""

    for key, fields in stream_entries(events):
        pipe.xadd(key, {str(k): str(v) for k, v in fields.items()}, maxlen=STREAM_MAXLEN, approximate=True)


def read_events(*, r: redis.Redis, player_id: str, count: int = 50) -> list[tuple[str, dict[str, str]]]:
    """Most recent events for a player, oldest first."""

    entries = r.xrevrange(player_stream_key(player_id), count=count)
    return [(cast(str, sid), cast(dict[str, str], fields)) for sid, fields in reversed(entries)]
