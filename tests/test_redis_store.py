from __future__ import annotations

import fakeredis
import pytest

from conftest import FakeClock
from tapworks.core.events import EngineEvent
from tapworks.core.outcomes import ConcurrencyConflict, StorageUnavailable
from tapworks.engine import ProgressionEngine, new_player
from tapworks.lock import player_lock, player_lock_key
from tapworks.player_store import PLAYERS_SET_KEY, RedisPlayerRepository
from tapworks.streams import player_stream_key, read_events


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


def test_save_is_a_compare_and_swap(r: fakeredis.FakeRedis, catalog, clock: FakeClock) -> None:
    repo = RedisPlayerRepository(r=r)
    p = new_player("p1", clock(), catalog)

    first = repo.save(p, expected_version=0)
    assert first is not None and first.version == 1

    stale = repo.save(p, expected_version=0)
    assert stale is None

    loaded = repo.load("p1")
    assert loaded is not None and loaded.version == 1
    assert r.sismember(PLAYERS_SET_KEY, "p1")
    assert repo.list_ids() == ["p1"]


def test_events_commit_with_the_record(r: fakeredis.FakeRedis, catalog, clock: FakeClock) -> None:
    repo = RedisPlayerRepository(r=r)
    p = new_player("p1", clock(), catalog)
    event = EngineEvent.at(type="level_up", player_id="p1", payload={"from_level": 1, "to_level": 2}, ts=clock())

    repo.save(p, expected_version=0, events=[event])
    repo.save(p, expected_version=0, events=[event])

    entries = r.xrange(player_stream_key("p1"))
    assert len(entries) == 1
    _, fields = entries[0]
    assert fields["type"] == "level_up"
    assert fields["player_id"] == "p1"
    assert fields["to_level"] == "2"
    assert read_events(r=r, player_id="p1")[0][1] == fields


def test_storage_errors_are_wrapped(catalog, clock: FakeClock) -> None:
    server = fakeredis.FakeServer()
    server.connected = False
    repo = RedisPlayerRepository(r=fakeredis.FakeRedis(server=server, decode_responses=True))

    with pytest.raises(StorageUnavailable):
        repo.load("p1")
    with pytest.raises(StorageUnavailable):
        repo.save(new_player("p1", clock(), catalog), expected_version=0)
    with pytest.raises(StorageUnavailable):
        with repo.lock("p1"):
            pass


def test_lock_is_exclusive_and_released(r: fakeredis.FakeRedis) -> None:
    with player_lock(r=r, player_id="p1") as token:
        assert r.get(player_lock_key("p1")) == token
        with pytest.raises(ConcurrencyConflict):
            with player_lock(r=r, player_id="p1", wait_ms=20):
                pass

    assert r.get(player_lock_key("p1")) is None


def test_lock_release_leaves_a_foreign_token_alone(r: fakeredis.FakeRedis) -> None:
    with player_lock(r=r, player_id="p1", ttl_ms=10_000):
        # Our TTL lapsed and another holder took over.
        r.set(player_lock_key("p1"), "someone-else")

    assert r.get(player_lock_key("p1")) == "someone-else"


def test_engine_on_redis_repository(r: fakeredis.FakeRedis, catalog, clock: FakeClock) -> None:
    engine = ProgressionEngine(repo=RedisPlayerRepository(r=r), catalog_provider=lambda: catalog, clock=clock)

    for _ in range(3):
        assert engine.tap("p1").ok
    clock.advance(hours=10)
    engine.sync("p1")
    outcome = engine.purchase_upgrade("p1", "tap-power")

    assert outcome.ok
    stored = RedisPlayerRepository(r=r).load("p1")
    assert stored is not None
    assert stored.version == 5
    assert stored.upgrade_levels == {"tap-power": 1}
    types = [f["type"] for _, f in r.xrange(player_stream_key("p1"))]
    assert "upgrade_purchased" in types
    assert "objective_completed" in types
