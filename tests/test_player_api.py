from __future__ import annotations

from collections.abc import Generator

import fakeredis
import pytest

from conftest import FakeClock
from tapworks.api.deps import get_redis, get_repository
from tapworks.lock import player_lock_key
from tapworks.main import app
from tapworks.player_store import RedisPlayerRepository


def test_unknown_player_reads_as_defaults(client_and_redis) -> None:
    client, r = client_and_redis

    res = client.get("/players/p1")

    assert res.status_code == 200
    body = res.json()
    assert body["version"] == 0
    assert body["energy"] == 1000
    assert body["level"] == 1
    # Reads never create records.
    assert client.get("/players").json() == {"player_ids": []}


def test_tap_persists_and_lists_player(client_and_redis) -> None:
    client, _ = client_and_redis

    res = client.post("/players/p1/tap")

    assert res.status_code == 200
    assert res.json() == {"gained": 1.0, "new_currency": 1.0, "new_energy": 999.0}
    assert client.get("/players").json() == {"player_ids": ["p1"]}
    player = client.get("/players/p1").json()
    assert player["version"] == 1
    assert player["total_taps"] == 1


def test_stats_reflect_upgrades_and_next_level(client_and_redis) -> None:
    client, _ = client_and_redis

    stats = client.get("/players/p1/stats").json()

    assert stats["lp_per_tap"] == 1
    assert stats["lp_per_hour"] == 10
    assert stats["max_energy"] == 1000
    assert stats["level"] == 1
    assert stats["next_level_at"] == 100


def test_purchase_rejections_map_to_http(client_and_redis) -> None:
    client, _ = client_and_redis

    broke = client.post("/players/p1/upgrades/tap-power/purchase")
    missing = client.post("/players/p1/upgrades/nope/purchase")

    assert broke.status_code == 422
    assert broke.json()["detail"]["code"] == "insufficient_funds"
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "upgrade_not_found"
    # Nothing was written for either rejection.
    assert client.get("/players/p1").json()["version"] == 0


def test_upgrade_offers(client_and_redis) -> None:
    client, _ = client_and_redis

    offers = {o["upgrade_id"]: o for o in client.get("/players/p1/upgrades").json()}

    assert offers["tap-power"]["next_cost"] == 100
    assert offers["tap-power"]["affordable"] is False
    assert offers["mega-tap"]["locked"] is True
    assert offers["one-shot"]["maxed"] is False


def test_vip_offline_income_then_purchase(client_and_redis, clock: FakeClock) -> None:
    client, _ = client_and_redis

    vip = client.post("/players/p1/vip", json={"tier": "lifetime"})
    assert vip.status_code == 200
    assert vip.json()["expires_at"] is None

    clock.advance(hours=12)
    sync = client.post("/players/p1/sync").json()
    # Offline income is capped at 8 hours: 10 LP/h x 5 x 8h.
    assert sync["currency_gained"] == pytest.approx(400)
    assert sync["capped"] is True

    bought = client.post("/players/p1/upgrades/tap-power/purchase")
    assert bought.status_code == 200
    assert bought.json()["new_level"] == 1
    assert bought.json()["new_currency"] == pytest.approx(300)

    events = client.get("/players/p1/events", params={"count": 10}).json()
    types = [e["fields"]["type"] for e in events["events"]]
    assert "vip_activated" in types
    assert types[-1] == "upgrade_purchased"


def test_booster_endpoint(client_and_redis) -> None:
    client, _ = client_and_redis

    ok = client.post("/players/p1/boosters", json={"category": "tap", "multiplier": 3, "duration_seconds": 60})
    weak = client.post("/players/p1/boosters", json={"category": "tap", "multiplier": 1, "duration_seconds": 60})

    assert ok.status_code == 200
    assert ok.json()["multiplier"] == 3
    assert weak.status_code == 422
    assert weak.json()["detail"]["code"] == "invalid_booster"
    assert client.post("/players/p1/tap").json()["gained"] == 3


def test_unknown_vip_tier(client_and_redis) -> None:
    client, _ = client_and_redis

    res = client.post("/players/p1/vip", json={"tier": "gold"})

    assert res.status_code == 422
    assert res.json()["detail"]["code"] == "invalid_vip_tier"


def test_tasks_and_achievements(client_and_redis) -> None:
    client, _ = client_and_redis

    early = client.post("/players/p1/tasks/first-taps/claim")
    assert early.status_code == 422
    assert early.json()["detail"]["code"] == "not_completed"

    for _ in range(3):
        client.post("/players/p1/tap")

    tasks = {t["objective_id"]: t for t in client.get("/players/p1/tasks").json()}
    assert tasks["first-taps"]["claimable"] is True

    claimed = client.post("/players/p1/tasks/first-taps/claim")
    assert claimed.status_code == 200
    assert claimed.json()["currency_credited"] == 50

    achievements = client.get("/players/p1/achievements").json()
    assert achievements[0]["objective_id"] == "first-steps"
    assert achievements[0]["claimable"] is True

    tier1 = client.post("/players/p1/achievements/first-steps/tiers/1/claim")
    assert tier1.status_code == 200
    assert tier1.json()["tier"] == 1

    unknown = client.post("/players/p1/achievements/nope/tiers/1/claim")
    assert unknown.status_code == 404


def test_events_count_is_bounded(client_and_redis) -> None:
    client, _ = client_and_redis

    assert client.get("/players/p1/events", params={"count": 0}).status_code == 422
    assert client.get("/players/p1/events", params={"count": 201}).status_code == 422
    assert client.get("/players/p1/events").json() == {"player_id": "p1", "events": []}


def test_storage_outage_is_503(client_and_redis) -> None:
    client, _ = client_and_redis
    server = fakeredis.FakeServer()
    server.connected = False
    down = fakeredis.FakeRedis(server=server, decode_responses=True)

    def _down() -> Generator[fakeredis.FakeRedis, None, None]:
        yield down

    app.dependency_overrides[get_redis] = _down

    assert client.get("/players/p1").status_code == 503
    assert client.post("/players/p1/tap").status_code == 503


def test_busy_player_is_409(client_and_redis) -> None:
    client, r = client_and_redis
    r.set(player_lock_key("p1"), "another-request", px=60_000)
    app.dependency_overrides[get_repository] = lambda: RedisPlayerRepository(r=r, lock_wait_ms=0)

    res = client.post("/players/p1/tap")

    assert res.status_code == 409
    assert r.get("tapworks:player:p1") is None


def test_booster_endpoint_rejects_out_of_range_values(client_and_redis) -> None:
    client, _ = client_and_redis

    huge = client.post("/players/p1/boosters", json={"category": "tap", "multiplier": 2, "duration_seconds": 1e15})
    zero = client.post("/players/p1/boosters", json={"category": "tap", "multiplier": 2, "duration_seconds": 0})
    year = client.post(
        "/players/p1/boosters", json={"category": "tap", "multiplier": 2, "duration_seconds": 365 * 24 * 3600}
    )

    assert huge.status_code == 422
    assert zero.status_code == 422
    assert year.status_code == 200
    assert client.get("/players/p1").json()["active_boosters"]["tap"]["multiplier"] == 2


def test_wheel_spin_and_cooldown(client_and_redis, clock: FakeClock) -> None:
    client, _ = client_and_redis

    prizes = client.get("/players/p1/wheel/prizes").json()
    assert [p["id"] for p in prizes] == ["coins"]

    spin = client.post("/players/p1/wheel/spin")
    assert spin.status_code == 200
    assert spin.json()["prize_id"] == "coins"
    assert spin.json()["new_currency"] == 100

    cooling = client.post("/players/p1/wheel/spin")
    assert cooling.status_code == 429
    assert cooling.json()["detail"]["code"] == "wheel_cooldown"

    clock.advance(hours=24)
    assert client.post("/players/p1/wheel/spin").status_code == 200

    events = client.get("/players/p1/events", params={"count": 10}).json()
    assert [e["fields"]["type"] for e in events["events"]].count("wheel_spun") == 2
