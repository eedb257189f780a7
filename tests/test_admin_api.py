from __future__ import annotations

import pytest

from conftest import TEST_GAME_DATA
from tapworks.catalog.singleton import get_catalog, init_catalog, reset_catalog_for_tests


@pytest.fixture(autouse=True)
def _restore_catalog():
    yield
    reset_catalog_for_tests()
    init_catalog(data_dir=TEST_GAME_DATA)


def _upgrade(**overrides: object) -> dict[str, object]:
    body: dict[str, object] = {
        "id": "golden-tap",
        "name": "Golden Tap",
        "category": "tap",
        "base_cost": 5,
        "cost_growth": 2.0,
        "base_effect": 4,
        "max_level": 3,
    }
    body.update(overrides)
    return body


def test_get_catalog_snapshot(client_and_redis) -> None:
    client, _ = client_and_redis

    snap = client.get("/admin/catalog").json()

    assert [u["id"] for u in snap["upgrades"]][:2] == ["tap-power", "passive-studio"]
    assert [lvl["required"] for lvl in snap["levels"]] == [0, 100, 250, 500, 1000]
    assert snap["settings"]["max_offline_hours"] == 8


def test_put_new_upgrade_is_live_immediately(client_and_redis) -> None:
    client, _ = client_and_redis

    res = client.put("/admin/upgrades/golden-tap", json=_upgrade())

    assert res.status_code == 200
    assert "golden-tap" in [u["id"] for u in res.json()["upgrades"]]
    offers = {o["upgrade_id"]: o for o in client.get("/players/p1/upgrades").json()}
    assert offers["golden-tap"]["next_cost"] == 5


def test_put_replaces_existing_upgrade_in_place(client_and_redis) -> None:
    client, _ = client_and_redis
    body = _upgrade(id="tap-power", name="Tap Power II", base_cost=1)

    res = client.put("/admin/upgrades/tap-power", json=body)

    assert res.status_code == 200
    assert res.json()["upgrades"][0]["name"] == "Tap Power II"
    assert len(res.json()["upgrades"]) == 7


def test_invalid_upgrade_leaves_catalog_untouched(client_and_redis) -> None:
    client, _ = client_and_redis
    before = get_catalog()

    res = client.put("/admin/upgrades/golden-tap", json=_upgrade(requires_upgrade="ghost", requires_level=1))

    assert res.status_code == 422
    assert "ghost" in res.json()["detail"]
    assert get_catalog() is before


def test_body_id_must_match_path(client_and_redis) -> None:
    client, _ = client_and_redis

    res = client.put("/admin/upgrades/other", json=_upgrade())

    assert res.status_code == 422


def test_delete_upgrade(client_and_redis) -> None:
    client, _ = client_and_redis

    missing = client.delete("/admin/upgrades/nope")
    referenced = client.delete("/admin/upgrades/passive-studio")
    ok = client.delete("/admin/upgrades/bargain")

    assert missing.status_code == 404
    # studio-owner tracks passive-studio's level.
    assert referenced.status_code == 422
    assert ok.status_code == 200
    assert "bargain" not in [u["id"] for u in ok.json()["upgrades"]]


def test_level_table_must_be_strictly_increasing(client_and_redis) -> None:
    client, _ = client_and_redis

    res = client.put("/admin/levels", json=[{"level": 1, "required": 0}, {"level": 2, "required": 0}])

    assert res.status_code == 422
    assert len(get_catalog().levels.thresholds) == 5


def test_new_level_table_applies_on_next_read(client_and_redis) -> None:
    client, _ = client_and_redis
    client.post("/players/p1/tap")
    assert client.get("/players/p1").json()["level"] == 1

    res = client.put(
        "/admin/levels",
        json=[{"level": 1, "required": 0}, {"level": 2, "required": 1}, {"level": 3, "required": 50}],
    )

    assert res.status_code == 200
    assert client.get("/players/p1").json()["level"] == 2


def test_put_task_and_achievement(client_and_redis) -> None:
    client, _ = client_and_redis
    task = {
        "id": "big-spender",
        "name": "Big Spender",
        "stat": "upgrades_purchased",
        "target": 2,
        "rewards": [{"kind": "energy", "amount": 10}],
    }
    achievement = {
        "id": "grinder",
        "name": "Grinder",
        "stat": "energy_used",
        "tiers": [{"tier": 1, "target": 10}, {"tier": 2, "target": 100}],
    }

    t = client.put("/admin/tasks/big-spender", json=task)
    a = client.put("/admin/achievements/grinder", json=achievement)
    bad = client.put(
        "/admin/achievements/grinder",
        json={**achievement, "tiers": [{"tier": 1, "target": 10}, {"tier": 2, "target": 5}]},
    )

    assert t.status_code == 200
    assert a.status_code == 200
    assert bad.status_code == 422
    tasks = {v["objective_id"] for v in client.get("/players/p1/tasks").json()}
    assert "big-spender" in tasks
    assert "grinder" in get_catalog().achievements


def test_edited_task_target_applies_to_active_progress(client_and_redis) -> None:
    client, _ = client_and_redis
    client.post("/players/p1/tap")
    before = {v["objective_id"]: v for v in client.get("/players/p1/tasks").json()}
    assert before["first-taps"]["target"] == 3

    res = client.put(
        "/admin/tasks/first-taps",
        json={
            "id": "first-taps",
            "name": "First Taps",
            "stat": "total_taps",
            "target": 1,
            "rewards": [{"kind": "currency", "amount": 50}],
        },
    )

    assert res.status_code == 200
    after = {v["objective_id"]: v for v in client.get("/players/p1/tasks").json()}
    assert after["first-taps"]["target"] == 1
    assert after["first-taps"]["claimable"] is True
    assert client.post("/players/p1/tasks/first-taps/claim").status_code == 200


def test_put_wheel_prize(client_and_redis) -> None:
    client, _ = client_and_redis
    prize = {"id": "coins", "name": "Big Coins", "weight": 1, "reward": {"kind": "currency", "amount": 250}}

    res = client.put("/admin/wheel/prizes/coins", json=prize)
    mismatch = client.put("/admin/wheel/prizes/other", json=prize)
    weightless = client.put("/admin/wheel/prizes/coins", json={**prize, "weight": 0})

    assert res.status_code == 200
    assert {p["id"]: p for p in res.json()["wheel_prizes"]}["coins"]["name"] == "Big Coins"
    assert mismatch.status_code == 422
    assert weightless.status_code == 422
    spin = client.post("/players/p1/wheel/spin").json()
    assert spin["prize_id"] == "coins"
    assert spin["currency_credited"] == 250


def test_app_startup_loads_the_catalog() -> None:
    from fastapi.testclient import TestClient

    from tapworks.main import app

    reset_catalog_for_tests()

    with TestClient(app) as client:
        assert get_catalog() is not None
        assert client.get("/info").json()["name"] == "tapworks"
