from __future__ import annotations

import os
import random
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

TEST_GAME_DATA = Path(__file__).resolve().parent / "game-data"
T0 = datetime(2025, 1, 1, tzinfo=UTC)


class FakeClock:
    """Deterministic clock; time only moves when a test says so."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs (PyCharm/CLI).

    In CI we don't auto-load `.env`, so a developer's local economy overrides
    can't leak into test expectations.
    """

    if os.environ.get("CI") and os.environ.get("TAPWORKS_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


@pytest.fixture(scope="session", autouse=True)
def _init_catalog_from_test_fixtures(_load_dotenv_for_tests: None) -> None:
    """Initialize the catalog from `tests/game-data` and forbid the built-in fallback.

    This keeps tests hermetic and prevents coupling to the repo's real game data.
    """

    os.environ["TAPWORKS_STRICT_CATALOG"] = "1"
    os.environ["TAPWORKS_GAME_DATA_DIR"] = str(TEST_GAME_DATA)

    from tapworks.catalog.singleton import init_catalog, reset_catalog_for_tests

    reset_catalog_for_tests()
    init_catalog(data_dir=TEST_GAME_DATA)


@pytest.fixture()
def catalog():
    from tapworks.catalog.singleton import get_catalog

    return get_catalog()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def client_and_redis(clock: FakeClock):
    """FastAPI TestClient wired to fakeredis and the fake clock."""

    import fakeredis
    from fastapi.testclient import TestClient

    from tapworks.api.deps import get_clock, get_redis, get_rng
    from tapworks.main import app

    r = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_rng] = lambda: random.Random(0)
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
