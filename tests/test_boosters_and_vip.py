from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import T0
from tapworks.api.models import BoosterActivation, VipStatus
from tapworks.catalog.models import BoosterCategory
from tapworks.core.boosters import (
    activate_booster,
    activate_vip,
    effective_multiplier,
    prune_expired,
    vip_multiplier,
)
from tapworks.core.outcomes import Rejection, RejectionCode
from tapworks.engine import new_player


def test_booster_expires_exactly_at_expiry(catalog) -> None:
    p = new_player("p1", T0, catalog)
    booster = activate_booster(p, category=BoosterCategory.tap, multiplier=2.0, duration=timedelta(minutes=10), now=T0)

    assert isinstance(booster, BoosterActivation)
    assert booster.expires_at == T0 + timedelta(minutes=10)
    assert effective_multiplier(p, BoosterCategory.tap, T0 + timedelta(minutes=9, seconds=59)) == 2.0
    assert effective_multiplier(p, BoosterCategory.tap, T0 + timedelta(minutes=10)) == 1.0


def test_boosters_are_per_category(catalog) -> None:
    p = new_player("p1", T0, catalog)
    activate_booster(p, category=BoosterCategory.tap, multiplier=2.0, duration=timedelta(minutes=10), now=T0)

    assert effective_multiplier(p, BoosterCategory.passive_income, T0) == 1.0
    assert effective_multiplier(p, BoosterCategory.energy_regen, T0) == 1.0


def test_reactivation_replaces_instead_of_stacking(catalog) -> None:
    p = new_player("p1", T0, catalog)
    activate_booster(p, category=BoosterCategory.tap, multiplier=2.0, duration=timedelta(minutes=10), now=T0)
    activate_booster(
        p,
        category=BoosterCategory.tap,
        multiplier=3.0,
        duration=timedelta(minutes=1),
        now=T0 + timedelta(minutes=5),
    )

    assert effective_multiplier(p, BoosterCategory.tap, T0 + timedelta(minutes=5, seconds=30)) == 3.0
    # The newer, shorter booster wins even though the old one would still be running.
    assert effective_multiplier(p, BoosterCategory.tap, T0 + timedelta(minutes=7)) == 1.0


def test_invalid_boosters_are_rejected(catalog) -> None:
    p = new_player("p1", T0, catalog)

    weak = activate_booster(p, category=BoosterCategory.tap, multiplier=1.0, duration=timedelta(minutes=1), now=T0)
    instant = activate_booster(p, category=BoosterCategory.tap, multiplier=2.0, duration=timedelta(0), now=T0)

    assert isinstance(weak, Rejection) and weak.code is RejectionCode.invalid_booster
    assert isinstance(instant, Rejection) and instant.code is RejectionCode.invalid_booster
    assert p.active_boosters == {}


def test_prune_expired_drops_only_expired(catalog) -> None:
    p = new_player("p1", T0, catalog)
    activate_booster(p, category=BoosterCategory.tap, multiplier=2.0, duration=timedelta(minutes=1), now=T0)
    activate_booster(p, category=BoosterCategory.energy_regen, multiplier=2.0, duration=timedelta(hours=1), now=T0)

    dropped = prune_expired(p, T0 + timedelta(minutes=2))

    assert dropped == [BoosterCategory.tap]
    assert set(p.active_boosters) == {BoosterCategory.energy_regen}


def test_vip_tier_with_duration_expires(catalog) -> None:
    p = new_player("p1", T0, catalog)
    vip = activate_vip(p, tier_id="basic", now=T0, catalog=catalog)

    assert isinstance(vip, VipStatus)
    assert vip.expires_at == T0 + timedelta(days=30)
    assert vip_multiplier(p, T0 + timedelta(days=29)) == 2.0
    assert vip_multiplier(p, T0 + timedelta(days=30)) == 1.0


def test_lifetime_vip_never_expires(catalog) -> None:
    p = new_player("p1", T0, catalog)
    activate_vip(p, tier_id="lifetime", now=T0, catalog=catalog)

    assert p.vip is not None and p.vip.expires_at is None
    assert vip_multiplier(p, T0 + timedelta(days=3650)) == 5.0


def test_unknown_vip_tier_is_rejected(catalog) -> None:
    p = new_player("p1", T0, catalog)

    result = activate_vip(p, tier_id="platinum", now=T0, catalog=catalog)

    assert isinstance(result, Rejection)
    assert result.code is RejectionCode.invalid_vip_tier
    assert p.vip is None


@pytest.mark.parametrize("multiplier", [float("inf"), float("nan"), -float("inf")])
def test_non_finite_multiplier_is_rejected(catalog, multiplier: float) -> None:
    p = new_player("p1", T0, catalog)
    before = p.model_dump()

    result = activate_booster(p, category=BoosterCategory.tap, multiplier=multiplier, duration=timedelta(minutes=1), now=T0)

    assert isinstance(result, Rejection) and result.code is RejectionCode.invalid_booster
    assert p.model_dump() == before


def test_duration_longer_than_a_year_is_rejected(catalog) -> None:
    p = new_player("p1", T0, catalog)

    too_long = activate_booster(p, category=BoosterCategory.tap, multiplier=2.0, duration=timedelta(days=366), now=T0)
    year = activate_booster(p, category=BoosterCategory.tap, multiplier=2.0, duration=timedelta(days=365), now=T0)

    assert isinstance(too_long, Rejection) and too_long.code is RejectionCode.invalid_booster
    assert isinstance(year, BoosterActivation)
    assert year.expires_at == T0 + timedelta(days=365)
