from __future__ import annotations

from datetime import datetime

from tapworks.api.models import PlayerState, ReconcileReport
from tapworks.catalog.models import BoosterCategory, UpgradeCategory
from tapworks.catalog.registry import GameCatalog
from tapworks.core.boosters import effective_multiplier, vip_multiplier

SECONDS_PER_HOUR = 3600.0


def max_energy(player: PlayerState, catalog: GameCatalog) -> float:
    bonus = catalog.upgrades.total_effect(player.upgrade_levels, UpgradeCategory.energy_cap)
    return catalog.settings.base_max_energy + bonus


def energy_regen_rate(player: PlayerState, catalog: GameCatalog, now: datetime) -> float:
    """Energy per second, including an unexpired energy booster."""

    base = catalog.settings.base_energy_regen
    bonus = catalog.upgrades.total_effect(player.upgrade_levels, UpgradeCategory.energy_regen)
    return (base + bonus) * effective_multiplier(player, BoosterCategory.energy_regen, now)


def passive_rate_per_hour(player: PlayerState, catalog: GameCatalog, now: datetime) -> float:
    base = catalog.settings.base_passive_per_hour
    bonus = catalog.upgrades.total_effect(player.upgrade_levels, UpgradeCategory.passive_income)
    rate = base + bonus
    rate *= vip_multiplier(player, now)
    rate *= effective_multiplier(player, BoosterCategory.passive_income, now)
    return rate


def credit_currency(player: PlayerState, amount: float) -> None:
    """Credit currency and count it toward lifetime earnings."""

    if amount <= 0:
        return
    player.currency += amount
    player.lifetime_earned += amount


def credit_energy(player: PlayerState, amount: float, catalog: GameCatalog) -> float:
    """Add energy up to the cap; returns the amount actually added."""

    cap = max_energy(player, catalog)
    if amount <= 0 or player.energy >= cap:
        return 0.0
    added = min(amount, cap - player.energy)
    player.energy += added
    return added


def reconcile(player: PlayerState, now: datetime, catalog: GameCatalog) -> ReconcileReport:
    """Bring energy and passive income up to `now`.

    No-op when `now <= last_tick`, which makes it idempotent for a fixed `now`
    and keeps `last_tick` non-decreasing. Booster and VIP multipliers are
    evaluated once, at `now`, for the whole interval.
    """

    if now <= player.last_tick:
        return ReconcileReport()

    elapsed = (now - player.last_tick).total_seconds()

    regen = energy_regen_rate(player, catalog, now)
    energy_gained = credit_energy(player, regen * elapsed, catalog)

    offline_cap = catalog.settings.max_offline_hours
    elapsed_hours = elapsed / SECONDS_PER_HOUR
    capped = elapsed_hours > offline_cap
    hours = min(elapsed_hours, offline_cap)
    currency_gained = passive_rate_per_hour(player, catalog, now) * hours
    credit_currency(player, currency_gained)

    player.last_tick = now

    return ReconcileReport(
        elapsed_seconds=elapsed,
        energy_gained=energy_gained,
        currency_gained=currency_gained,
        capped=capped,
    )
