from __future__ import annotations

from datetime import datetime

from tapworks.api.models import EffectiveStats, PlayerState
from tapworks.catalog.registry import GameCatalog
from tapworks.core.pricing import discount_percent
from tapworks.core.progression import next_threshold
from tapworks.core.reconcile import energy_regen_rate, max_energy, passive_rate_per_hour
from tapworks.core.tapping import tap_value


def effective_stats(player: PlayerState, now: datetime, catalog: GameCatalog) -> EffectiveStats:
    """Current rates with upgrades, boosters and VIP applied."""

    upcoming = next_threshold(player.lifetime_earned, catalog.levels.thresholds)
    return EffectiveStats(
        lp_per_tap=tap_value(player, catalog, now),
        lp_per_hour=passive_rate_per_hour(player, catalog, now),
        max_energy=max_energy(player, catalog),
        energy_regen_rate=energy_regen_rate(player, catalog, now),
        tap_energy_cost=catalog.settings.tap_energy_cost,
        discount_percent=discount_percent(player.upgrade_levels, catalog),
        level=player.level,
        next_level_at=upcoming.required if upcoming is not None else None,
    )
