from __future__ import annotations

from datetime import datetime

from tapworks.api.models import PlayerState, TapResult
from tapworks.catalog.models import BoosterCategory, UpgradeCategory
from tapworks.catalog.registry import GameCatalog
from tapworks.core.boosters import effective_multiplier
from tapworks.core.outcomes import Rejection
from tapworks.core.reconcile import credit_currency
from tapworks.core.validators import ValidationContext, pipeline_for_action


def tap_value(player: PlayerState, catalog: GameCatalog, now: datetime) -> float:
    base = catalog.settings.base_tap_value
    bonus = catalog.upgrades.total_effect(player.upgrade_levels, UpgradeCategory.tap)
    return (base + bonus) * effective_multiplier(player, BoosterCategory.tap, now)


def apply_tap(player: PlayerState, now: datetime, catalog: GameCatalog) -> TapResult | Rejection:
    """Apply one tap to an already reconciled player."""

    ctx = ValidationContext(player_id=player.player_id, action="tap", now=now, catalog=catalog)
    rejection = pipeline_for_action("tap").check(ctx=ctx, player=player)
    if rejection is not None:
        return rejection

    cost = catalog.settings.tap_energy_cost
    gained = tap_value(player, catalog, now)

    player.energy -= cost
    player.energy_used += cost
    player.total_taps += 1
    credit_currency(player, gained)

    return TapResult(gained=gained, new_currency=player.currency, new_energy=player.energy)
