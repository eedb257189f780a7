from __future__ import annotations

from datetime import datetime

from tapworks.api.models import PlayerState, PurchaseResult, UpgradeOffer
from tapworks.catalog.registry import GameCatalog
from tapworks.core.outcomes import Rejection
from tapworks.core.pricing import quote_upgrade
from tapworks.core.validators import UpgradeUnlockedValidator, ValidationContext, pipeline_for_action


def apply_purchase(player: PlayerState, upgrade_id: str, now: datetime, catalog: GameCatalog) -> PurchaseResult | Rejection:
    """Buy the next level of an upgrade for an already reconciled player.

    The debit and the level bump happen together on the working copy; the
    engine persists both in one conditional write.
    """

    ctx = ValidationContext(
        player_id=player.player_id,
        action="purchase",
        now=now,
        catalog=catalog,
        upgrade_id=upgrade_id,
    )
    rejection = pipeline_for_action("purchase").check(ctx=ctx, player=player)
    if rejection is not None:
        return rejection

    # The pipeline already rejected unknown ids.
    defn = catalog.upgrades.by_id[upgrade_id]
    quote = quote_upgrade(defn, player.upgrade_levels, catalog)

    player.currency -= quote.final_cost
    player.upgrade_levels[upgrade_id] = quote.current_level + 1
    player.upgrades_purchased += 1

    return PurchaseResult(
        upgrade_id=upgrade_id,
        new_level=quote.current_level + 1,
        cost_paid=quote.final_cost,
        saved=quote.saved,
        new_currency=player.currency,
    )


def quote_upgrades(player: PlayerState, now: datetime, catalog: GameCatalog) -> list[UpgradeOffer]:
    offers: list[UpgradeOffer] = []
    unlocked = UpgradeUnlockedValidator()
    for defn in catalog.upgrades:
        level = player.upgrade_levels.get(defn.id, 0)
        maxed = level >= defn.max_level
        ctx = ValidationContext(player_id=player.player_id, action="purchase", now=now, catalog=catalog, upgrade_id=defn.id)
        locked = unlocked.check(ctx=ctx, player=player) is not None

        if maxed:
            next_cost, saved, affordable = None, 0.0, False
        else:
            quote = quote_upgrade(defn, player.upgrade_levels, catalog)
            next_cost, saved = float(quote.final_cost), float(quote.saved)
            affordable = not locked and player.currency >= quote.final_cost

        offers.append(
            UpgradeOffer(
                upgrade_id=defn.id,
                name=defn.name,
                category=defn.category,
                level=level,
                max_level=defn.max_level,
                next_cost=next_cost,
                saved=saved,
                affordable=affordable,
                locked=locked,
                maxed=maxed,
            )
        )
    return offers
