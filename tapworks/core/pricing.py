from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass

from tapworks.catalog.models import UpgradeCategory, UpgradeDefinition
from tapworks.catalog.registry import GameCatalog


def _raw_cost(defn: UpgradeDefinition, level: int) -> int:
    # Rounding first keeps e.g. 114.99999999 from flooring to 114.
    return math.floor(round(defn.base_cost * defn.cost_growth**level, 9))


def base_cost(defn: UpgradeDefinition, level: int) -> int:
    """Undiscounted price of buying the level after `level`.

    `floor(base_cost × cost_growth^level)`, bumped by one wherever flooring
    would make it equal to the previous level's price, so prices are strictly
    increasing for any growth factor > 1.
    """

    if level < 0:
        raise ValueError("level must be >= 0")

    cost = _raw_cost(defn, 0)
    for n in range(1, level + 1):
        cost = max(_raw_cost(defn, n), cost + 1)
    return cost


def discount_percent(upgrade_levels: Mapping[str, int], catalog: GameCatalog) -> float:
    """Stacked cost-reduction bonus, capped at the configured ceiling."""

    total = catalog.upgrades.total_effect(upgrade_levels, UpgradeCategory.cost_reduction)
    return min(total, catalog.settings.max_discount_percent)


@dataclass(frozen=True, slots=True)
class UpgradeQuote:
    upgrade_id: str
    current_level: int
    base_cost: int
    discount_percent: float
    final_cost: int

    @property
    def saved(self) -> int:
        return self.base_cost - self.final_cost


def quote_upgrade(defn: UpgradeDefinition, upgrade_levels: Mapping[str, int], catalog: GameCatalog) -> UpgradeQuote:
    level = upgrade_levels.get(defn.id, 0)
    undiscounted = base_cost(defn, level)
    pct = discount_percent(upgrade_levels, catalog)
    final = max(1, math.floor(round(undiscounted * (1 - pct / 100), 9)))
    return UpgradeQuote(
        upgrade_id=defn.id,
        current_level=level,
        base_cost=undiscounted,
        discount_percent=pct,
        final_cost=final,
    )
