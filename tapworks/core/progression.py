from __future__ import annotations

from bisect import bisect_right
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING

from tapworks.catalog.models import CatalogError, LevelThreshold
from tapworks.core.events import EngineEvent

if TYPE_CHECKING:
    from tapworks.api.models import PlayerState
    from tapworks.catalog.registry import GameCatalog


def validate_thresholds(thresholds: Sequence[LevelThreshold]) -> None:
    """Both levels and requirements must be strictly increasing."""

    if not thresholds:
        raise CatalogError("Level table must contain at least one threshold")

    for prev, cur in zip(thresholds, thresholds[1:]):
        if cur.level <= prev.level:
            raise CatalogError(f"Level table is not strictly increasing: level {cur.level} follows {prev.level}")
        if cur.required <= prev.required:
            raise CatalogError(
                f"Level table is not strictly increasing: level {cur.level} requires {cur.required}, "
                f"level {prev.level} requires {prev.required}"
            )


def level_for(lifetime_earned: float, thresholds: Sequence[LevelThreshold]) -> int:
    """Highest level whose requirement is <= lifetime_earned (boundary inclusive).

    Returns 0 when not even the first threshold is reached.
    """

    idx = bisect_right([t.required for t in thresholds], lifetime_earned)
    if idx == 0:
        return 0
    return thresholds[idx - 1].level


def next_threshold(lifetime_earned: float, thresholds: Sequence[LevelThreshold]) -> LevelThreshold | None:
    idx = bisect_right([t.required for t in thresholds], lifetime_earned)
    if idx >= len(thresholds):
        return None
    return thresholds[idx]


def refresh_level(player: PlayerState, now: datetime, catalog: GameCatalog) -> list[EngineEvent]:
    """Recompute the cached level; emits `level_up` when it rises."""

    new_level = level_for(player.lifetime_earned, catalog.levels.thresholds)
    old_level = player.level
    player.level = new_level
    if new_level <= old_level:
        return []
    return [
        EngineEvent.at(
            type="level_up",
            player_id=player.player_id,
            payload={"from_level": old_level, "to_level": new_level},
            ts=now,
        )
    ]
