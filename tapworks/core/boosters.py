from __future__ import annotations

import math
from datetime import datetime, timedelta

from tapworks.api.models import MAX_BOOSTER_SECONDS, BoosterActivation, PlayerState, VipStatus
from tapworks.catalog.models import BoosterCategory
from tapworks.catalog.registry import GameCatalog
from tapworks.core.outcomes import Rejection, RejectionCode

MAX_BOOSTER_DURATION = timedelta(seconds=MAX_BOOSTER_SECONDS)


def effective_multiplier(player: PlayerState, category: BoosterCategory, now: datetime) -> float:
    """Stored multiplier while `now < expires_at`, else 1.0.

    Expired entries are simply ignored; there is no sweep.
    """

    booster = player.active_boosters.get(category)
    if booster is None or now >= booster.expires_at:
        return 1.0
    return booster.multiplier


def activate_booster(
    player: PlayerState,
    *,
    category: BoosterCategory,
    multiplier: float,
    duration: timedelta,
    now: datetime,
) -> BoosterActivation | Rejection:
    """Start a booster; last activation wins, same-category boosters never stack."""

    if not math.isfinite(multiplier) or multiplier <= 1:
        return Rejection(RejectionCode.invalid_booster, f"Booster multiplier must be a finite number > 1, got {multiplier}")
    if duration <= timedelta(0) or duration > MAX_BOOSTER_DURATION:
        return Rejection(
            RejectionCode.invalid_booster,
            f"Booster duration must be positive and at most {MAX_BOOSTER_DURATION.days} days",
        )

    booster = BoosterActivation(
        category=category,
        multiplier=multiplier,
        activated_at=now,
        expires_at=now + duration,
    )
    player.active_boosters[category] = booster
    return booster


def prune_expired(player: PlayerState, now: datetime) -> list[BoosterCategory]:
    """Drop expired boosters from the record (presentation only; never required)."""

    expired = [c for c, b in player.active_boosters.items() if now >= b.expires_at]
    for c in expired:
        del player.active_boosters[c]
    return expired


def vip_active(player: PlayerState, now: datetime) -> bool:
    vip = player.vip
    return vip is not None and (vip.expires_at is None or now < vip.expires_at)


def vip_multiplier(player: PlayerState, now: datetime) -> float:
    if player.vip is None or not vip_active(player, now):
        return 1.0
    return player.vip.multiplier


def activate_vip(player: PlayerState, *, tier_id: str, now: datetime, catalog: GameCatalog) -> VipStatus | Rejection:
    tier = catalog.vip_tiers.get(tier_id)
    if tier is None:
        return Rejection(RejectionCode.invalid_vip_tier, f"Unknown VIP tier: {tier_id}")

    expires_at = None if tier.duration_days is None else now + timedelta(days=tier.duration_days)
    player.vip = VipStatus(tier=tier.id, multiplier=tier.multiplier, activated_at=now, expires_at=expires_at)
    return player.vip
