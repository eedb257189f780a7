"""Prize wheel: one weighted random reward per cooldown window."""

from __future__ import annotations

import math
import random
from datetime import datetime, timedelta

from tapworks.api.models import PlayerState, WheelSpinResult
from tapworks.catalog.models import WheelPrize
from tapworks.catalog.registry import GameCatalog
from tapworks.core.boosters import vip_active
from tapworks.core.outcomes import Rejection, RejectionCode
from tapworks.core.rewards import apply_rewards


def next_spin_at(player: PlayerState, catalog: GameCatalog) -> datetime | None:
    if player.last_wheel_spin is None:
        return None
    return player.last_wheel_spin + timedelta(hours=catalog.settings.wheel_cooldown_hours)


def eligible_prizes(player: PlayerState, now: datetime, catalog: GameCatalog) -> list[WheelPrize]:
    is_vip = vip_active(player, now)
    return [
        p
        for p in catalog.wheel_prizes.values()
        if player.level >= p.min_level and (is_vip or not p.vip_only)
    ]


def spin_wheel(player: PlayerState, now: datetime, catalog: GameCatalog, rng: random.Random) -> WheelSpinResult | Rejection:
    ready_at = next_spin_at(player, catalog)
    if ready_at is not None and now < ready_at:
        minutes = math.ceil((ready_at - now).total_seconds() / 60)
        return Rejection(RejectionCode.wheel_cooldown, f"Wheel is cooling down: {minutes} min left")

    prizes = eligible_prizes(player, now, catalog)
    if not prizes:
        return Rejection(RejectionCode.no_eligible_prizes, "No wheel prizes available for this player")

    prize = rng.choices(prizes, weights=[p.weight for p in prizes], k=1)[0]
    summary = apply_rewards(player, [prize.reward], catalog)
    player.last_wheel_spin = now

    return WheelSpinResult(
        prize_id=prize.id,
        name=prize.name,
        reward=prize.reward,
        currency_credited=summary.currency,
        energy_credited=summary.energy,
        unlocked=summary.unlocked,
        new_currency=player.currency,
        new_energy=player.energy,
        next_spin_at=now + timedelta(hours=catalog.settings.wheel_cooldown_hours),
    )
