from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from tapworks.api.models import PlayerState
from tapworks.catalog.models import CurrencyReward, EnergyReward, Reward, UnlockReward
from tapworks.catalog.registry import GameCatalog
from tapworks.core.reconcile import credit_currency, credit_energy


@dataclass(slots=True)
class RewardSummary:
    currency: float = 0.0
    # Actually credited; energy rewards are clamped at the cap.
    energy: float = 0.0
    unlocked: list[str] = field(default_factory=list)


def apply_rewards(player: PlayerState, rewards: Iterable[Reward], catalog: GameCatalog) -> RewardSummary:
    summary = RewardSummary()
    for reward in rewards:
        if isinstance(reward, CurrencyReward):
            credit_currency(player, reward.amount)
            summary.currency += reward.amount
        elif isinstance(reward, EnergyReward):
            summary.energy += credit_energy(player, reward.amount, catalog)
        elif isinstance(reward, UnlockReward):
            if reward.key not in player.unlocks:
                player.unlocks.append(reward.key)
                summary.unlocked.append(reward.key)
        else:
            raise TypeError(f"Unsupported reward: {reward!r}")
    return summary
