from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class CatalogError(RuntimeError):
    """Game configuration is invalid. Fatal at startup, never per-request."""


class CatalogFileMissing(CatalogError):
    pass


class UpgradeCategory(StrEnum):
    tap = "tap"
    passive_income = "passive_income"
    energy_regen = "energy_regen"
    cost_reduction = "cost_reduction"
    energy_cap = "energy_cap"


class BoosterCategory(StrEnum):
    tap = "tap"
    passive_income = "passive_income"
    energy_regen = "energy_regen"


class StatKey(StrEnum):
    total_taps = "total_taps"
    lifetime_earned = "lifetime_earned"
    currency = "currency"
    energy = "energy"
    level = "level"
    upgrades_purchased = "upgrades_purchased"
    energy_used = "energy_used"
    tasks_claimed = "tasks_claimed"
    # Level of one specific upgrade; requires `upgrade_id` on the definition.
    upgrade_level = "upgrade_level"


class EconomySettings(BaseModel):
    base_tap_value: float = Field(1.0, ge=0)
    tap_energy_cost: float = Field(1.0, gt=0)
    base_max_energy: float = Field(1000.0, gt=0)
    # Energy per second.
    base_energy_regen: float = Field(1.0, ge=0)
    base_passive_per_hour: float = Field(10.0, ge=0)
    max_offline_hours: float = Field(8.0, gt=0)
    max_discount_percent: float = Field(50.0, ge=0, lt=100)
    wheel_cooldown_hours: float = Field(24.0, ge=0)


class CurrencyReward(BaseModel):
    kind: Literal["currency"] = "currency"
    amount: float = Field(..., gt=0)


class EnergyReward(BaseModel):
    kind: Literal["energy"] = "energy"
    amount: float = Field(..., gt=0)


class UnlockReward(BaseModel):
    kind: Literal["unlock"] = "unlock"
    key: str = Field(..., min_length=1)


Reward = Annotated[CurrencyReward | EnergyReward | UnlockReward, Field(discriminator="kind")]


class UpgradeDefinition(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    category: UpgradeCategory
    base_cost: float = Field(..., gt=0)
    cost_growth: float = Field(..., gt=1)
    # Bonus per owned level; the unit depends on the category
    # (LP per tap, LP per hour, energy per second, percent, max energy).
    base_effect: float = Field(..., ge=0)
    max_level: int = Field(..., ge=1)

    # Unlock gates.
    required_level: int = Field(0, ge=0)
    requires_upgrade: str | None = None
    requires_level: int = Field(0, ge=0)

    def effect_at(self, level: int) -> float:
        return self.base_effect * max(0, min(level, self.max_level))


class LevelThreshold(BaseModel):
    level: int = Field(..., ge=0)
    required: float = Field(..., ge=0)
    name: str = ""


class TaskDefinition(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    stat: StatKey
    upgrade_id: str | None = None
    target: float = Field(..., gt=0)
    rewards: list[Reward] = Field(default_factory=list)


class AchievementTier(BaseModel):
    tier: int = Field(..., ge=1)
    target: float = Field(..., gt=0)
    rewards: list[Reward] = Field(default_factory=list)


class AchievementDefinition(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    stat: StatKey
    upgrade_id: str | None = None
    tiers: list[AchievementTier] = Field(..., min_length=1)

    def tier(self, number: int) -> AchievementTier | None:
        return next((t for t in self.tiers if t.tier == number), None)

    def next_tier(self, number: int) -> AchievementTier | None:
        return next((t for t in self.tiers if t.tier > number), None)

    @property
    def first_tier(self) -> AchievementTier:
        return self.tiers[0]


class VipTier(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    multiplier: float = Field(..., ge=1)
    # None means the grant never expires.
    duration_days: float | None = Field(None, gt=0)


class WheelPrize(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    # Relative odds among the prizes a player is eligible for.
    weight: float = Field(..., gt=0, allow_inf_nan=False)
    reward: Reward
    min_level: int = Field(0, ge=0)
    vip_only: bool = False


class CatalogSnapshot(BaseModel):
    """Serializable view of the live catalog (admin console)."""

    settings: EconomySettings
    upgrades: list[UpgradeDefinition]
    levels: list[LevelThreshold]
    tasks: list[TaskDefinition]
    achievements: list[AchievementDefinition]
    vip_tiers: list[VipTier]
    wheel_prizes: list[WheelPrize] = Field(default_factory=list)
