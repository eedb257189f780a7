from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from tapworks.catalog.models import BoosterCategory, Reward, UpgradeCategory


# Upper bound on a single booster grant.
MAX_BOOSTER_SECONDS = 365 * 24 * 3600


class BoosterActivation(BaseModel):
    category: BoosterCategory
    multiplier: float = Field(..., gt=1, allow_inf_nan=False)
    activated_at: datetime
    expires_at: datetime


class VipStatus(BaseModel):
    tier: str
    multiplier: float
    activated_at: datetime
    # None for lifetime grants.
    expires_at: datetime | None = None


class ProgressStatus(StrEnum):
    active = "active"
    completed = "completed"
    claimed = "claimed"


class ObjectiveProgress(BaseModel):
    status: ProgressStatus = ProgressStatus.active
    progress: float = 0.0
    target: float = 0.0
    completed_at: datetime | None = None
    claimed_at: datetime | None = None


class AchievementProgress(ObjectiveProgress):
    # Current tier number; advances only when the current tier is claimed.
    tier: int = 1
    claimed_tiers: dict[int, datetime] = Field(default_factory=dict)


class PlayerState(BaseModel):
    """Persisted player record (flat; one key per player)."""

    player_id: str
    # Bumped on every committed write; 0 means never stored.
    version: int = 0
    created_at: datetime
    last_tick: datetime

    currency: float = Field(0.0, ge=0)
    energy: float = Field(0.0, ge=0)
    level: int = 0
    lifetime_earned: float = Field(0.0, ge=0)

    total_taps: int = 0
    energy_used: float = 0.0
    upgrades_purchased: int = 0
    tasks_claimed: int = 0
    achievements_claimed: int = 0

    upgrade_levels: dict[str, int] = Field(default_factory=dict)
    active_boosters: dict[BoosterCategory, BoosterActivation] = Field(default_factory=dict)
    vip: VipStatus | None = None

    task_progress: dict[str, ObjectiveProgress] = Field(default_factory=dict)
    achievement_progress: dict[str, AchievementProgress] = Field(default_factory=dict)

    unlocks: list[str] = Field(default_factory=list)
    last_wheel_spin: datetime | None = None


class PlayerListResponse(BaseModel):
    player_ids: list[str]


# ── Operation results ───────────────────────────────


class ReconcileReport(BaseModel):
    elapsed_seconds: float = 0.0
    energy_gained: float = 0.0
    currency_gained: float = 0.0
    # True when passive income hit the offline cap.
    capped: bool = False


class EffectiveStats(BaseModel):
    lp_per_tap: float
    lp_per_hour: float
    max_energy: float
    energy_regen_rate: float
    tap_energy_cost: float
    discount_percent: float
    level: int
    next_level_at: float | None = None


class TapResult(BaseModel):
    gained: float
    new_currency: float
    new_energy: float


class PurchaseResult(BaseModel):
    upgrade_id: str
    new_level: int
    cost_paid: float
    saved: float
    new_currency: float


class ClaimResult(BaseModel):
    objective_id: str
    tier: int | None = None
    rewards: list[Reward]
    currency_credited: float
    energy_credited: float
    unlocked: list[str]
    new_currency: float
    new_energy: float


class WheelSpinResult(BaseModel):
    prize_id: str
    name: str
    reward: Reward
    currency_credited: float
    energy_credited: float
    unlocked: list[str]
    new_currency: float
    new_energy: float
    next_spin_at: datetime


class UpgradeOffer(BaseModel):
    upgrade_id: str
    name: str
    category: UpgradeCategory
    level: int
    max_level: int
    next_cost: float | None
    saved: float
    affordable: bool
    locked: bool
    maxed: bool


class ObjectiveView(BaseModel):
    objective_id: str
    name: str
    tier: int | None = None
    status: ProgressStatus
    progress: float
    target: float
    claimable: bool
    rewards: list[Reward]


# ── Requests ────────────────────────────────────────


class BoosterRequest(BaseModel):
    category: BoosterCategory
    multiplier: float = Field(..., allow_inf_nan=False)
    duration_seconds: float = Field(..., gt=0, le=MAX_BOOSTER_SECONDS, allow_inf_nan=False)


class VipRequest(BaseModel):
    tier: str = Field(..., min_length=1)


class TapAction(BaseModel):
    action: Literal["tap"]


class PurchaseAction(BaseModel):
    action: Literal["purchase"]
    upgrade_id: str


class BoosterAction(BoosterRequest):
    action: Literal["booster"]


class VipAction(VipRequest):
    action: Literal["vip"]


class ClaimTaskAction(BaseModel):
    action: Literal["claim_task"]
    task_id: str


class ClaimAchievementAction(BaseModel):
    action: Literal["claim_achievement"]
    achievement_id: str
    tier: int


class SyncAction(BaseModel):
    action: Literal["sync"]


class SpinWheelAction(BaseModel):
    action: Literal["spin_wheel"]


PlayerActionUnion = (
    TapAction
    | PurchaseAction
    | BoosterAction
    | VipAction
    | ClaimTaskAction
    | ClaimAchievementAction
    | SyncAction
    | SpinWheelAction
)

PlayerAction = Annotated[PlayerActionUnion, Field(discriminator="action")]


class ActionResponse(BaseModel):
    action: str
    result: dict[str, Any]
    player: PlayerState
