from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from pydantic import BaseModel

from tapworks.api.models import (
    BoosterAction,
    ClaimAchievementAction,
    ClaimTaskAction,
    PlayerAction,
    PurchaseAction,
    SpinWheelAction,
    SyncAction,
    TapAction,
    VipAction,
)
from tapworks.core.outcomes import Outcome, Rejection, RejectionCode
from tapworks.engine import ProgressionEngine


@dataclass(frozen=True, slots=True)
class ActionResult:
    action: str
    outcome: Outcome[Any]

    def result_payload(self) -> dict[str, Any]:
        value = self.outcome.value
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json")
        return {}


def dispatch_action(*, engine: ProgressionEngine, player_id: str, action: PlayerAction) -> ActionResult:
    """Entry point for UIs and bots that speak one generic action endpoint.

    Each typed action maps onto exactly one engine operation; the engine does
    the locking, validation and persistence.
    """

    outcome: Outcome[Any]
    if isinstance(action, TapAction):
        outcome = engine.tap(player_id)
    elif isinstance(action, PurchaseAction):
        outcome = engine.purchase_upgrade(player_id, action.upgrade_id)
    elif isinstance(action, BoosterAction):
        outcome = engine.activate_booster(
            player_id,
            category=action.category,
            multiplier=action.multiplier,
            duration=timedelta(seconds=action.duration_seconds),
        )
    elif isinstance(action, VipAction):
        outcome = engine.activate_vip(player_id, action.tier)
    elif isinstance(action, ClaimTaskAction):
        outcome = engine.claim_task(player_id, action.task_id)
    elif isinstance(action, ClaimAchievementAction):
        outcome = engine.claim_achievement(player_id, action.achievement_id, action.tier)
    elif isinstance(action, SyncAction):
        outcome = engine.sync(player_id)
    elif isinstance(action, SpinWheelAction):
        outcome = engine.spin_wheel(player_id)
    else:
        name = getattr(action, "action", type(action).__name__)
        outcome = Outcome(rejection=Rejection(RejectionCode.unknown_action, f"Unknown action: {name}"))
        return ActionResult(action=str(name), outcome=outcome)

    return ActionResult(action=action.action, outcome=outcome)
