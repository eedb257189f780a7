"""Task and tiered-achievement tracking.

Progress is derived from player stats; the lifecycle of each task (and of each
achievement tier) is guarded by `ObjectiveFSM`. Claiming is always explicit.
"""

from __future__ import annotations

from datetime import datetime

from tapworks.api.models import (
    AchievementProgress,
    ClaimResult,
    ObjectiveProgress,
    ObjectiveView,
    PlayerState,
    ProgressStatus,
)
from tapworks.catalog.models import AchievementDefinition, StatKey, TaskDefinition
from tapworks.catalog.registry import GameCatalog
from tapworks.core.events import EngineEvent
from tapworks.core.outcomes import Rejection, RejectionCode
from tapworks.core.rewards import apply_rewards
from tapworks.fsm import ObjectiveFSM


def stat_value(player: PlayerState, stat: StatKey, upgrade_id: str | None = None) -> float:
    if stat is StatKey.upgrade_level:
        return float(player.upgrade_levels.get(upgrade_id or "", 0))
    return float(getattr(player, stat.value))


def _advance(progress: ObjectiveProgress, value: float, now: datetime) -> bool:
    """Update an active tier; returns True when it just completed."""

    if progress.status is not ProgressStatus.active:
        return False
    progress.progress = min(value, progress.target)
    if progress.progress < progress.target:
        return False

    fsm = ObjectiveFSM(progress)
    fsm.complete()
    fsm.sync_status_to_model()
    if progress.completed_at is None:
        progress.completed_at = now
    return True


def _task_progress(player: PlayerState, defn: TaskDefinition) -> ObjectiveProgress:
    progress = player.task_progress.get(defn.id)
    if progress is None:
        progress = ObjectiveProgress(target=defn.target)
        player.task_progress[defn.id] = progress
    elif progress.status is ProgressStatus.active:
        # Follow admin edits until the task completes.
        progress.target = defn.target
    return progress


def _achievement_progress(player: PlayerState, defn: AchievementDefinition) -> AchievementProgress:
    progress = player.achievement_progress.get(defn.id)
    if progress is None:
        first = defn.first_tier
        progress = AchievementProgress(tier=first.tier, target=first.target)
        player.achievement_progress[defn.id] = progress
    elif progress.status is ProgressStatus.active:
        current = defn.tier(progress.tier)
        if current is not None:
            progress.target = current.target
    return progress


def refresh_objectives(player: PlayerState, now: datetime, catalog: GameCatalog) -> list[EngineEvent]:
    """Re-evaluate every task and the current tier of every achievement.

    Completed tiers stay completed even if the underlying stat later drops.
    """

    events: list[EngineEvent] = []

    for defn in catalog.tasks.values():
        progress = _task_progress(player, defn)
        if _advance(progress, stat_value(player, defn.stat, defn.upgrade_id), now):
            events.append(
                EngineEvent.at(
                    type="objective_completed",
                    player_id=player.player_id,
                    payload={"kind": "task", "objective_id": defn.id},
                    ts=now,
                )
            )

    for defn in catalog.achievements.values():
        progress = _achievement_progress(player, defn)
        if _advance(progress, stat_value(player, defn.stat, defn.upgrade_id), now):
            events.append(
                EngineEvent.at(
                    type="objective_completed",
                    player_id=player.player_id,
                    payload={"kind": "achievement", "objective_id": defn.id, "tier": progress.tier},
                    ts=now,
                )
            )

    return events


def claim_task(player: PlayerState, task_id: str, now: datetime, catalog: GameCatalog) -> ClaimResult | Rejection:
    defn = catalog.tasks.get(task_id)
    if defn is None:
        return Rejection(RejectionCode.objective_not_found, f"Unknown task: {task_id}")

    progress = _task_progress(player, defn)
    if progress.status is ProgressStatus.claimed:
        return Rejection(RejectionCode.already_claimed, f"Task {task_id} was already claimed")
    if progress.status is not ProgressStatus.completed:
        return Rejection(RejectionCode.not_completed, f"Task {task_id} is not completed ({progress.progress:g}/{progress.target:g})")

    fsm = ObjectiveFSM(progress)
    fsm.claim()
    fsm.sync_status_to_model()
    progress.claimed_at = now
    player.tasks_claimed += 1

    summary = apply_rewards(player, defn.rewards, catalog)
    return ClaimResult(
        objective_id=defn.id,
        rewards=list(defn.rewards),
        currency_credited=summary.currency,
        energy_credited=summary.energy,
        unlocked=summary.unlocked,
        new_currency=player.currency,
        new_energy=player.energy,
    )


def claim_achievement(
    player: PlayerState,
    achievement_id: str,
    tier: int,
    now: datetime,
    catalog: GameCatalog,
) -> ClaimResult | Rejection:
    """Claim one tier of an achievement.

    Only the player's current tier can be claimed. On success the next tier
    starts fresh and is evaluated against the current stats right away.
    """

    defn = catalog.achievements.get(achievement_id)
    if defn is None:
        return Rejection(RejectionCode.objective_not_found, f"Unknown achievement: {achievement_id}")
    tier_def = defn.tier(tier)
    if tier_def is None:
        return Rejection(RejectionCode.objective_not_found, f"Achievement {achievement_id} has no tier {tier}")

    progress = _achievement_progress(player, defn)
    if tier in progress.claimed_tiers or tier < progress.tier or progress.status is ProgressStatus.claimed:
        return Rejection(RejectionCode.already_claimed, f"Tier {tier} of {achievement_id} was already claimed")
    if tier > progress.tier or progress.status is not ProgressStatus.completed:
        return Rejection(RejectionCode.not_completed, f"Tier {tier} of {achievement_id} is not completed")

    fsm = ObjectiveFSM(progress)
    fsm.claim()
    fsm.sync_status_to_model()
    progress.claimed_at = now
    progress.claimed_tiers[tier] = now
    player.achievements_claimed += 1

    summary = apply_rewards(player, tier_def.rewards, catalog)

    following = defn.next_tier(tier)
    if following is not None:
        fresh = AchievementProgress(
            tier=following.tier,
            target=following.target,
            claimed_tiers=dict(progress.claimed_tiers),
        )
        player.achievement_progress[defn.id] = fresh
        _advance(fresh, stat_value(player, defn.stat, defn.upgrade_id), now)

    return ClaimResult(
        objective_id=defn.id,
        tier=tier,
        rewards=list(tier_def.rewards),
        currency_credited=summary.currency,
        energy_credited=summary.energy,
        unlocked=summary.unlocked,
        new_currency=player.currency,
        new_energy=player.energy,
    )


def list_tasks(player: PlayerState, catalog: GameCatalog) -> list[ObjectiveView]:
    views: list[ObjectiveView] = []
    for defn in catalog.tasks.values():
        progress = player.task_progress.get(defn.id) or ObjectiveProgress(target=defn.target)
        views.append(
            ObjectiveView(
                objective_id=defn.id,
                name=defn.name,
                status=progress.status,
                progress=progress.progress,
                target=progress.target,
                claimable=progress.status is ProgressStatus.completed,
                rewards=list(defn.rewards),
            )
        )
    return views


def list_achievements(player: PlayerState, catalog: GameCatalog) -> list[ObjectiveView]:
    views: list[ObjectiveView] = []
    for defn in catalog.achievements.values():
        progress = player.achievement_progress.get(defn.id) or AchievementProgress(
            tier=defn.first_tier.tier, target=defn.first_tier.target
        )
        tier_def = defn.tier(progress.tier) or defn.first_tier
        views.append(
            ObjectiveView(
                objective_id=defn.id,
                name=defn.name,
                tier=progress.tier,
                status=progress.status,
                progress=progress.progress,
                target=progress.target,
                claimable=progress.status is ProgressStatus.completed,
                rewards=list(tier_def.rewards),
            )
        )
    return views
