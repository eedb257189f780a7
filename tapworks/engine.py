from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from tapworks.api.models import (
    BoosterActivation,
    ClaimResult,
    EffectiveStats,
    ObjectiveView,
    PlayerState,
    PurchaseResult,
    ReconcileReport,
    TapResult,
    UpgradeOffer,
    VipStatus,
    WheelSpinResult,
)
from tapworks.catalog.models import BoosterCategory, WheelPrize
from tapworks.catalog.registry import GameCatalog
from tapworks.catalog.singleton import get_catalog
from tapworks.core import boosters, objectives, purchases, tapping, wheel
from tapworks.core.events import EngineEvent, EventType
from tapworks.core.outcomes import ConcurrencyConflict, Outcome, Rejection
from tapworks.core.progression import level_for, refresh_level
from tapworks.core.reconcile import max_energy, reconcile
from tapworks.core.stats import effective_stats
from tapworks.player_store import PlayerRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def new_player(player_id: str, now: datetime, catalog: GameCatalog) -> PlayerState:
    """Default state on first contact: full energy, level from the table."""

    player = PlayerState(player_id=player_id, created_at=now, last_tick=now)
    player.energy = max_energy(player, catalog)
    player.level = level_for(player.lifetime_earned, catalog.levels.thresholds)
    return player


@dataclass(slots=True)
class Mutation:
    """Working copy handed to an operation, already reconciled to `now`."""

    player: PlayerState
    now: datetime
    catalog: GameCatalog
    report: ReconcileReport


def _action_event(action: str, player_id: str, result: Any, now: datetime) -> EngineEvent | None:
    kind: EventType
    if isinstance(result, PurchaseResult):
        kind = "upgrade_purchased"
        payload: dict[str, Any] = {
            "upgrade_id": result.upgrade_id,
            "new_level": result.new_level,
            "cost_paid": result.cost_paid,
        }
    elif isinstance(result, BoosterActivation):
        kind = "booster_activated"
        payload = {
            "category": result.category.value,
            "multiplier": result.multiplier,
            "expires_at": result.expires_at.isoformat(),
        }
    elif isinstance(result, VipStatus):
        kind = "vip_activated"
        payload = {
            "tier": result.tier,
            "multiplier": result.multiplier,
            "expires_at": result.expires_at.isoformat() if result.expires_at else "",
        }
    elif isinstance(result, WheelSpinResult):
        kind = "wheel_spun"
        payload = {
            "prize_id": result.prize_id,
            "currency": result.currency_credited,
            "energy": result.energy_credited,
            "unlocked": result.unlocked,
        }
    elif isinstance(result, ClaimResult):
        kind = "reward_claimed"
        payload = {
            "action": action,
            "objective_id": result.objective_id,
            "tier": result.tier if result.tier is not None else "",
            "currency": result.currency_credited,
            "energy": result.energy_credited,
            "unlocked": result.unlocked,
        }
    else:
        return None
    return EngineEvent.at(type=kind, player_id=player_id, payload=payload, ts=now)


class ProgressionEngine:
    """Reconcile -> mutate -> conditionally persist, for one player at a time.

    Every mutating operation holds the player's lock and commits with a
    version check; on a version mismatch it reloads and tries again, up to
    `max_attempts`. Rejections are returned in the `Outcome` and never persist
    anything, not even the reconcile.
    """

    def __init__(
        self,
        *,
        repo: PlayerRepository,
        catalog_provider: Callable[[], GameCatalog] = get_catalog,
        clock: Callable[[], datetime] = utc_now,
        max_attempts: int = 5,
        rng: random.Random | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._repo = repo
        self._catalog_provider = catalog_provider
        self._clock = clock
        self._max_attempts = max_attempts
        self._rng = rng if rng is not None else random.Random()

    @property
    def repo(self) -> PlayerRepository:
        return self._repo

    def _working_copy(self, player_id: str, now: datetime, catalog: GameCatalog) -> tuple[PlayerState, int]:
        stored = self._repo.load(player_id)
        player = stored if stored is not None else new_player(player_id, now, catalog)
        return player, player.version

    def _refresh(self, player: PlayerState, now: datetime, catalog: GameCatalog) -> list[EngineEvent]:
        events = refresh_level(player, now, catalog)
        events.extend(objectives.refresh_objectives(player, now, catalog))
        return events

    def _mutate(self, player_id: str, action: str, apply: Callable[[Mutation], T | Rejection]) -> Outcome[T]:
        with self._repo.lock(player_id):
            for attempt in range(1, self._max_attempts + 1):
                now = self._clock()
                catalog = self._catalog_provider()
                player, expected = self._working_copy(player_id, now, catalog)

                report = reconcile(player, now, catalog)
                events = self._refresh(player, now, catalog)

                m = Mutation(player=player, now=now, catalog=catalog, report=report)
                result = apply(m)
                if isinstance(result, Rejection):
                    logger.info("%s rejected for %s: %s (%s)", action, player_id, result.code.value, result.message)
                    return Outcome(rejection=result)

                action_event = _action_event(action, player_id, result, now)
                if action_event is not None:
                    events.append(action_event)
                events.extend(self._refresh(player, now, catalog))

                committed = self._repo.save(player, expected_version=expected, events=events)
                if committed is None:
                    logger.warning(
                        "version conflict on %s for %s (attempt %d/%d)", action, player_id, attempt, self._max_attempts
                    )
                    continue

                for e in events:
                    if e.type in ("upgrade_purchased", "reward_claimed", "level_up", "wheel_spun"):
                        logger.info("%s %s %s", player_id, e.type, e.payload)
                return Outcome(value=result, player=committed, events=tuple(events))

        logger.error("giving up on %s for %s after %d attempts", action, player_id, self._max_attempts)
        raise ConcurrencyConflict(f"Player {player_id} kept changing; {action} not applied")

    def _read(self, player_id: str, view: Callable[[PlayerState, datetime, GameCatalog], T]) -> T:
        now = self._clock()
        catalog = self._catalog_provider()
        player, _ = self._working_copy(player_id, now, catalog)
        reconcile(player, now, catalog)
        self._refresh(player, now, catalog)
        return view(player, now, catalog)

    # ── Read-only queries (reconciled on a copy, never persisted) ──

    def get_player(self, player_id: str) -> PlayerState:
        return self._read(player_id, lambda p, now, catalog: p)

    def get_effective_stats(self, player_id: str) -> EffectiveStats:
        return self._read(player_id, effective_stats)

    def quote_upgrades(self, player_id: str) -> list[UpgradeOffer]:
        return self._read(player_id, purchases.quote_upgrades)

    def list_tasks(self, player_id: str) -> list[ObjectiveView]:
        return self._read(player_id, lambda p, now, catalog: objectives.list_tasks(p, catalog))

    def list_achievements(self, player_id: str) -> list[ObjectiveView]:
        return self._read(player_id, lambda p, now, catalog: objectives.list_achievements(p, catalog))

    def list_wheel_prizes(self, player_id: str) -> list[WheelPrize]:
        return self._read(player_id, wheel.eligible_prizes)

    def list_player_ids(self) -> list[str]:
        return self._repo.list_ids()

    def recent_events(self, player_id: str, *, count: int = 50) -> list[tuple[str, dict[str, str]]]:
        return self._repo.recent_events(player_id, count=count)

    # ── Mutations ──

    def tap(self, player_id: str) -> Outcome[TapResult]:
        return self._mutate(player_id, "tap", lambda m: tapping.apply_tap(m.player, m.now, m.catalog))

    def purchase_upgrade(self, player_id: str, upgrade_id: str) -> Outcome[PurchaseResult]:
        return self._mutate(
            player_id,
            "purchase",
            lambda m: purchases.apply_purchase(m.player, upgrade_id, m.now, m.catalog),
        )

    def activate_booster(
        self,
        player_id: str,
        *,
        category: BoosterCategory,
        multiplier: float,
        duration: timedelta,
    ) -> Outcome[BoosterActivation]:
        return self._mutate(
            player_id,
            "booster",
            lambda m: boosters.activate_booster(
                m.player,
                category=category,
                multiplier=multiplier,
                duration=duration,
                now=m.now,
            ),
        )

    def activate_vip(self, player_id: str, tier: str) -> Outcome[VipStatus]:
        return self._mutate(
            player_id,
            "vip",
            lambda m: boosters.activate_vip(m.player, tier_id=tier, now=m.now, catalog=m.catalog),
        )

    def claim_task(self, player_id: str, task_id: str) -> Outcome[ClaimResult]:
        return self._mutate(
            player_id,
            "claim_task",
            lambda m: objectives.claim_task(m.player, task_id, m.now, m.catalog),
        )

    def claim_achievement(self, player_id: str, achievement_id: str, tier: int) -> Outcome[ClaimResult]:
        return self._mutate(
            player_id,
            "claim_achievement",
            lambda m: objectives.claim_achievement(m.player, achievement_id, tier, m.now, m.catalog),
        )

    def sync(self, player_id: str) -> Outcome[ReconcileReport]:
        def _apply(m: Mutation) -> ReconcileReport:
            boosters.prune_expired(m.player, m.now)
            return m.report

        return self._mutate(player_id, "sync", _apply)

    def spin_wheel(self, player_id: str) -> Outcome[WheelSpinResult]:
        return self._mutate(
            player_id,
            "spin_wheel",
            lambda m: wheel.spin_wheel(m.player, m.now, m.catalog, self._rng),
        )
