from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from tapworks.api.models import PlayerState
from tapworks.catalog.registry import GameCatalog
from tapworks.core.outcomes import Rejection, RejectionCode
from tapworks.core.pricing import quote_upgrade


@dataclass(frozen=True, slots=True)
class ValidationContext:
    """Inputs available to validators.

    Keep this tight so it can be logged alongside a rejection.
    """

    player_id: str
    action: str
    now: datetime
    catalog: GameCatalog
    upgrade_id: str | None = None


class ActionValidator(ABC):
    """A small, composable check for an incoming action.

    Returns a `Rejection` to refuse the action, or None to let it through.
    """

    @abstractmethod
    def check(self, *, ctx: ValidationContext, player: PlayerState) -> Rejection | None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class EnergyValidator(ActionValidator):
    """A tap needs at least its full energy cost; energy never goes below zero."""

    def check(self, *, ctx: ValidationContext, player: PlayerState) -> Rejection | None:
        cost = ctx.catalog.settings.tap_energy_cost
        if player.energy <= 0 or player.energy < cost:
            return Rejection(
                RejectionCode.insufficient_energy,
                f"Tap needs {cost:g} energy, player has {player.energy:g}",
            )
        return None


@dataclass(frozen=True, slots=True)
class UpgradeExistsValidator(ActionValidator):
    def check(self, *, ctx: ValidationContext, player: PlayerState) -> Rejection | None:
        if ctx.upgrade_id is None or ctx.upgrade_id not in ctx.catalog.upgrades:
            return Rejection(RejectionCode.upgrade_not_found, f"Unknown upgrade: {ctx.upgrade_id}")
        return None


@dataclass(frozen=True, slots=True)
class MaxLevelValidator(ActionValidator):
    def check(self, *, ctx: ValidationContext, player: PlayerState) -> Rejection | None:
        defn = ctx.catalog.upgrades.get(ctx.upgrade_id or "")
        if defn is None:
            return None
        level = player.upgrade_levels.get(defn.id, 0)
        if level >= defn.max_level:
            return Rejection(RejectionCode.max_level_reached, f"{defn.id} is already at max level {defn.max_level}")
        return None


@dataclass(frozen=True, slots=True)
class UpgradeUnlockedValidator(ActionValidator):
    """Player level and prerequisite-upgrade gates."""

    def check(self, *, ctx: ValidationContext, player: PlayerState) -> Rejection | None:
        defn = ctx.catalog.upgrades.get(ctx.upgrade_id or "")
        if defn is None:
            return None
        if player.level < defn.required_level:
            return Rejection(
                RejectionCode.upgrade_locked,
                f"{defn.id} requires player level {defn.required_level} (player is level {player.level})",
            )
        if defn.requires_upgrade is not None:
            owned = player.upgrade_levels.get(defn.requires_upgrade, 0)
            if owned < defn.requires_level:
                return Rejection(
                    RejectionCode.upgrade_locked,
                    f"{defn.id} requires {defn.requires_upgrade} at level {defn.requires_level} (owned: {owned})",
                )
        return None


@dataclass(frozen=True, slots=True)
class AffordabilityValidator(ActionValidator):
    def check(self, *, ctx: ValidationContext, player: PlayerState) -> Rejection | None:
        defn = ctx.catalog.upgrades.get(ctx.upgrade_id or "")
        if defn is None:
            return None
        quote = quote_upgrade(defn, player.upgrade_levels, ctx.catalog)
        if player.currency < quote.final_cost:
            return Rejection(
                RejectionCode.insufficient_funds,
                f"{defn.id} costs {quote.final_cost}, player has {player.currency:g}",
            )
        return None


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[ActionValidator, ...]

    def check(self, *, ctx: ValidationContext, player: PlayerState) -> Rejection | None:
        for v in self.validators:
            rejection = v.check(ctx=ctx, player=player)
            if rejection is not None:
                return rejection
        return None


# Order matters: the first failing check decides the rejection code.
DEFAULT_ACTION_PIPELINES: dict[str, ValidatorPipeline] = {
    "tap": ValidatorPipeline(validators=(EnergyValidator(),)),
    "purchase": ValidatorPipeline(
        validators=(
            UpgradeExistsValidator(),
            MaxLevelValidator(),
            UpgradeUnlockedValidator(),
            AffordabilityValidator(),
        )
    ),
}


def pipeline_for_action(action: str) -> ValidatorPipeline:
    pipe = DEFAULT_ACTION_PIPELINES.get(action)
    if pipe is None:
        raise ValueError(f"Unknown action: {action}")
    return pipe
