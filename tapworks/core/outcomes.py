from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

from tapworks.api.models import PlayerState
from tapworks.core.events import EngineEvent


class RejectionCode(StrEnum):
    insufficient_energy = "insufficient_energy"
    insufficient_funds = "insufficient_funds"
    max_level_reached = "max_level_reached"
    upgrade_not_found = "upgrade_not_found"
    upgrade_locked = "upgrade_locked"
    not_completed = "not_completed"
    already_claimed = "already_claimed"
    objective_not_found = "objective_not_found"
    invalid_booster = "invalid_booster"
    invalid_vip_tier = "invalid_vip_tier"
    wheel_cooldown = "wheel_cooldown"
    no_eligible_prizes = "no_eligible_prizes"
    unknown_action = "unknown_action"


@dataclass(frozen=True, slots=True)
class Rejection:
    """An expected, non-fatal validation outcome. Returned, never raised."""

    code: RejectionCode
    message: str


class ConcurrencyConflict(RuntimeError):
    """The player record kept changing underneath us (or stayed locked)."""


class StorageUnavailable(RuntimeError):
    """The backing store failed; nothing was written."""


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Outcome(Generic[T]):
    """Result of an engine operation.

    - `value`: operation result when it succeeded.
    - `rejection`: why it was refused; nothing was persisted in that case.
    - `player`: the committed player record.
    - `events`: events emitted by the committed transition.
    """

    value: T | None = None
    rejection: Rejection | None = None
    player: PlayerState | None = None
    events: tuple[EngineEvent, ...] = ()

    @property
    def ok(self) -> bool:
        return self.rejection is None

    def unwrap(self) -> T:
        if self.rejection is not None:
            raise ValueError(f"{self.rejection.code.value}: {self.rejection.message}")
        assert self.value is not None
        return self.value
