from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

EventType = Literal[
    "upgrade_purchased",
    "booster_activated",
    "vip_activated",
    "reward_claimed",
    "level_up",
    "objective_completed",
    "wheel_spun",
]


@dataclass(frozen=True, slots=True)
class EngineEvent:
    type: EventType
    player_id: str
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def at(*, type: EventType, player_id: str, payload: dict[str, Any], ts: datetime) -> "EngineEvent":
        return EngineEvent(type=type, player_id=player_id, payload=payload, ts=ts)

    def as_fields(self) -> dict[str, str]:
        """Flatten into string fields for a Redis Stream entry."""

        fields = {"type": self.type, "player_id": self.player_id, "ts": self.ts.isoformat()}
        for k, v in self.payload.items():
            fields[k] = v if isinstance(v, str) else json.dumps(v, default=str)
        return fields
