from __future__ import annotations

import csv
import json
import logging
import os
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from tapworks.catalog.models import (
    AchievementDefinition,
    AchievementTier,
    CatalogError,
    CatalogFileMissing,
    CatalogSnapshot,
    CurrencyReward,
    EconomySettings,
    LevelThreshold,
    StatKey,
    TaskDefinition,
    UpgradeCategory,
    UpgradeDefinition,
    VipTier,
    WheelPrize,
)
from tapworks.core.progression import validate_thresholds

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UpgradeCatalog:
    """Purchasable upgrades, keyed by id, in display order."""

    by_id: dict[str, UpgradeDefinition]
    order: tuple[str, ...]

    @staticmethod
    def from_definitions(defs: Iterable[UpgradeDefinition]) -> "UpgradeCatalog":
        by_id: dict[str, UpgradeDefinition] = {}
        order: list[str] = []
        for d in defs:
            if d.id in by_id:
                raise CatalogError(f"Duplicate upgrade id: {d.id}")
            by_id[d.id] = d
            order.append(d.id)

        for d in by_id.values():
            if d.requires_upgrade is None:
                continue
            if d.requires_upgrade == d.id:
                raise CatalogError(f"Upgrade {d.id} cannot require itself")
            if d.requires_upgrade not in by_id:
                raise CatalogError(f"Upgrade {d.id} requires unknown upgrade: {d.requires_upgrade}")

        return UpgradeCatalog(by_id=by_id, order=tuple(order))

    def get(self, upgrade_id: str) -> UpgradeDefinition | None:
        return self.by_id.get(upgrade_id)

    def __contains__(self, item: object) -> bool:
        return isinstance(item, str) and item in self.by_id

    def __iter__(self) -> Iterator[UpgradeDefinition]:
        return (self.by_id[i] for i in self.order)

    def __len__(self) -> int:
        return len(self.order)

    def by_category(self, category: UpgradeCategory) -> tuple[UpgradeDefinition, ...]:
        return tuple(d for d in self if d.category == category)

    def total_effect(self, upgrade_levels: Mapping[str, int], category: UpgradeCategory) -> float:
        """Sum of `bonus × level` over owned upgrades of one category.

        Levels for upgrades no longer in the catalog are ignored.
        """

        total = 0.0
        for uid, level in upgrade_levels.items():
            d = self.by_id.get(uid)
            if d is not None and d.category == category and level > 0:
                total += d.effect_at(level)
        return total


@dataclass(frozen=True, slots=True)
class LevelTable:
    thresholds: tuple[LevelThreshold, ...]

    @staticmethod
    def from_thresholds(rows: Iterable[LevelThreshold]) -> "LevelTable":
        thresholds = tuple(rows)
        validate_thresholds(thresholds)
        return LevelTable(thresholds=thresholds)


@dataclass(frozen=True, slots=True)
class GameCatalog:
    """Configuration data the engine reads on every operation.

    Built only through `build()`, which validates cross references, so a live
    catalog is always internally consistent.
    """

    settings: EconomySettings
    upgrades: UpgradeCatalog
    levels: LevelTable
    tasks: dict[str, TaskDefinition]
    achievements: dict[str, AchievementDefinition]
    vip_tiers: dict[str, VipTier]
    wheel_prizes: dict[str, WheelPrize]

    @staticmethod
    def build(
        *,
        settings: EconomySettings,
        upgrades: Iterable[UpgradeDefinition],
        levels: Iterable[LevelThreshold],
        tasks: Iterable[TaskDefinition] = (),
        achievements: Iterable[AchievementDefinition] = (),
        vip_tiers: Iterable[VipTier] = (),
        wheel_prizes: Iterable[WheelPrize] = (),
    ) -> "GameCatalog":
        upgrade_catalog = UpgradeCatalog.from_definitions(upgrades)
        level_table = LevelTable.from_thresholds(levels)

        task_map: dict[str, TaskDefinition] = {}
        for t in tasks:
            if t.id in task_map:
                raise CatalogError(f"Duplicate task id: {t.id}")
            _validate_stat_reference(kind="Task", obj_id=t.id, stat=t.stat, upgrade_id=t.upgrade_id, upgrades=upgrade_catalog)
            task_map[t.id] = t

        achievement_map: dict[str, AchievementDefinition] = {}
        for a in achievements:
            if a.id in achievement_map:
                raise CatalogError(f"Duplicate achievement id: {a.id}")
            _validate_stat_reference(
                kind="Achievement", obj_id=a.id, stat=a.stat, upgrade_id=a.upgrade_id, upgrades=upgrade_catalog
            )
            _validate_tiers(a)
            achievement_map[a.id] = a

        vip_map: dict[str, VipTier] = {}
        for v in vip_tiers:
            if v.id in vip_map:
                raise CatalogError(f"Duplicate VIP tier id: {v.id}")
            vip_map[v.id] = v

        prize_map: dict[str, WheelPrize] = {}
        for w in wheel_prizes:
            if w.id in prize_map:
                raise CatalogError(f"Duplicate wheel prize id: {w.id}")
            prize_map[w.id] = w

        return GameCatalog(
            settings=settings,
            upgrades=upgrade_catalog,
            levels=level_table,
            tasks=task_map,
            achievements=achievement_map,
            vip_tiers=vip_map,
            wheel_prizes=prize_map,
        )

    def _rebuild(self, **overrides: object) -> "GameCatalog":
        parts: dict[str, object] = {
            "settings": self.settings,
            "upgrades": list(self.upgrades),
            "levels": list(self.levels.thresholds),
            "tasks": list(self.tasks.values()),
            "achievements": list(self.achievements.values()),
            "vip_tiers": list(self.vip_tiers.values()),
            "wheel_prizes": list(self.wheel_prizes.values()),
        }
        parts.update(overrides)
        return GameCatalog.build(**parts)  # type: ignore[arg-type]

    def with_upgrade(self, defn: UpgradeDefinition) -> "GameCatalog":
        upgrades = [defn if u.id == defn.id else u for u in self.upgrades]
        if defn.id not in self.upgrades:
            upgrades.append(defn)
        return self._rebuild(upgrades=upgrades)

    def without_upgrade(self, upgrade_id: str) -> "GameCatalog":
        if upgrade_id not in self.upgrades:
            raise CatalogError(f"Unknown upgrade: {upgrade_id}")
        return self._rebuild(upgrades=[u for u in self.upgrades if u.id != upgrade_id])

    def with_levels(self, thresholds: Iterable[LevelThreshold]) -> "GameCatalog":
        return self._rebuild(levels=list(thresholds))

    def with_task(self, defn: TaskDefinition) -> "GameCatalog":
        tasks = dict(self.tasks)
        tasks[defn.id] = defn
        return self._rebuild(tasks=list(tasks.values()))

    def with_achievement(self, defn: AchievementDefinition) -> "GameCatalog":
        achievements = dict(self.achievements)
        achievements[defn.id] = defn
        return self._rebuild(achievements=list(achievements.values()))

    def with_wheel_prize(self, prize: WheelPrize) -> "GameCatalog":
        prizes = dict(self.wheel_prizes)
        prizes[prize.id] = prize
        return self._rebuild(wheel_prizes=list(prizes.values()))

    def snapshot(self) -> CatalogSnapshot:
        return CatalogSnapshot(
            settings=self.settings,
            upgrades=list(self.upgrades),
            levels=list(self.levels.thresholds),
            tasks=list(self.tasks.values()),
            achievements=list(self.achievements.values()),
            vip_tiers=list(self.vip_tiers.values()),
            wheel_prizes=list(self.wheel_prizes.values()),
        )


def _validate_stat_reference(
    *,
    kind: str,
    obj_id: str,
    stat: StatKey,
    upgrade_id: str | None,
    upgrades: UpgradeCatalog,
) -> None:
    if stat == StatKey.upgrade_level:
        if not upgrade_id:
            raise CatalogError(f"{kind} {obj_id} tracks upgrade_level but names no upgrade_id")
        if upgrade_id not in upgrades:
            raise CatalogError(f"{kind} {obj_id} references unknown upgrade: {upgrade_id}")
    elif upgrade_id is not None:
        raise CatalogError(f"{kind} {obj_id} sets upgrade_id but tracks {stat.value}")


def _validate_tiers(defn: AchievementDefinition) -> None:
    for prev, cur in zip(defn.tiers, defn.tiers[1:]):
        if cur.tier <= prev.tier:
            raise CatalogError(f"Achievement {defn.id}: tiers must be strictly increasing ({prev.tier} -> {cur.tier})")
        if cur.target <= prev.target:
            raise CatalogError(
                f"Achievement {defn.id}: tier targets must be strictly increasing "
                f"(tier {prev.tier}={prev.target}, tier {cur.tier}={cur.target})"
            )


# ── Loading ──────────────────────────────────────────


def _env_float(name: str) -> float | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise CatalogError(f"{name} must be a number, got {raw!r}") from e


_SETTINGS_ENV: dict[str, str] = {
    "base_tap_value": "TAPWORKS_BASE_TAP_VALUE",
    "tap_energy_cost": "TAPWORKS_TAP_ENERGY_COST",
    "base_max_energy": "TAPWORKS_BASE_MAX_ENERGY",
    "base_energy_regen": "TAPWORKS_BASE_ENERGY_REGEN",
    "base_passive_per_hour": "TAPWORKS_BASE_PASSIVE_PER_HOUR",
    "max_offline_hours": "TAPWORKS_MAX_OFFLINE_HOURS",
    "max_discount_percent": "TAPWORKS_MAX_DISCOUNT_PERCENT",
    "wheel_cooldown_hours": "TAPWORKS_WHEEL_COOLDOWN_HOURS",
}


def settings_from_env() -> EconomySettings:
    values: dict[str, float] = {}
    for field_name, env_name in _SETTINGS_ENV.items():
        v = _env_float(env_name)
        if v is not None:
            values[field_name] = v
    try:
        return EconomySettings(**values)
    except ValidationError as e:
        raise CatalogError(f"Invalid economy settings: {e}") from e


def _read_csv_rows(path: Path) -> list[dict[str, str]]:
    try:
        raw = path.read_text(encoding="utf-8-sig")
    except FileNotFoundError as e:
        raise CatalogFileMissing(f"Catalog file not found: {path}") from e

    reader = csv.DictReader(raw.splitlines())
    rows: list[dict[str, str]] = []
    for row in reader:
        cleaned = {(k or "").strip().casefold(): (v or "").strip() for k, v in row.items()}
        if any(cleaned.values()):
            rows.append(cleaned)
    return rows


def _read_json(path: Path) -> object:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise CatalogFileMissing(f"Catalog file not found: {path}") from e
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise CatalogError(f"Malformed JSON in {path}: {e}") from e


def load_upgrades_csv(path: Path) -> list[UpgradeDefinition]:
    rows = _read_csv_rows(path)
    if not rows:
        raise CatalogError(f"Empty upgrades CSV: {path}")

    out: list[UpgradeDefinition] = []
    for lineno, row in enumerate(rows, start=2):
        # Blank optional columns fall back to model defaults.
        data = {k: v for k, v in row.items() if v != ""}
        try:
            out.append(UpgradeDefinition.model_validate(data))
        except ValidationError as e:
            raise CatalogError(f"Invalid upgrade on line {lineno} of {path}: {e}") from e
    return out


def load_levels_csv(path: Path) -> list[LevelThreshold]:
    rows = _read_csv_rows(path)
    out: list[LevelThreshold] = []
    for lineno, row in enumerate(rows, start=2):
        data = {k: v for k, v in row.items() if v != ""}
        try:
            out.append(LevelThreshold.model_validate(data))
        except ValidationError as e:
            raise CatalogError(f"Invalid level threshold on line {lineno} of {path}: {e}") from e
    return out


_TASKS = TypeAdapter(list[TaskDefinition])
_ACHIEVEMENTS = TypeAdapter(list[AchievementDefinition])
_VIP_TIERS = TypeAdapter(list[VipTier])
_WHEEL_PRIZES = TypeAdapter(list[WheelPrize])


def _load_json_list(path: Path, adapter: TypeAdapter, *, optional: bool) -> list:
    try:
        data = _read_json(path)
    except CatalogFileMissing:
        if optional:
            return []
        raise
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        raise CatalogError(f"Invalid definitions in {path}: {e}") from e


def _fallback_game_catalog(settings: EconomySettings) -> GameCatalog:
    """Tiny built-in catalog for dev runs without a game-data directory."""

    return GameCatalog.build(
        settings=settings,
        upgrades=[
            UpgradeDefinition(
                id="tap-power",
                name="Tap Power",
                category=UpgradeCategory.tap,
                base_cost=100,
                cost_growth=1.5,
                base_effect=1,
                max_level=10,
            ),
            UpgradeDefinition(
                id="passive-studio",
                name="Studio",
                category=UpgradeCategory.passive_income,
                base_cost=250,
                cost_growth=1.3,
                base_effect=25,
                max_level=10,
            ),
        ],
        levels=[
            LevelThreshold(level=1, required=0),
            LevelThreshold(level=2, required=100),
            LevelThreshold(level=3, required=250),
        ],
        achievements=[
            AchievementDefinition(
                id="first-steps",
                name="First Steps",
                stat=StatKey.total_taps,
                tiers=[
                    AchievementTier(tier=1, target=1, rewards=[CurrencyReward(amount=100)]),
                    AchievementTier(tier=2, target=5, rewards=[CurrencyReward(amount=150)]),
                ],
            )
        ],
    )


def load_game_catalog(*, data_dir: Path, settings: EconomySettings | None = None) -> GameCatalog:
    """Load and validate the catalog from a game-data directory.

    Only missing required files fall back to the built-in catalog, and only
    when TAPWORKS_STRICT_CATALOG is unset. Invalid content always raises.
    """

    settings = settings or settings_from_env()
    strict = os.getenv("TAPWORKS_STRICT_CATALOG", "").strip().lower() in {"1", "true", "yes"}

    try:
        upgrades = load_upgrades_csv(data_dir / "upgrades.csv")
        levels = load_levels_csv(data_dir / "levels.csv")
    except CatalogFileMissing as e:
        if strict:
            raise
        logger.warning("%s; using the built-in fallback catalog", e)
        return _fallback_game_catalog(settings)

    catalog = GameCatalog.build(
        settings=settings,
        upgrades=upgrades,
        levels=levels,
        tasks=_load_json_list(data_dir / "tasks.json", _TASKS, optional=True),
        achievements=_load_json_list(data_dir / "achievements.json", _ACHIEVEMENTS, optional=True),
        vip_tiers=_load_json_list(data_dir / "vip_tiers.json", _VIP_TIERS, optional=True),
        wheel_prizes=_load_json_list(data_dir / "wheel_prizes.json", _WHEEL_PRIZES, optional=True),
    )
    logger.info(
        "Loaded catalog from %s: %d upgrades, %d levels, %d tasks, %d achievements",
        data_dir,
        len(catalog.upgrades),
        len(catalog.levels.thresholds),
        len(catalog.tasks),
        len(catalog.achievements),
    )
    return catalog
