from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import APIRouter, HTTPException, status

from tapworks.catalog.models import (
    AchievementDefinition,
    CatalogError,
    CatalogSnapshot,
    LevelThreshold,
    TaskDefinition,
    UpgradeDefinition,
    WheelPrize,
)
from tapworks.catalog.registry import GameCatalog
from tapworks.catalog.singleton import get_catalog, update_catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _apply(change: Callable[[GameCatalog], GameCatalog]) -> CatalogSnapshot:
    """Rebuild the live catalog; an invalid result leaves it untouched."""

    try:
        updated = update_catalog(change)
    except CatalogError as e:
        logger.warning("rejected catalog change: %s", e)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return updated.snapshot()


def _require_matching_id(path_id: str, body_id: str) -> None:
    if path_id != body_id:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"id in body ({body_id}) does not match path ({path_id})",
        )


@router.get("/catalog", response_model=CatalogSnapshot)
async def get_catalog_route() -> CatalogSnapshot:
    return get_catalog().snapshot()


@router.put("/upgrades/{upgrade_id}", response_model=CatalogSnapshot)
async def put_upgrade_route(upgrade_id: str, payload: UpgradeDefinition) -> CatalogSnapshot:
    _require_matching_id(upgrade_id, payload.id)
    return _apply(lambda c: c.with_upgrade(payload))


@router.delete("/upgrades/{upgrade_id}", response_model=CatalogSnapshot)
async def delete_upgrade_route(upgrade_id: str) -> CatalogSnapshot:
    if upgrade_id not in get_catalog().upgrades:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown upgrade: {upgrade_id}")
    return _apply(lambda c: c.without_upgrade(upgrade_id))


@router.put("/levels", response_model=CatalogSnapshot)
async def put_levels_route(payload: list[LevelThreshold]) -> CatalogSnapshot:
    return _apply(lambda c: c.with_levels(payload))


@router.put("/tasks/{task_id}", response_model=CatalogSnapshot)
async def put_task_route(task_id: str, payload: TaskDefinition) -> CatalogSnapshot:
    _require_matching_id(task_id, payload.id)
    return _apply(lambda c: c.with_task(payload))


@router.put("/achievements/{achievement_id}", response_model=CatalogSnapshot)
async def put_achievement_route(achievement_id: str, payload: AchievementDefinition) -> CatalogSnapshot:
    _require_matching_id(achievement_id, payload.id)
    return _apply(lambda c: c.with_achievement(payload))


@router.put("/wheel/prizes/{prize_id}", response_model=CatalogSnapshot)
async def put_wheel_prize_route(prize_id: str, payload: WheelPrize) -> CatalogSnapshot:
    _require_matching_id(prize_id, payload.id)
    return _apply(lambda c: c.with_wheel_prize(payload))
