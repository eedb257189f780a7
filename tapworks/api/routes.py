from __future__ import annotations

from datetime import timedelta
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, Body, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from tapworks.actions import dispatch_action
from tapworks.api.deps import get_engine
from tapworks.api.models import (
    ActionResponse,
    BoosterActivation,
    BoosterRequest,
    ClaimResult,
    EffectiveStats,
    ObjectiveView,
    PlayerActionUnion,
    PlayerListResponse,
    PlayerState,
    PurchaseResult,
    ReconcileReport,
    TapResult,
    UpgradeOffer,
    VipRequest,
    VipStatus,
    WheelSpinResult,
)
from tapworks.catalog.models import WheelPrize
from tapworks.core.outcomes import Outcome, Rejection, RejectionCode
from tapworks.engine import ProgressionEngine
from tapworks.websocket_hub import hub

router = APIRouter()

T = TypeVar("T")

_NOT_FOUND_CODES = {RejectionCode.upgrade_not_found, RejectionCode.objective_not_found}


def rejection_to_http(rejection: Rejection) -> HTTPException:
    if rejection.code in _NOT_FOUND_CODES:
        code = status.HTTP_404_NOT_FOUND
    elif rejection.code is RejectionCode.wheel_cooldown:
        code = status.HTTP_429_TOO_MANY_REQUESTS
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail={"code": rejection.code.value, "message": rejection.message})


async def _committed(player_id: str, outcome: Outcome[T]) -> T:
    if outcome.rejection is not None:
        raise rejection_to_http(outcome.rejection)
    await hub.player_updated(player_id)
    return outcome.unwrap()


@router.websocket("/ws/player/{player_id}")
async def player_updates_ws(websocket: WebSocket, player_id: str) -> None:
    await hub.connect(player_id, websocket)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(player_id, websocket)
    except Exception:
        await hub.disconnect(player_id, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/players", response_model=PlayerListResponse)
async def list_players_route(engine: ProgressionEngine = Depends(get_engine)) -> PlayerListResponse:
    return PlayerListResponse(player_ids=engine.list_player_ids())


@router.get("/players/{player_id}", response_model=PlayerState)
async def get_player_route(player_id: str, engine: ProgressionEngine = Depends(get_engine)) -> PlayerState:
    return engine.get_player(player_id)


@router.get("/players/{player_id}/stats", response_model=EffectiveStats)
async def get_stats_route(player_id: str, engine: ProgressionEngine = Depends(get_engine)) -> EffectiveStats:
    return engine.get_effective_stats(player_id)


@router.post("/players/{player_id}/tap", response_model=TapResult)
async def tap_route(player_id: str, engine: ProgressionEngine = Depends(get_engine)) -> TapResult:
    return await _committed(player_id, engine.tap(player_id))


@router.get("/players/{player_id}/upgrades", response_model=list[UpgradeOffer])
async def list_upgrades_route(player_id: str, engine: ProgressionEngine = Depends(get_engine)) -> list[UpgradeOffer]:
    return engine.quote_upgrades(player_id)


@router.post("/players/{player_id}/upgrades/{upgrade_id}/purchase", response_model=PurchaseResult)
async def purchase_route(
    player_id: str,
    upgrade_id: str,
    engine: ProgressionEngine = Depends(get_engine),
) -> PurchaseResult:
    return await _committed(player_id, engine.purchase_upgrade(player_id, upgrade_id))


@router.post("/players/{player_id}/boosters", response_model=BoosterActivation)
async def booster_route(
    player_id: str,
    payload: BoosterRequest,
    engine: ProgressionEngine = Depends(get_engine),
) -> BoosterActivation:
    outcome = engine.activate_booster(
        player_id,
        category=payload.category,
        multiplier=payload.multiplier,
        duration=timedelta(seconds=payload.duration_seconds),
    )
    return await _committed(player_id, outcome)


@router.post("/players/{player_id}/vip", response_model=VipStatus)
async def vip_route(player_id: str, payload: VipRequest, engine: ProgressionEngine = Depends(get_engine)) -> VipStatus:
    return await _committed(player_id, engine.activate_vip(player_id, payload.tier))


@router.post("/players/{player_id}/sync", response_model=ReconcileReport)
async def sync_route(player_id: str, engine: ProgressionEngine = Depends(get_engine)) -> ReconcileReport:
    return await _committed(player_id, engine.sync(player_id))


@router.get("/players/{player_id}/tasks", response_model=list[ObjectiveView])
async def list_tasks_route(player_id: str, engine: ProgressionEngine = Depends(get_engine)) -> list[ObjectiveView]:
    return engine.list_tasks(player_id)


@router.post("/players/{player_id}/tasks/{task_id}/claim", response_model=ClaimResult)
async def claim_task_route(player_id: str, task_id: str, engine: ProgressionEngine = Depends(get_engine)) -> ClaimResult:
    return await _committed(player_id, engine.claim_task(player_id, task_id))


@router.get("/players/{player_id}/achievements", response_model=list[ObjectiveView])
async def list_achievements_route(player_id: str, engine: ProgressionEngine = Depends(get_engine)) -> list[ObjectiveView]:
    return engine.list_achievements(player_id)


@router.post("/players/{player_id}/achievements/{achievement_id}/tiers/{tier}/claim", response_model=ClaimResult)
async def claim_achievement_route(
    player_id: str,
    achievement_id: str,
    tier: int,
    engine: ProgressionEngine = Depends(get_engine),
) -> ClaimResult:
    return await _committed(player_id, engine.claim_achievement(player_id, achievement_id, tier))


@router.get("/players/{player_id}/wheel/prizes", response_model=list[WheelPrize])
async def list_wheel_prizes_route(player_id: str, engine: ProgressionEngine = Depends(get_engine)) -> list[WheelPrize]:
    return engine.list_wheel_prizes(player_id)


@router.post("/players/{player_id}/wheel/spin", response_model=WheelSpinResult)
async def spin_wheel_route(player_id: str, engine: ProgressionEngine = Depends(get_engine)) -> WheelSpinResult:
    return await _committed(player_id, engine.spin_wheel(player_id))


@router.post("/players/{player_id}/actions", response_model=ActionResponse)
async def generic_action_route(
    player_id: str,
    action: Annotated[PlayerActionUnion, Body(discriminator="action")],
    engine: ProgressionEngine = Depends(get_engine),
) -> ActionResponse:
    result = dispatch_action(engine=engine, player_id=player_id, action=action)
    if result.outcome.rejection is not None:
        raise rejection_to_http(result.outcome.rejection)

    await hub.player_updated(player_id)
    assert result.outcome.player is not None
    return ActionResponse(action=result.action, result=result.result_payload(), player=result.outcome.player)


@router.get("/players/{player_id}/events")
async def get_player_events_route(
    player_id: str,
    count: int = 20,
    engine: ProgressionEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Debug endpoint: read a player's event stream.

    Intended for local/dev testing when redis-cli isn't available.
    """

    if count < 1 or count > 200:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="count must be between 1 and 200")

    entries = engine.recent_events(player_id, count=count)
    return {
        "player_id": player_id,
        "events": [{"id": eid, "fields": fields} for eid, fields in entries],
    }
