from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class PlayerWebSocketHub:
    """In-process WebSocket pub/sub keyed by player_id.

    Contract:
      - register a connection with `connect(player_id, websocket)`.
      - notify observers with `broadcast(player_id, payload)`.

    Payloads are small JSON dicts; observers re-read state over HTTP. Running
    several API replicas would need Redis pub/sub instead.
    """

    def __init__(self) -> None:
        self._by_player: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, player_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._by_player[player_id].add(websocket)

    async def disconnect(self, player_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            conns = self._by_player.get(player_id)
            if not conns:
                return
            conns.discard(websocket)
            if not conns:
                self._by_player.pop(player_id, None)

    async def broadcast(self, player_id: str, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._by_player.get(player_id, set()))

        if not conns:
            return

        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except (WebSocketDisconnect, RuntimeError, OSError):
                logger.debug("dropping closed websocket for %s", player_id)
                dead.append(ws)

        if dead:
            async with self._lock:
                for ws in dead:
                    self._by_player.get(player_id, set()).discard(ws)

    async def player_updated(self, player_id: str) -> None:
        await self.broadcast(player_id, {"type": "player_updated", "player_id": player_id})


hub = PlayerWebSocketHub()
