from __future__ import annotations

import json
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from crewparty.config import GameConfig, ServerConfig
from crewparty.errors import GameError, InvalidAction
from crewparty.game import GameServer

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class WSClient:
    websocket: WebSocket
    participant_id: str


class ConnectionHub:
    """Live websocket connections keyed by participant id."""

    def __init__(self) -> None:
        self._clients: Dict[str, WSClient] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def add(self, ws: WebSocket) -> str:
        participant_id = uuid.uuid4().hex
        self._clients[participant_id] = WSClient(websocket=ws, participant_id=participant_id)
        return participant_id

    def discard(self, participant_id: str) -> None:
        self._clients.pop(participant_id, None)

    async def send(self, participant_id: str, message: Dict[str, Any]) -> None:
        client = self._clients.get(participant_id)
        if client is None:
            return
        try:
            await client.websocket.send_text(json.dumps(message, ensure_ascii=False))
        except Exception:
            logger.warning("Dropping connection %s after failed send", participant_id, exc_info=True)
            self.discard(participant_id)


# intent type -> (GameServer method, payload fields passed positionally)
INTENTS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "check-room": ("check_room", ("room_code",)),
    "create-game": ("create_game", ("imposter_count",)),
    "rejoin-host": ("rejoin_host", ("room_code",)),
    "join-game": ("join_game", ("room_code", "name")),
    "start-game": ("start_game", ()),
    "complete-task": ("complete_task", ()),
    "call-meeting": ("call_meeting", ("meeting_type",)),
    "start-meeting": ("start_meeting", ("meeting_type", "called_by")),
    "vote": ("vote", ("target_id",)),
    "mark-dead": ("mark_dead", ("player_id",)),
    "mark-self-dead": ("mark_self_dead", ()),
    "upload-photo": ("upload_photo", ("photo_data",)),
    "photo-response": ("photo_response", ("photo_id", "approved")),
    "get-state": ("get_state", ()),
}


async def dispatch(game: GameServer, hub: ConnectionHub, participant_id: str, raw: str) -> None:
    try:
        data = json.loads(raw)
    except ValueError:
        data = None
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        await hub.send(participant_id, InvalidAction("Malformed message").to_message())
        return

    kind = data["type"]
    if kind == "ping":
        await hub.send(participant_id, {"type": "pong"})
        return
    if kind not in INTENTS:
        await hub.send(participant_id, InvalidAction(f"Unknown message type: {kind}").to_message())
        return

    method, fields = INTENTS[kind]
    args = [data.get(f) for f in fields]
    if kind == "create-game" and args[0] is None:
        args[0] = 1
    await getattr(game, method)(participant_id, *args)


def create_app(config: Optional[GameConfig] = None) -> FastAPI:
    hub = ConnectionHub()
    game = GameServer(hub, config or GameConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await game.close()

    app = FastAPI(title="Crew Party", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.game = game
    app.state.hub = hub

    @app.get("/")
    async def root():
        return {"ok": True, "hint": "Connect host and player screens to /ws."}

    @app.get("/api/health")
    async def health():
        return {"ok": True, "sessions": len(game.registry.sessions), "connections": len(hub)}

    @app.get("/api/rooms/{room_code}")
    async def check_room(room_code: str):
        exists, reason = game.registry.check_room(room_code)
        return {"ok": True, "exists": exists, "message": reason}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        await ws.accept()
        participant_id = hub.add(ws)
        await hub.send(participant_id, {"type": "hello", "participant_id": participant_id})
        try:
            while True:
                raw = await ws.receive_text()
                try:
                    await dispatch(game, hub, participant_id, raw)
                except WebSocketDisconnect:
                    raise
                except Exception:
                    logger.exception("Unhandled error for %s", participant_id)
                    await hub.send(participant_id, GameError("Could not process message").to_message())
        except WebSocketDisconnect:
            pass
        finally:
            hub.discard(participant_id)
            await game.disconnect(participant_id)

    return app


app = create_app()


def main() -> None:
    cfg = ServerConfig.from_env()
    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=cfg.host, port=cfg.port)


if __name__ == "__main__":
    main()
