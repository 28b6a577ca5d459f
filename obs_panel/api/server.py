"""
api/server.py — FastAPI REST API + WebSocket push for the scene panel.

The browser panel renders whatever /state (or the /ws stream) says and
reports operator intents back:
  - POST /connect            connect button (optional new host/port/secret)
  - POST /reset              reset button (default parameters, reconnect)
  - POST /scenes/{name}      scene button
Every snapshot change is pushed to all /ws clients as
{"event": "snapshot", "data": {...}}.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from obs_panel import __version__
from obs_panel.config import get_settings
from obs_panel.core import NotConnected
from obs_panel.panel import PanelSnapshot, SessionController

log = logging.getLogger(__name__)

_controller: Optional[SessionController] = None


def set_controller(controller: Optional[SessionController]) -> None:
    global _controller
    _controller = controller


# ──────────────────────────────────────────────────────────────────────────────
# WebSocket connection pool
# ──────────────────────────────────────────────────────────────────────────────

class WSConnectionPool:
    def __init__(self):
        self._connections: list[WebSocket] = []

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections.append(ws)
        log.info(f"WS client connected. Total: {len(self._connections)}")

    def disconnect(self, ws: WebSocket) -> None:
        if ws in self._connections:
            self._connections.remove(ws)
        log.info(f"WS client disconnected. Total: {len(self._connections)}")

    async def broadcast(self, message: dict) -> None:
        if not self._connections:
            return
        data = json.dumps(message)
        dead = []
        for ws in self._connections:
            try:
                await ws.send_text(data)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    def count(self) -> int:
        return len(self._connections)


ws_pool = WSConnectionPool()


async def push_snapshot(snapshot: PanelSnapshot) -> None:
    await ws_pool.broadcast({"event": "snapshot", "data": snapshot.to_dict()})


# ──────────────────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    log.info(f"obs-panel API starting on {settings.api.host}:{settings.api.port}")
    if _controller:
        _controller.add_redraw_listener(push_snapshot)
        log.info("Snapshot push registered")
    yield
    log.info("obs-panel API shutting down.")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="obs-panel",
        description="OBS scene control panel",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── REST auth dependency ──────────────────────────────────────────

    async def verify_api_key(authorization: Optional[str] = Header(None)):
        if settings.api.api_key:
            if not authorization or not authorization.startswith("Bearer "):
                raise HTTPException(status_code=401, detail="Missing Bearer token")
            token = authorization.removeprefix("Bearer ").strip()
            if token != settings.api.api_key:
                raise HTTPException(status_code=403, detail="Invalid API key")

    auth = Depends(verify_api_key)

    def controller() -> SessionController:
        if not _controller:
            raise HTTPException(status_code=503, detail="Session controller not initialized")
        return _controller

    # ─────────────────────────────────────────────────────────────────
    # Health
    # ─────────────────────────────────────────────────────────────────

    @app.get("/health", tags=["System"])
    async def health():
        c = controller()
        return {
            "status": "ok",
            "obs_connected": c.connected,
            "obs_connecting": c.connecting,
            "ws_clients": ws_pool.count(),
            "version": __version__,
        }

    # ─────────────────────────────────────────────────────────────────
    # Panel state
    # ─────────────────────────────────────────────────────────────────

    @app.get("/state", tags=["Panel"], dependencies=[auth])
    async def get_state():
        return controller().snapshot().to_dict()

    @app.get("/scenes", tags=["Panel"], dependencies=[auth])
    async def list_scenes():
        return controller().scenes.to_dict()

    @app.post("/connect", tags=["Panel"], dependencies=[auth])
    async def connect(body: Optional[dict[str, Any]] = Body(None)):
        """Connect (or reconnect) to OBS. Pass only the fields you want to change."""
        c = controller()
        try:
            c.connect_with(body or {})
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return c.snapshot().to_dict()

    @app.post("/reset", tags=["Panel"], dependencies=[auth])
    async def reset():
        c = controller()
        c.reset()
        return c.snapshot().to_dict()

    @app.post("/scenes/{scene_name}", tags=["Panel"], dependencies=[auth])
    async def switch_scene(scene_name: str):
        try:
            await controller().request_scene_switch(scene_name)
        except NotConnected as e:
            raise HTTPException(status_code=409, detail=str(e))
        return {"scene": scene_name, "status": "requested"}

    # ─────────────────────────────────────────────────────────────────
    # WebSocket push — with auth
    # ─────────────────────────────────────────────────────────────────

    @app.websocket("/ws")
    async def websocket_endpoint(
        websocket: WebSocket,
        token: Optional[str] = Query(None),
    ):
        if settings.api.api_key:
            if not token or token != settings.api.api_key:
                await websocket.close(code=4001, reason="Unauthorized")
                return

        await ws_pool.connect(websocket)
        try:
            if _controller:
                await websocket.send_text(json.dumps({"event": "snapshot", "data": _controller.snapshot().to_dict()}))

            while True:
                raw = await websocket.receive_text()
                try:
                    msg = json.loads(raw)
                    response = await _handle_ws_command(msg)
                    await websocket.send_text(json.dumps(response))
                except json.JSONDecodeError:
                    await websocket.send_text(json.dumps({"error": "Invalid JSON"}))
                except Exception as e:
                    await websocket.send_text(json.dumps({"error": str(e)}))
        except WebSocketDisconnect:
            ws_pool.disconnect(websocket)

    async def _handle_ws_command(msg: dict) -> dict:
        cmd = msg.get("cmd", "")
        params = msg.get("params", {})

        if not _controller:
            return {"error": "Session controller not initialized"}

        match cmd:
            case "get_state":
                return _controller.snapshot().to_dict()
            case "switch_scene":
                await _controller.request_scene_switch(params["scene_name"])
                return {"scene": params["scene_name"], "status": "requested"}
            case "connect":
                _controller.connect_with(params)
                return _controller.snapshot().to_dict()
            case "reset":
                _controller.reset()
                return _controller.snapshot().to_dict()
            case _:
                return {"error": f"Unknown command: {cmd}"}

    return app
