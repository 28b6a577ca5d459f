"""
tests/fakes.py — In-memory stand-ins for an obs-websocket session.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from obs_panel.core import PROGRAM_SCENE_CHANGED, SESSION_CLOSED, EventEmitter


class FakeSession:
    def __init__(
        self,
        open_error: Optional[BaseException] = None,
        metadata: Optional[dict] = None,
        scenes: Optional[list[str]] = None,
        active_scene: Optional[str] = None,
        call_error: Optional[BaseException] = None,
    ):
        self.open_error = open_error
        self.metadata = metadata if metadata is not None else {"obs_web_socket_version": "5.4.2", "rpc_version": 1}
        self.scenes = scenes if scenes is not None else ["A", "B", "C"]
        self.active_scene = active_scene
        self.call_error = call_error

        self.open_gate: Optional[asyncio.Event] = None
        self.call_gate: Optional[asyncio.Event] = None
        self.open_params = None
        self.calls: list[tuple[str, dict]] = []
        self.closed = False
        self.on_open = None

        self._events = EventEmitter()
        self._every_callback: list[tuple[str, Any]] = []

    async def open(self, params) -> dict:
        self.open_params = params
        if self.on_open:
            self.on_open()
        if self.open_gate:
            await self.open_gate.wait()
        if self.open_error:
            raise self.open_error
        return self.metadata

    async def call(self, request_name: str, **args) -> dict:
        self.calls.append((request_name, args))
        if self.call_gate:
            await self.call_gate.wait()
        if self.call_error:
            raise self.call_error
        if request_name == "GetSceneList":
            return {
                "scenes": [{"sceneName": n, "sceneIndex": i} for i, n in enumerate(self.scenes)],
                "currentProgramSceneName": self.active_scene,
            }
        return {}

    def subscribe(self, kind, callback):
        self._every_callback.append((kind, callback))
        return self._events.subscribe(kind, callback)

    def unsubscribe(self, subscription) -> bool:
        return self._events.unsubscribe(subscription)

    def close(self) -> None:
        self.closed = True

    # ── Test drivers ──────────────────────────────────────────────────

    def notify_scene(self, scene_name: Optional[str]) -> None:
        self._events.emit(PROGRAM_SCENE_CHANGED, scene_name)

    def notify_closed(self) -> None:
        self._events.emit(SESSION_CLOSED, None)

    def deliver_late(self, scene_name: Optional[str]) -> None:
        """Call every scene callback ever registered, ignoring unsubscribes."""
        for kind, cb in self._every_callback:
            if kind == PROGRAM_SCENE_CHANGED:
                cb(scene_name)

    def scene_list_calls(self) -> int:
        return sum(1 for name, _ in self.calls if name == "GetSceneList")


class SessionFactory:
    """Hands out FakeSessions, optionally configured per attempt via `script`."""

    def __init__(self, *script: dict):
        self.script = list(script)
        self.sessions: list[FakeSession] = []

    def __call__(self) -> FakeSession:
        kwargs = self.script.pop(0) if self.script else {}
        open_gate = kwargs.pop("open_gate", None)
        call_gate = kwargs.pop("call_gate", None)
        session = FakeSession(**kwargs)
        session.open_gate = open_gate
        session.call_gate = call_gate
        self.sessions.append(session)
        return session


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
