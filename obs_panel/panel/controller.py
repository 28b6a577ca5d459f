"""
panel/controller.py — Connection orchestration and the cached panel snapshot.

SessionController owns the connection parameters and the single live
ConnectionManager. It derives {connecting, connected} from the manager's
state events, keeps the scene list in sync, and retries after every
failure:

    Disconnected ──attempt_connection()──▶ Connecting ──Connected──▶ Connected
         ▲                                     │                        │
         └──────────── Failed (retry scheduled) ◀───────────────────────┘

Every mutation of the snapshot ends with a redraw request so the panel
surface can push the new state to its clients.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Optional

from obs_panel.config import ConnectionParameters, ParameterStore
from obs_panel.core import (
    ConnectionManager,
    ConnectionState,
    InvalidParameterKey,
    NotConnected,
    PanelError,
    StateChange,
    Subscription,
)
from obs_panel.scenes import SceneSet

log = logging.getLogger(__name__)

RedrawListener = Callable[["PanelSnapshot"], Any]


@dataclass(frozen=True)
class PanelSnapshot:
    connecting: bool = False
    connected: bool = False
    scenes: SceneSet = field(default_factory=SceneSet)
    host: str = ""
    port: int = 0
    last_error: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "connecting": self.connecting,
            "connected": self.connected,
            "host": self.host,
            "port": self.port,
            "last_error": self.last_error,
            **self.scenes.to_dict(),
        }


class SessionController:
    """
    Usage:
        controller = SessionController(ParameterStore(Path("connection.yaml")))
        controller.add_redraw_listener(push_to_clients)
        controller.start()        # inside the running event loop
    """

    def __init__(
        self,
        store: ParameterStore,
        defaults: Optional[ConnectionParameters] = None,
        manager_factory: Callable[[], ConnectionManager] = ConnectionManager,
        retry_delay: float = 1.0,
    ):
        self._store = store
        self._defaults = defaults or ConnectionParameters()
        self._manager_factory = manager_factory
        self.retry_delay = retry_delay

        self.params: ConnectionParameters = self._defaults
        self._manager: Optional[ConnectionManager] = None
        self._subscriptions: list[Subscription] = []

        self._connecting = False
        self._connected = False
        self._scenes = SceneSet()
        self._scene_generation = 0
        self._last_error: Optional[dict] = None

        self._retry_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._redraw_listeners: list[RedrawListener] = []

    # ── Snapshot ──────────────────────────────────────────────────────

    @property
    def connecting(self) -> bool:
        return self._connecting

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def scenes(self) -> SceneSet:
        return self._scenes

    @property
    def manager(self) -> Optional[ConnectionManager]:
        return self._manager

    def snapshot(self) -> PanelSnapshot:
        return PanelSnapshot(
            connecting=self._connecting,
            connected=self._connected,
            scenes=self._scenes,
            host=self.params.host,
            port=self.params.port,
            last_error=self._last_error,
        )

    def add_redraw_listener(self, callback: RedrawListener) -> None:
        """Callback receives a PanelSnapshot after every change. Coroutine callbacks run as tasks."""
        self._redraw_listeners.append(callback)

    def _request_redraw(self) -> None:
        snap = self.snapshot()
        for cb in self._redraw_listeners:
            try:
                result = cb(snap)
                if inspect.isawaitable(result):
                    self._spawn(result)
            except Exception as e:
                log.error(f"Redraw listener error: {e}")

    def _spawn(self, coro: Any) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self) -> None:
        stored = self._store.load()
        self.params = stored or self._defaults
        log.info(f"Panel starting → OBS at {self.params.describe()}{'' if stored else ' (defaults)'}")
        self.attempt_connection()

    def attempt_connection(self) -> ConnectionManager:
        """Replace the current manager (if any) with a fresh one and start connecting."""
        self._cancel_retry()
        self._release_manager()

        manager = self._manager_factory()
        self._subscriptions = [
            manager.on_state_changed(partial(self._on_state_changed, manager)),
            manager.on_active_scene_changed(partial(self._on_active_scene_changed, manager)),
        ]
        self._manager = manager

        self._connecting = True
        self._connected = False
        self._request_redraw()

        self._spawn(manager.connect(self.params))
        return manager

    async def stop(self) -> None:
        self._cancel_retry()
        self._release_manager()
        self._connecting = False
        self._connected = False
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        log.info("Panel stopped.")

    def _release_manager(self) -> None:
        manager, self._manager = self._manager, None
        if manager is None:
            return
        for sub in self._subscriptions:
            manager.off(sub)
        self._subscriptions = []
        manager.teardown()

    # ── Manager events ────────────────────────────────────────────────

    def _on_state_changed(self, manager: ConnectionManager, change: StateChange) -> None:
        if manager is not self._manager:
            log.debug(f"Ignored {change.state.value} from superseded manager")
            return

        match change.state:
            case ConnectionState.CONNECTING:
                self._connecting = True
                self._connected = False
            case ConnectionState.CONNECTED:
                self._connecting = False
                self._connected = True
                self._last_error = None
                version = change.metadata.get("obs_web_socket_version")
                log.info(f"OBS connected{f' (obs-websocket {version})' if version else ''}")
                self._spawn(self._fetch_scenes(manager))
            case ConnectionState.FAILED:
                self._connecting = False
                self._connected = False
                self._last_error = {"message": change.message, "code": change.code}
                self._release_manager()
                self._schedule_retry()
            case _:
                return

        self._request_redraw()

    def _on_active_scene_changed(self, manager: ConnectionManager, scene_name: Optional[str]) -> None:
        if manager is not self._manager:
            return
        if not scene_name:
            log.debug("Ignored program scene change without a scene name")
            return
        self._scene_generation += 1
        self._scenes = self._scenes.with_active(scene_name)
        log.info(f"Program scene → {scene_name}")
        self._request_redraw()

    async def _fetch_scenes(self, manager: ConnectionManager) -> None:
        generation = self._scene_generation
        try:
            scene_set = await manager.query_scenes()
        except PanelError as e:
            log.warning(f"Could not fetch scene list: {e}")
            return
        if manager is not self._manager:
            return
        if generation != self._scene_generation:
            # a program change arrived while the list was in flight; it is newer
            scene_set = scene_set.with_active(self._scenes.active_scene)
        self._scenes = scene_set
        self._request_redraw()

    # ── Retry ─────────────────────────────────────────────────────────

    def _schedule_retry(self) -> None:
        self._cancel_retry()
        log.info(f"Retrying OBS connection in {self.retry_delay}s")
        self._retry_task = self._spawn(self._retry_after(self.retry_delay))

    def _cancel_retry(self) -> None:
        task, self._retry_task = self._retry_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _retry_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._retry_task = None
        if self._connected or self._connecting:
            log.debug("Retry skipped: another attempt is already under way")
            return
        self.attempt_connection()

    # ── Parameters ────────────────────────────────────────────────────

    def change_connection_parameters(self, updates: dict) -> ConnectionParameters:
        """
        Merge recognized keys (host, port, secret) into the parameters and
        persist them. Unknown keys are logged and dropped. Does not reconnect.
        """
        accepted = {}
        for key, value in updates.items():
            try:
                ConnectionParameters.check_key(key)
            except InvalidParameterKey as e:
                log.warning(f"{e}, ignoring")
                continue
            accepted[key] = value

        if not accepted:
            return self.params

        self.params = self.params.merged(accepted)
        self._store.save(self.params)
        log.info(f"Connection parameters updated → {self.params.describe()}")
        self._request_redraw()
        return self.params

    # ── Operator intents ──────────────────────────────────────────────

    def connect_with(self, updates: Optional[dict] = None) -> ConnectionManager:
        """Apply new parameters and reconnect right away."""
        if updates:
            self.change_connection_parameters(updates)
        return self.attempt_connection()

    def reset(self) -> ConnectionManager:
        """Go back to the default parameters, persist them and reconnect."""
        self.params = self._defaults
        self._store.save(self.params)
        self._scenes = SceneSet()
        self._last_error = None
        log.info(f"Connection parameters reset → {self.params.describe()}")
        return self.attempt_connection()

    async def request_scene_switch(self, scene_name: str) -> None:
        manager = self._manager
        if manager is None or not self._connected:
            raise NotConnected()
        await manager.switch_scene(scene_name)
