"""
core/connection_manager.py — One connection attempt to OBS and everything it emits.

A ConnectionManager wraps a single ObsSession and normalizes every outcome
into ConnectionState transitions plus active-scene notifications:

    Idle ──connect()──▶ Connecting ──▶ Connected ──(session dies)──▶ Failed
                              └──────────────▶ Failed

Failures never propagate out of connect(); they are emitted as a Failed
StateChange with the message and code of the underlying error. Once a
manager has failed or been torn down it is dead: it emits nothing else and
its owner builds a new one for the next attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from obs_panel.scenes import SceneSet

from .errors import NotConnected, RequestFailed, SessionError, SessionLost
from .events import EventEmitter, Subscription
from .session import PROGRAM_SCENE_CHANGED, SESSION_CLOSED, ObsSession

if TYPE_CHECKING:
    from obs_panel.config import ConnectionParameters

log = logging.getLogger(__name__)

STATE_CHANGED = "state_changed"
ACTIVE_SCENE_CHANGED = "active_scene_changed"


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class StateChange:
    state: ConnectionState
    message: Optional[str] = None
    code: Optional[int] = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "message": self.message,
            "code": self.code,
            "metadata": self.metadata,
        }


class ConnectionManager:
    def __init__(self, session_factory: Callable[[], Any] = ObsSession):
        self._session_factory = session_factory
        self._session: Optional[Any] = None
        self._session_subscriptions: list[Subscription] = []
        self._events = EventEmitter()
        self._state = ConnectionState.IDLE
        self._torn_down = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def is_alive(self) -> bool:
        return not self._torn_down and self._state is not ConnectionState.FAILED

    # ── Subscriptions ─────────────────────────────────────────────────

    def on_state_changed(self, callback: Callable[[StateChange], None]) -> Subscription:
        return self._events.subscribe(STATE_CHANGED, callback)

    def on_active_scene_changed(self, callback: Callable[[Optional[str]], None]) -> Subscription:
        """Callback receives the new program scene name, exactly as OBS reported it."""
        return self._events.subscribe(ACTIVE_SCENE_CHANGED, callback)

    def off(self, subscription: Subscription) -> bool:
        return self._events.unsubscribe(subscription)

    def _set_state(self, change: StateChange) -> None:
        if not self.is_alive:
            log.debug(f"Dropped {change.state.value} from dead manager")
            return
        self._state = change.state
        self._events.emit(STATE_CHANGED, change)

    def _fail(self, error: SessionError) -> None:
        if not self.is_alive:
            return
        log.warning(f"OBS connection failed: {error.message or error.__class__.__name__} (code={error.code})")
        self._set_state(StateChange(ConnectionState.FAILED, message=error.message, code=error.code))

    # ── Connection ────────────────────────────────────────────────────

    async def connect(self, params: "ConnectionParameters") -> None:
        if self._state is not ConnectionState.IDLE or self._torn_down:
            log.warning(f"connect() ignored in state {self._state.value}; build a new manager instead")
            return

        self._set_state(StateChange(ConnectionState.CONNECTING))

        session = self._session_factory()
        self._session = session
        self._session_subscriptions = [
            session.subscribe(PROGRAM_SCENE_CHANGED, self._on_program_scene_changed),
            session.subscribe(SESSION_CLOSED, self._on_session_closed),
        ]

        log.info(f"Connecting to OBS at {params.url}...")
        try:
            metadata = await session.open(params)
        except SessionError as e:
            self._fail(e)
            return
        except Exception as e:
            log.error(f"Unexpected error while connecting: {e}", exc_info=True)
            self._fail(SessionError(str(e) or e.__class__.__name__))
            return

        if self._torn_down:
            session.close()
            return

        self._set_state(StateChange(ConnectionState.CONNECTED, metadata=dict(metadata or {})))

    def teardown(self) -> None:
        """Stop listening to the session and release it. Idempotent."""
        if self._torn_down:
            return
        self._torn_down = True
        self._events.clear()
        session, self._session = self._session, None
        if session is not None:
            for sub in self._session_subscriptions:
                session.unsubscribe(sub)
            session.close()
        self._session_subscriptions = []
        log.debug("Connection manager torn down")

    # ── Session notifications ─────────────────────────────────────────

    def _on_program_scene_changed(self, scene_name: Optional[str]) -> None:
        if not self.is_alive:
            return
        self._events.emit(ACTIVE_SCENE_CHANGED, scene_name)

    def _on_session_closed(self, _payload: Any = None) -> None:
        if self._state is ConnectionState.CONNECTED:
            self._fail(SessionLost("Connection to OBS closed"))

    # ── Scenes ────────────────────────────────────────────────────────

    def _require_connected(self) -> Any:
        if not self.is_connected or self._session is None:
            raise NotConnected(f"OBS session is {self._state.value}; connect() has not succeeded")
        return self._session

    async def query_scenes(self) -> SceneSet:
        """Full scene list (front-to-back) plus the current program scene."""
        session = self._require_connected()
        try:
            result = await session.call("GetSceneList")
        except RequestFailed:
            raise
        except SessionError as e:
            self._fail(e)
            raise
        scene_set = SceneSet.from_obs(result.get("scenes", []), result.get("currentProgramSceneName"))
        log.debug(f"Scene list: {scene_set.names} (active: {scene_set.active_scene})")
        return scene_set

    async def switch_scene(self, scene_name: str) -> None:
        """
        Ask OBS to put `scene_name` on program. The switch is confirmed by a
        later active-scene-changed event, not by this call returning.
        """
        session = self._require_connected()
        try:
            await session.call("SetCurrentProgramScene", sceneName=scene_name)
        except RequestFailed as e:
            log.warning(f"Scene switch to '{scene_name}' rejected: {e}")
            return
        except SessionError as e:
            self._fail(e)
            return
        log.info(f"Requested scene: {scene_name}")
