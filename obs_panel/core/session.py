"""
core/session.py — One obs-websocket 5.x session, wrapped for asyncio.

obs-websocket-py is blocking and delivers events on its own receive thread.
ObsSession runs the blocking calls in the default executor and hops every
event back onto the event loop, so consumers only ever see loop-thread
callbacks.

A session is single-use: open() once, close() once. Reconnecting means
building a new ObsSession.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from obswebsocket import events as obs_events
from obswebsocket import exceptions as obs_exceptions
from obswebsocket import obsws
from obswebsocket import requests as obs_requests

from .errors import (
    AuthRejected,
    ConnectionRefused,
    NegotiationMismatch,
    RequestFailed,
    SessionError,
    SessionLost,
)
from .events import EventEmitter, Subscription

if TYPE_CHECKING:
    from obs_panel.config import ConnectionParameters

log = logging.getLogger(__name__)

PROGRAM_SCENE_CHANGED = "program_scene_changed"
SESSION_CLOSED = "session_closed"

SUPPORTED_RPC_VERSION = 1


def classify_open_error(exc: BaseException, secret: Optional[str] = None) -> SessionError:
    """Map whatever the socket/handshake raised onto the session error taxonomy."""
    if isinstance(exc, SessionError):
        return exc
    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()

    code = getattr(exc, "status_code", None)
    cause = exc.__cause__ or exc.__context__
    for candidate in (exc, cause):
        if code is None and isinstance(candidate, OSError) and candidate.errno:
            code = candidate.errno

    if "auth" in lowered or "password" in lowered:
        return AuthRejected(message, code)
    if "rpc" in lowered:
        return NegotiationMismatch(message, code)
    # OBS drops the socket mid-handshake when the password is wrong
    if secret and ("closed" in lowered or "lost" in lowered or "identified" in lowered):
        return AuthRejected(message, code)
    return ConnectionRefused(message, code)


class ObsSession:
    def __init__(self, request_timeout: int = 10):
        self.request_timeout = request_timeout
        self._ws: Optional[Any] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events = EventEmitter()
        self._opened = False
        self._closed = False
        self._closing: Optional[asyncio.Future] = None

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def open(self, params: "ConnectionParameters") -> dict:
        """
        Connect and identify. Returns the negotiated version metadata.
        Raises a SessionError subclass on any failure.
        """
        if self._opened or self._closed:
            raise SessionError("Session is single-use")
        self._loop = asyncio.get_running_loop()
        # obsws picks the v4 handshake for port 4444 unless told otherwise
        self._ws = obsws(
            params.host,
            params.port,
            params.secret or "",
            legacy=False,
            timeout=self.request_timeout,
            on_disconnect=self._on_disconnect,
        )
        self._ws.register(self._on_program_scene_changed, obs_events.CurrentProgramSceneChanged)
        self._ws.register(self._on_disconnect, obs_events.ExitStarted)

        try:
            await self._loop.run_in_executor(None, self._ws.connect)
        except Exception as e:
            self._drop_socket()
            raise classify_open_error(e, params.secret) from e
        self._opened = True

        if self._closed:
            # close() ran while the handshake was in flight
            self._closing = self._loop.run_in_executor(None, self._disconnect)
            await self.wait_closed()
            raise SessionLost("Session closed while connecting")

        try:
            version = await self.call("GetVersion")
        except SessionError:
            self.close()
            await self.wait_closed()
            raise
        rpc_version = version.get("rpcVersion")
        if rpc_version != SUPPORTED_RPC_VERSION:
            self.close()
            await self.wait_closed()
            raise NegotiationMismatch(f"Unsupported obs-websocket RPC version: {rpc_version}")

        log.info(f"Connected to OBS at {params.describe()} (obs-websocket {version.get('obsWebSocketVersion', '?')})")
        return {
            "obs_web_socket_version": version.get("obsWebSocketVersion", ""),
            "rpc_version": rpc_version,
            "obs_version": version.get("obsVersion", ""),
            "platform": version.get("platform", ""),
        }

    def close(self) -> None:
        """
        Drop every subscriber and start disconnecting. Safe to call more than once.

        Returns immediately: obsws.disconnect() waits on the peer's close frame
        and joins the receive thread, so it runs in the executor. Await
        wait_closed() to know when the socket is actually gone.
        """
        if self._closed:
            return
        self._closed = True
        self._events.clear()
        if self._ws is not None:
            try:
                self._ws.unregister(self._on_program_scene_changed, obs_events.CurrentProgramSceneChanged)
                self._ws.unregister(self._on_disconnect, obs_events.ExitStarted)
            except Exception as e:
                log.debug(f"Unregister failed: {e}")
        if self._opened:
            try:
                self._closing = self._loop.run_in_executor(None, self._disconnect)
            except RuntimeError:
                # loop already shut down, nothing left to block
                self._disconnect()

    async def wait_closed(self) -> None:
        if self._closing is not None:
            await self._closing

    def _disconnect(self) -> None:
        try:
            self._ws.disconnect()
        except Exception as e:
            log.debug(f"OBS disconnect raised: {e}")

    def _drop_socket(self) -> None:
        """Close the raw socket left behind by a handshake that failed after the upgrade."""
        sock = getattr(self._ws, "ws", None)
        if sock is None:
            return
        try:
            sock.shutdown()
        except Exception as e:
            log.debug(f"Socket shutdown raised: {e}")

    # ── Requests ──────────────────────────────────────────────────────

    def _call(self, request_name: str, args: dict) -> dict:
        request = getattr(obs_requests, request_name)(**args)
        result = self._ws.call(request)
        if not getattr(result, "status", True):
            raise RequestFailed(f"{request_name} rejected by OBS: {getattr(result, 'datain', None)}")
        return getattr(result, "datain", None) or {}

    async def call(self, request_name: str, **args: Any) -> dict:
        if not self.is_open:
            raise SessionLost("Session is not open")
        try:
            return await self._loop.run_in_executor(None, self._call, request_name, args)
        except RequestFailed:
            raise
        except (obs_exceptions.MessageTimeout, obs_exceptions.ConnectionFailure, OSError) as e:
            raise SessionLost(str(e) or e.__class__.__name__) from e
        except Exception as e:
            raise SessionLost(f"{request_name} failed: {e}") from e

    # ── Notifications ─────────────────────────────────────────────────

    def subscribe(self, kind: str, callback: Callable[[Any], None]) -> Subscription:
        return self._events.subscribe(kind, callback)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self._events.unsubscribe(subscription)

    def _post(self, kind: str, payload: Any) -> None:
        """Hand an event from the receive thread to the loop thread."""
        if self._closed or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._dispatch, kind, payload)
        except RuntimeError:
            log.debug(f"Event loop gone, dropped '{kind}'")

    def _dispatch(self, kind: str, payload: Any) -> None:
        if not self._closed:
            self._events.emit(kind, payload)

    def _on_program_scene_changed(self, event: Any) -> None:
        """Fired when the program scene changes from ANY source (OBS UI, hotkeys, other clients)."""
        datain = getattr(event, "datain", None) or {}
        scene_name = datain.get("sceneName")
        log.debug(f"CurrentProgramSceneChanged: {scene_name}")
        self._post(PROGRAM_SCENE_CHANGED, scene_name)

    def _on_disconnect(self, _source: Any = None) -> None:
        """Called by obsws on a dropped socket, and on OBS's ExitStarted event."""
        if self._opened and not self._closed:
            log.warning("OBS connection closed by remote")
            self._post(SESSION_CLOSED, None)
