"""core — OBS session and connection lifecycle."""
from .connection_manager import (
    ACTIVE_SCENE_CHANGED,
    STATE_CHANGED,
    ConnectionManager,
    ConnectionState,
    StateChange,
)
from .errors import (
    AuthRejected,
    ConnectionRefused,
    InvalidParameterKey,
    NegotiationMismatch,
    NotConnected,
    PanelError,
    RequestFailed,
    SessionError,
    SessionLost,
)
from .events import EventEmitter, Subscription
from .session import PROGRAM_SCENE_CHANGED, SESSION_CLOSED, ObsSession

__all__ = [
    "ACTIVE_SCENE_CHANGED",
    "PROGRAM_SCENE_CHANGED",
    "SESSION_CLOSED",
    "STATE_CHANGED",
    "AuthRejected",
    "ConnectionManager",
    "ConnectionRefused",
    "ConnectionState",
    "EventEmitter",
    "InvalidParameterKey",
    "NegotiationMismatch",
    "NotConnected",
    "ObsSession",
    "PanelError",
    "RequestFailed",
    "SessionError",
    "SessionLost",
    "StateChange",
    "Subscription",
]
