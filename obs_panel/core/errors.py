"""
core/errors.py — Error taxonomy for the OBS connection layer.

Transport failures (SessionError and subclasses) never escape a
ConnectionManager; they are converted into a Failed state change carrying
the error's message and code.
"""

from __future__ import annotations

from typing import Optional

# obs-websocket v5 WebSocketCloseCode values
AUTH_FAILED_CODE = 4009
UNSUPPORTED_RPC_CODE = 4010


class PanelError(Exception):
    pass


class SessionError(PanelError):
    """A failure reported by the underlying obs-websocket session."""

    default_code: Optional[int] = None

    def __init__(self, message: str = "", code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code


class ConnectionRefused(SessionError):
    pass


class AuthRejected(SessionError):
    default_code = AUTH_FAILED_CODE


class NegotiationMismatch(SessionError):
    default_code = UNSUPPORTED_RPC_CODE


class SessionLost(SessionError):
    """The session died while a request was in flight."""


class RequestFailed(SessionError):
    """OBS answered a request with a failure status. The session itself is fine."""


class NotConnected(PanelError):
    def __init__(self, message: str = "Not connected to OBS"):
        super().__init__(message)


class InvalidParameterKey(PanelError, KeyError):
    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Unknown connection parameter '{self.key}'"
