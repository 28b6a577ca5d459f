"""
core/events.py — Minimal event emitter with token-based subscriptions.

Listeners are stored per event kind under a unique token. Removing a
listener needs only the Subscription handle returned by subscribe(), so
callers never have to keep the original callable around.
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

log = logging.getLogger(__name__)

Listener = Callable[[Any], None]


@dataclass(frozen=True)
class Subscription:
    kind: str
    token: int


class EventEmitter:
    def __init__(self):
        self._listeners: dict[str, dict[int, Listener]] = defaultdict(dict)
        self._tokens = itertools.count(1)

    def subscribe(self, kind: str, callback: Listener) -> Subscription:
        token = next(self._tokens)
        self._listeners[kind][token] = callback
        return Subscription(kind=kind, token=token)

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a listener. Returns False if it was already removed."""
        listeners = self._listeners.get(subscription.kind)
        if not listeners or subscription.token not in listeners:
            return False
        del listeners[subscription.token]
        return True

    def clear(self) -> None:
        self._listeners.clear()

    def listener_count(self, kind: str) -> int:
        return len(self._listeners.get(kind, {}))

    def emit(self, kind: str, payload: Any = None) -> int:
        """Call every listener of `kind` in subscription order. Returns how many were called."""
        listeners = list(self._listeners.get(kind, {}).values())
        for cb in listeners:
            try:
                cb(payload)
            except Exception as e:
                log.error(f"Listener error on '{kind}': {e}", exc_info=True)
        return len(listeners)
