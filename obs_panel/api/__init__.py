"""api — FastAPI REST + WebSocket surface for the panel UI."""
from .server import create_app, set_controller, ws_pool

__all__ = ["create_app", "set_controller", "ws_pool"]
