"""
obs-panel — Scene control panel for a remote OBS instance.

Modules:
  core/    — obs-websocket session, connection manager, error taxonomy
  panel/   — session controller: reconnects, cached scene state, operator intents
  scenes/  — Scene / SceneSet models
  api/     — FastAPI REST + WebSocket surface for the panel UI
  config/  — Settings, env loading, YAML config, parameter persistence
"""

__version__ = "1.0.0"
