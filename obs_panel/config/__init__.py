"""config — Settings, env loading, YAML config, parameter persistence."""
from .settings import (
    DEFAULT_OBS_PORT,
    ConnectionParameters,
    Settings,
    get_settings,
    reload_settings,
)
from .store import ParameterStore

__all__ = [
    "DEFAULT_OBS_PORT",
    "ConnectionParameters",
    "ParameterStore",
    "Settings",
    "get_settings",
    "reload_settings",
]
