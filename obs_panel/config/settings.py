"""
config/settings.py — Central configuration via env vars + YAML override.

Priority: ENV > config.yaml > defaults
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from obs_panel.core.errors import InvalidParameterKey

DEFAULT_OBS_PORT = 4455


class ConnectionParameters(BaseModel):
    """Where and how to reach OBS. Immutable; a fresh copy is handed to every attempt."""

    host: str = Field("localhost", description="OBS WebSocket host")
    port: int = Field(DEFAULT_OBS_PORT, ge=0, le=65535, description="OBS WebSocket port")
    secret: Optional[str] = Field(None, description="OBS WebSocket password")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    @classmethod
    def check_key(cls, key: str) -> None:
        if key not in cls.model_fields:
            raise InvalidParameterKey(key)

    def merged(self, updates: dict) -> "ConnectionParameters":
        """Return a new instance with `updates` applied. Keys must already be checked."""
        return ConnectionParameters(**{**self.model_dump(), **updates})

    def describe(self) -> str:
        return f"{self.host}:{self.port}"


class OBSSettings(BaseSettings):
    host: str = Field("localhost", description="OBS WebSocket host")
    port: int = Field(DEFAULT_OBS_PORT, description="OBS WebSocket port")
    password: Optional[str] = Field(None, description="OBS WebSocket password")
    retry_delay: float = Field(1.0, description="Seconds to wait after a failed attempt before retrying")
    request_timeout: int = Field(10, description="Seconds before an obs-websocket request times out")

    model_config = SettingsConfigDict(env_prefix="OBS_")

    def connection_parameters(self) -> ConnectionParameters:
        return ConnectionParameters(host=self.host, port=self.port, secret=self.password or None)


class APISettings(BaseSettings):
    host: str = Field("0.0.0.0", description="API server bind host")
    port: int = Field(8080, description="API server port")
    api_key: Optional[str] = Field(None, description="Bearer token for API auth (optional)")
    cors_origins: list[str] = Field(["*"], description="CORS allowed origins")
    log_level: str = Field("info", description="Log level")

    model_config = SettingsConfigDict(env_prefix="API_")


class PanelSettings(BaseSettings):
    state_file: Path = Field(Path("connection.yaml"), description="Where operator-chosen connection parameters are kept")

    model_config = SettingsConfigDict(env_prefix="PANEL_")


class Settings(BaseSettings):
    obs: OBSSettings = Field(default_factory=OBSSettings)
    api: APISettings = Field(default_factory=APISettings)
    panel: PanelSettings = Field(default_factory=PanelSettings)
    config_file: Path = Field(Path("config.yaml"), description="Path to YAML config file")

    model_config = SettingsConfigDict(env_prefix="PANEL_")

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings, merging YAML file if present."""
        path = config_path or Path(os.environ.get("PANEL_CONFIG_FILE", "config.yaml"))
        yaml_data: dict = {}

        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

        obs = OBSSettings(**yaml_data.get("obs", {}))
        api = APISettings(**yaml_data.get("api", {}))
        panel = PanelSettings(**yaml_data.get("panel", {}))

        return cls(obs=obs, api=api, panel=panel, config_file=path)

    def to_yaml(self, path: Path) -> None:
        """Save current settings to YAML."""
        data = {
            "obs": self.obs.model_dump(),
            "api": self.api.model_dump(),
            "panel": {"state_file": str(self.panel.state_file)},
        }
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_settings(config_path: Optional[Path] = None) -> Settings:
    global _settings
    _settings = Settings.load(config_path)
    return _settings
