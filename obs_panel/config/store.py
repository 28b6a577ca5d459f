"""
config/store.py — Persist operator-chosen connection parameters to YAML.

Read once at startup, rewritten after every parameter change.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from .settings import ConnectionParameters

log = logging.getLogger(__name__)


class ParameterStore:
    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[ConnectionParameters]:
        """Return the saved parameters, or None if nothing usable was saved."""
        if not self.path.exists():
            return None
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
            params = ConnectionParameters(**data)
            log.info(f"Loaded connection parameters: {params.describe()}")
            return params
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            log.warning(f"Could not load connection parameters from {self.path}: {e}")
            return None

    def save(self, params: ConnectionParameters) -> None:
        try:
            with open(self.path, "w") as f:
                yaml.safe_dump(params.model_dump(), f, default_flow_style=False, sort_keys=False)
            log.debug(f"Connection parameters saved → {self.path}")
        except OSError as e:
            log.warning(f"Could not save connection parameters: {e}")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
