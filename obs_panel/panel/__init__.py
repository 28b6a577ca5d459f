"""panel — Session orchestration and the snapshot served to the panel UI."""
from .controller import PanelSnapshot, SessionController

__all__ = ["PanelSnapshot", "SessionController"]
