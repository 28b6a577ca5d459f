"""scenes — Scene list models."""
from .models import Scene, SceneSet

__all__ = ["Scene", "SceneSet"]
