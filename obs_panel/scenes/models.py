"""
scenes/models.py — Scene and SceneSet as reported by OBS.

OBS lists scenes back-to-front (the bottom entry of its Scenes dock comes
first). SceneSet always holds them front-to-back, the order an operator
sees them in OBS.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional


@dataclass(frozen=True)
class Scene:
    name: str
    metadata: dict = field(default_factory=dict, compare=False)

    @classmethod
    def from_obs(cls, data: dict) -> "Scene":
        """Build from a GetSceneList entry; everything except sceneName is kept opaque."""
        meta = {k: v for k, v in data.items() if k != "sceneName"}
        return cls(name=data.get("sceneName", ""), metadata=meta)

    def to_dict(self) -> dict:
        return {"name": self.name, **self.metadata}


@dataclass(frozen=True)
class SceneSet:
    scenes: tuple[Scene, ...] = ()
    active_scene: Optional[str] = None

    @classmethod
    def from_obs(cls, scenes: list[dict], active_scene: Optional[str]) -> "SceneSet":
        ordered = [Scene.from_obs(s) for s in scenes]
        ordered.reverse()
        return cls(scenes=tuple(ordered), active_scene=active_scene)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.scenes]

    def with_active(self, scene_name: Optional[str]) -> "SceneSet":
        return replace(self, active_scene=scene_name)

    def is_consistent(self) -> bool:
        return self.active_scene is None or self.active_scene in self.names

    def to_dict(self) -> dict:
        return {
            "scenes": [s.to_dict() for s in self.scenes],
            "active_scene": self.active_scene,
        }
