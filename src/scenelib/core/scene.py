"""
Scene Results

Flattened output of one glTF scene.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

import numpy as np
from pyrr import Matrix44, Vector3

from .camera import Camera
from .light import Light
from .transforms import translation_of

if TYPE_CHECKING:
    from ..loaders.model import Mesh


@dataclass
class SceneEmpty:
    """Node with nothing attached, kept so callers can anchor things to it."""

    node_index: int
    world_transform: Matrix44
    name: Optional[str] = None
    parent_nodes: Tuple[int, ...] = ()
    extras: Any = None

    @property
    def position(self) -> Vector3:
        return Vector3(translation_of(self.world_transform))


@dataclass
class SceneLoadResult:
    """
    Everything extracted from one scene.

    Lists keep document traversal order: roots in scene order, children
    depth-first in node order.
    """

    index: int
    name: Optional[str] = None
    extras: Any = None
    meshes: List["Mesh"] = field(default_factory=list)
    cameras: List[Camera] = field(default_factory=list)
    lights: List[Light] = field(default_factory=list)
    empties: List[SceneEmpty] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def vertex_count(self) -> int:
        return sum(mesh.vertex_count for mesh in self.meshes)

    @property
    def triangle_count(self) -> int:
        return sum(mesh.triangle_count for mesh in self.meshes)

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Axis-aligned (min, max) corners over all meshes."""
        corners = [mesh.bounds() for mesh in self.meshes if mesh.vertex_count]
        if not corners:
            zero = np.zeros(3, dtype=np.float32)
            return zero, zero
        mins, maxs = zip(*corners)
        return np.min(mins, axis=0), np.max(maxs, axis=0)

    def __repr__(self):
        return (f"SceneLoadResult(index={self.index}, name={self.name!r}, "
                f"meshes={len(self.meshes)}, cameras={len(self.cameras)}, "
                f"lights={len(self.lights)}, empties={len(self.empties)})")
