"""
Model

Flattened mesh geometry produced by the loader: one Mesh per instantiated
primitive, with vertex data already baked into world space.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterator, Optional, Tuple

import numpy as np
from pyrr import Matrix44

from .material import Material


class PrimitiveMode(IntEnum):
    """glTF primitive topology codes."""

    POINTS = 0
    LINES = 1
    LINE_LOOP = 2
    LINE_STRIP = 3
    TRIANGLES = 4
    TRIANGLE_STRIP = 5
    TRIANGLE_FAN = 6


@dataclass(frozen=True)
class Vertex:
    """Single vertex with every attribute resolved."""

    position: Tuple[float, float, float]
    normal: Tuple[float, float, float]
    tangent: Tuple[float, float, float, float]
    tex_coords: Tuple[float, float]


def _frozen(array: np.ndarray, dtype) -> np.ndarray:
    array = np.ascontiguousarray(array, dtype=dtype)
    array.flags.writeable = False
    return array


class Mesh:
    """
    Single mesh with geometry and material.

    Vertex attributes are stored as parallel arrays:
    - positions (N, 3) float32, world space
    - normals (N, 3) float32, world space, unit length
    - tangents (N, 4) float32, xyz in world space, w = handedness
    - tex_coords (N, 2) float32
    - indices (M,) uint32, three per triangle

    Arrays are read-only; a Mesh is never modified after loading.
    """

    def __init__(self, positions: np.ndarray, normals: np.ndarray, tangents: np.ndarray,
                 tex_coords: np.ndarray, indices: np.ndarray, material: Material,
                 world_transform: Matrix44 = None, name: str = "Mesh"):
        """
        Initialize mesh.

        Args:
            positions: World space positions
            normals: World space normals
            tangents: World space tangents with handedness
            tex_coords: Texture coordinates (TEXCOORD_0)
            indices: Triangle list indices
            material: Resolved material
            world_transform: Transform that was baked into the vertices
            name: Mesh name for debugging
        """
        self.positions = _frozen(positions, np.float32).reshape(-1, 3)
        self.normals = _frozen(normals, np.float32).reshape(-1, 3)
        self.tangents = _frozen(tangents, np.float32).reshape(-1, 4)
        self.tex_coords = _frozen(tex_coords, np.float32).reshape(-1, 2)
        self.indices = _frozen(indices, np.uint32).reshape(-1)
        self.material = material
        self.world_transform = Matrix44(world_transform) if world_transform is not None else Matrix44.identity()
        self.name = name

        # Source bookkeeping (set by the flattener)
        self.mesh_index: Optional[int] = None
        self.primitive_index: Optional[int] = None
        self.node_index: Optional[int] = None
        self.parent_nodes: Tuple[int, ...] = ()
        self.mode = PrimitiveMode.TRIANGLES

        # Which attributes came from the source data rather than defaults
        self.has_normals = False
        self.has_tangents = False
        self.has_tex_coords = False

        self.extras: Any = None
        self.primitive_extras: Any = None

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    def vertex(self, index: int) -> Vertex:
        """Get a single vertex as a record."""
        return Vertex(
            position=tuple(float(v) for v in self.positions[index]),
            normal=tuple(float(v) for v in self.normals[index]),
            tangent=tuple(float(v) for v in self.tangents[index]),
            tex_coords=tuple(float(v) for v in self.tex_coords[index]),
        )

    def vertices(self) -> Iterator[Vertex]:
        for index in range(self.vertex_count):
            yield self.vertex(index)

    def triangles(self) -> np.ndarray:
        """Index triples as an (M, 3) array."""
        return self.indices.reshape(-1, 3)

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Axis-aligned (min, max) corners of the world space positions."""
        if self.vertex_count == 0:
            zero = np.zeros(3, dtype=np.float32)
            return zero, zero
        return self.positions.min(axis=0), self.positions.max(axis=0)

    def __repr__(self):
        return (f"Mesh(name={self.name!r}, vertices={self.vertex_count}, "
                f"triangles={self.triangle_count}, material={self.material.name!r})")
