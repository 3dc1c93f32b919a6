"""
Camera Module

Cameras instantiated from glTF camera nodes, placed in world space.
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

import numpy as np
from pyrr import Matrix44, Vector3, matrix44

from ..errors import MalformedDocument
from .transforms import normalize_rows, translation_of


@dataclass(frozen=True)
class PerspectiveProjection:
    """Perspective projection; zfar of None means an infinite far plane."""

    yfov: float
    znear: float
    zfar: Optional[float] = None
    aspect_ratio: Optional[float] = None


@dataclass(frozen=True)
class OrthographicProjection:
    """Orthographic projection with half extents xmag/ymag."""

    xmag: float
    ymag: float
    znear: float
    zfar: float


Projection = Union[PerspectiveProjection, OrthographicProjection]


def _required(value, label: str) -> float:
    if value is None:
        raise MalformedDocument(f"Camera {label} is required")
    return float(value)


def parse_projection(gltf_camera) -> Projection:
    """
    Read the projection of a pygltflib Camera.

    Raises:
        MalformedDocument: Unknown type or missing/invalid parameters
    """
    kind = gltf_camera.type
    if kind == "perspective":
        data = gltf_camera.perspective
        if data is None:
            raise MalformedDocument("Perspective camera has no 'perspective' object")
        projection = PerspectiveProjection(
            yfov=_required(data.yfov, "perspective.yfov"),
            znear=_required(data.znear, "perspective.znear"),
            zfar=float(data.zfar) if data.zfar is not None else None,
            aspect_ratio=float(data.aspectRatio) if data.aspectRatio is not None else None,
        )
        if projection.yfov <= 0.0 or projection.znear <= 0.0:
            raise MalformedDocument("Perspective camera needs positive yfov and znear")
        if projection.zfar is not None and projection.zfar <= projection.znear:
            raise MalformedDocument("Perspective camera zfar must exceed znear")
        if projection.aspect_ratio is not None and projection.aspect_ratio <= 0.0:
            raise MalformedDocument("Perspective camera aspectRatio must be positive")
        return projection

    if kind == "orthographic":
        data = gltf_camera.orthographic
        if data is None:
            raise MalformedDocument("Orthographic camera has no 'orthographic' object")
        projection = OrthographicProjection(
            xmag=_required(data.xmag, "orthographic.xmag"),
            ymag=_required(data.ymag, "orthographic.ymag"),
            znear=_required(data.znear, "orthographic.znear"),
            zfar=_required(data.zfar, "orthographic.zfar"),
        )
        if projection.xmag == 0.0 or projection.ymag == 0.0:
            raise MalformedDocument("Orthographic camera xmag and ymag must be non-zero")
        if projection.znear < 0.0 or projection.zfar <= projection.znear:
            raise MalformedDocument("Orthographic camera needs 0 <= znear < zfar")
        return projection

    raise MalformedDocument(f"Unknown camera type: {kind!r}")


class Camera:
    """
    Camera placed in world space.

    glTF cameras look down their local -Z axis with +Y up.
    """

    def __init__(self, projection: Projection, world_transform: Matrix44 = None,
                 name: Optional[str] = None):
        """
        Initialize camera.

        Args:
            projection: Perspective or orthographic parameters
            world_transform: Node world transform
            name: Camera name (camera object, else node)
        """
        self.projection = projection
        self.world_transform = Matrix44(world_transform) if world_transform is not None else Matrix44.identity()
        self.name = name

        self.camera_index: Optional[int] = None
        self.node_index: Optional[int] = None
        self.parent_nodes: Tuple[int, ...] = ()
        self.extras: Any = None

    @property
    def is_perspective(self) -> bool:
        return isinstance(self.projection, PerspectiveProjection)

    @property
    def position(self) -> Vector3:
        """World space position"""
        return Vector3(translation_of(self.world_transform))

    @property
    def forward(self) -> Vector3:
        """World space view direction (local -Z)"""
        return self._axis((0.0, 0.0, -1.0))

    @property
    def up(self) -> Vector3:
        """World space up vector (local +Y)"""
        return self._axis((0.0, 1.0, 0.0))

    def _axis(self, local_axis) -> Vector3:
        linear = np.asarray(self.world_transform, dtype=np.float64)[:3, :3]
        direction = normalize_rows((np.asarray(local_axis) @ linear)[np.newaxis, :], local_axis)
        return Vector3(direction[0])

    def view_matrix(self) -> Matrix44:
        """Inverse of the world transform"""
        return Matrix44(np.linalg.inv(np.asarray(self.world_transform, dtype=np.float64)))

    def projection_matrix(self, aspect_ratio: Optional[float] = None) -> Matrix44:
        """
        Build the projection matrix in pyrr's row vector layout.

        Args:
            aspect_ratio: Viewport aspect ratio; required for perspective
                cameras that do not declare one, overrides nothing otherwise

        Returns:
            4x4 projection matrix
        """
        p = self.projection

        if isinstance(p, OrthographicProjection):
            return Matrix44(matrix44.create_orthogonal_projection(
                -p.xmag, p.xmag, -p.ymag, p.ymag, p.znear, p.zfar, dtype=np.float64
            ))

        aspect = p.aspect_ratio if p.aspect_ratio is not None else aspect_ratio
        if aspect is None:
            raise ValueError("Camera declares no aspect ratio; pass the viewport's")

        if p.zfar is not None:
            return Matrix44.perspective_projection(
                np.degrees(p.yfov), aspect, p.znear, p.zfar, dtype=np.float64
            )

        # Infinite far plane; pyrr has no constructor for it
        focal = 1.0 / np.tan(0.5 * p.yfov)
        matrix = np.zeros((4, 4), dtype=np.float64)
        matrix[0, 0] = focal / aspect
        matrix[1, 1] = focal
        matrix[2, 2] = -1.0
        matrix[2, 3] = -1.0
        matrix[3, 2] = -2.0 * p.znear
        return Matrix44(matrix)

    def __repr__(self):
        kind = "perspective" if self.is_perspective else "orthographic"
        return f"Camera(name={self.name!r}, {kind}, position={tuple(self.position)})"
