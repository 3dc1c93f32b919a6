"""
Texture Transform

Represents the KHR_texture_transform extension on a texture slot.
UV coordinates are offset, rotated and scaled before sampling.
"""

from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..errors import MalformedDocument

EXTENSION_NAME = "KHR_texture_transform"


class TextureTransform:
    """
    Texture coordinate transformation (KHR_texture_transform).

    Stores offset, scale, rotation and an optional texCoord override, and
    computes the 3x3 matrix applied as ``uv' = (M @ [u, v, 1]).xy``.

    GLTF Spec: https://github.com/KhronosGroup/glTF/tree/main/extensions/2.0/Khronos/KHR_texture_transform
    """

    def __init__(
        self,
        offset: Tuple[float, float] = (0.0, 0.0),
        scale: Tuple[float, float] = (1.0, 1.0),
        rotation: float = 0.0,
        texcoord: Optional[int] = None
    ):
        """
        Initialize texture transform.

        Args:
            offset: Translation offset (U, V) - default (0, 0)
            scale: Scale factors (U, V) - default (1, 1)
            rotation: Rotation in radians (counter-clockwise in UV space) - default 0
            texcoord: Texture coordinate set overriding the slot's texCoord, if any
        """
        self.offset = np.array(offset, dtype=np.float64)
        self.scale = np.array(scale, dtype=np.float64)
        self.rotation = float(rotation)
        self.texcoord = texcoord
        self.matrix = self._build_matrix()

    @classmethod
    def from_extensions(cls, extensions: Optional[Dict[str, Any]]) -> Optional['TextureTransform']:
        """
        Read the extension from a textureInfo's ``extensions`` object.

        Returns:
            TextureTransform if the extension is present, None otherwise
        """
        if not extensions or EXTENSION_NAME not in extensions:
            return None

        data = extensions[EXTENSION_NAME]
        if not isinstance(data, dict):
            raise MalformedDocument(f"{EXTENSION_NAME} must be an object")

        offset = data.get('offset', [0.0, 0.0])
        scale = data.get('scale', [1.0, 1.0])
        if len(offset) != 2 or len(scale) != 2:
            raise MalformedDocument(f"{EXTENSION_NAME} offset and scale need 2 values")

        return cls(
            offset=tuple(offset),
            scale=tuple(scale),
            rotation=data.get('rotation', 0.0),
            texcoord=data.get('texCoord'),
        )

    def _build_matrix(self) -> np.ndarray:
        """
        Compose translation * rotation * scale.

        Matrix form:
        [ cos(r)*sx   sin(r)*sy  ox ]
        [ -sin(r)*sx  cos(r)*sy  oy ]
        [     0           0       1 ]
        """
        c = np.cos(self.rotation)
        s = np.sin(self.rotation)
        sx, sy = self.scale
        ox, oy = self.offset

        return np.array([
            [c * sx, s * sy, ox],
            [-s * sx, c * sy, oy],
            [0.0, 0.0, 1.0],
        ], dtype=np.float64)

    def apply(self, uvs: np.ndarray) -> np.ndarray:
        """
        Transform an (N, 2) array of texture coordinates.

        Returns:
            New float32 array of transformed coordinates
        """
        uvs = np.asarray(uvs, dtype=np.float64)
        return (uvs @ self.matrix[:2, :2].T + self.matrix[:2, 2]).astype(np.float32)

    def is_identity(self) -> bool:
        return np.allclose(self.matrix, np.eye(3))

    def __repr__(self):
        return (f"TextureTransform(offset={tuple(self.offset)}, "
                f"scale={tuple(self.scale)}, rotation={self.rotation:.3f})")
