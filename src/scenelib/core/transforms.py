"""
Transform Utilities

Node transform math for the scene graph flattener.

All matrices use pyrr's layout: row vectors, so a point is transformed as
``[x, y, z, 1] @ M``, the translation sits in row 3 and
``world = local @ parent``. glTF stores node matrices column-major, which
reads directly into this layout.
"""

from typing import Optional, Sequence

import numpy as np
from pyrr import Matrix44, Quaternion

from ..config.settings import NORMAL_EPSILON, QUATERNION_EPSILON
from ..errors import MalformedDocument


def identity() -> Matrix44:
    """Identity transform used as the parent of scene roots."""
    return Matrix44.identity(dtype=np.float64)


def rotation_matrix(rotation: Sequence[float]) -> Matrix44:
    """
    Rotation matrix for a glTF quaternion.

    Args:
        rotation: Quaternion as (x, y, z, w), same layout as pyrr uses

    Returns:
        4x4 rotation for row vectors
    """
    quat = Quaternion(np.asarray(rotation, dtype=np.float64))
    if quat.length ** 2 < QUATERNION_EPSILON:
        raise MalformedDocument(f"Node rotation is a zero quaternion: {list(rotation)}")
    # pyrr lays out quaternion matrices for column vectors
    return Matrix44(Matrix44.from_quaternion(quat.normalised).T)


def trs_matrix(translation: Optional[Sequence[float]] = None,
               rotation: Optional[Sequence[float]] = None,
               scale: Optional[Sequence[float]] = None) -> Matrix44:
    """
    Compose a local transform: scale, then rotate, then translate.

    Args:
        translation: (x, y, z), default origin
        rotation: quaternion (x, y, z, w), default identity
        scale: (x, y, z), default 1

    Returns:
        4x4 transform
    """
    matrix = identity()

    if scale is not None:
        matrix = matrix @ Matrix44.from_scale(np.asarray(scale, dtype=np.float64)[:3])

    if rotation is not None:
        matrix = matrix @ rotation_matrix(rotation)

    if translation is not None:
        matrix = matrix @ Matrix44.from_translation(np.asarray(translation, dtype=np.float64)[:3])

    return Matrix44(matrix)


def node_local_transform(node) -> Matrix44:
    """
    Extract the local transformation matrix from a glTF node.

    The matrix form is used verbatim when present; otherwise the TRS
    properties are composed. The two forms are never combined.

    Args:
        node: pygltflib Node

    Returns:
        4x4 local transform
    """
    if node.matrix is not None:
        if len(node.matrix) != 16:
            raise MalformedDocument(f"Node matrix must have 16 values, got {len(node.matrix)}")
        # Column-major glTF is already pyrr's row-vector layout
        return Matrix44(np.array(node.matrix, dtype=np.float64).reshape(4, 4))

    for name, size in (("translation", 3), ("rotation", 4), ("scale", 3)):
        value = getattr(node, name, None)
        if value is not None and len(value) != size:
            raise MalformedDocument(f"Node {name} must have {size} values, got {len(value)}")

    return trs_matrix(node.translation, node.rotation, node.scale)


def compose(parent: np.ndarray, local: np.ndarray) -> Matrix44:
    """world = local * parent"""
    return Matrix44(np.asarray(local, dtype=np.float64) @ np.asarray(parent, dtype=np.float64))


def translation_of(matrix: np.ndarray) -> np.ndarray:
    """Translation part of a transform."""
    return np.array(np.asarray(matrix, dtype=np.float64)[3, :3])


def normal_matrix(matrix: np.ndarray) -> np.ndarray:
    """
    Inverse-transpose of the upper 3x3, for transforming normals.

    Singular transforms (a zero scale axis) use the pseudo-inverse.
    """
    linear = np.asarray(matrix, dtype=np.float64)[:3, :3]
    try:
        inverse = np.linalg.inv(linear)
    except np.linalg.LinAlgError:
        inverse = np.linalg.pinv(linear)
    return inverse.T


def determinant(matrix: np.ndarray) -> float:
    """Determinant of the upper 3x3 (negative means mirrored winding)."""
    return float(np.linalg.det(np.asarray(matrix, dtype=np.float64)[:3, :3]))


def normalize_rows(vectors: np.ndarray, fallback: Sequence[float]) -> np.ndarray:
    """
    Normalize each row, replacing zero-length rows by ``fallback``.

    Args:
        vectors: (N, 3) array
        fallback: Unit vector used for degenerate rows

    Returns:
        (N, 3) float64 array of unit vectors
    """
    vectors = np.asarray(vectors, dtype=np.float64)
    lengths_sq = np.einsum('ij,ij->i', vectors, vectors)
    degenerate = lengths_sq < NORMAL_EPSILON

    lengths = np.sqrt(np.where(degenerate, 1.0, lengths_sq))
    result = vectors / lengths[:, np.newaxis]
    if np.any(degenerate):
        result[degenerate] = np.asarray(fallback, dtype=np.float64)
    return result


def transform_points(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """
    Transform (N, 3) points by a 4x4 matrix.

    A projective last column (only possible with a verbatim node matrix)
    is honored with a perspective divide.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    points = np.asarray(points, dtype=np.float64)
    result = points @ matrix[:3, :3] + matrix[3, :3]

    if not np.allclose(matrix[:, 3], (0.0, 0.0, 0.0, 1.0)):
        w = points @ matrix[:3, 3] + matrix[3, 3]
        w = np.where(np.abs(w) < NORMAL_EPSILON, 1.0, w)
        result = result / w[:, np.newaxis]

    return result


def transform_directions(linear: np.ndarray, vectors: np.ndarray,
                         fallback: Sequence[float]) -> np.ndarray:
    """Transform (N, 3) direction vectors by a 3x3 matrix and renormalize."""
    linear = np.asarray(linear, dtype=np.float64)[:3, :3]
    return normalize_rows(np.asarray(vectors, dtype=np.float64) @ linear, fallback)
