"""
Mesh Assembler

Turns glTF mesh primitives into local space triangle lists: decodes the
vertex attributes, triangulates strips and fans, and fills in normals,
tangents and texture coordinates the source leaves out.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..config.settings import (
    GENERATE_FLAT_NORMALS,
    GENERATE_TANGENTS,
    GENERATED_NORMAL_FALLBACK,
    NORMAL_EPSILON,
)
from ..core.transforms import normalize_rows
from ..errors import AccessorOutOfBounds, MalformedDocument, UnsupportedPrimitiveMode
from .accessors import AccessorDecoder
from .document import GltfDocument
from .model import PrimitiveMode

logger = logging.getLogger(__name__)

INDEX_DTYPES = (np.dtype('<u1'), np.dtype('<u2'), np.dtype('<u4'))


class AssembledPrimitive:
    """
    Local space geometry of one primitive, ready to be placed in a scene.

    Shared between every node that instantiates the primitive's mesh.
    """

    def __init__(self, positions: np.ndarray, normals: np.ndarray, tangents: np.ndarray,
                 tex_coords: np.ndarray, indices: np.ndarray, mode: PrimitiveMode,
                 material_index: Optional[int] = None):
        self.positions = positions
        self.normals = normals
        self.tangents = tangents
        self.tex_coords = tex_coords
        self.indices = indices
        self.mode = mode
        self.material_index = material_index

        self.has_normals = False
        self.has_tangents = False
        self.has_tex_coords = False
        self.extras: Any = None

        for array in (positions, normals, tangents, tex_coords, indices):
            array.flags.writeable = False

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3


def triangulate(indices: np.ndarray, mode: int) -> np.ndarray:
    """
    Convert a primitive's index stream into (M, 3) triangles.

    Strips alternate their winding every other triangle so each triangle
    keeps the orientation of the first one. Fans pivot on the first index.

    Args:
        indices: Flat index stream (or synthesized sequential indices)
        mode: glTF primitive mode

    Returns:
        Triangles as an (M, 3) int64 array
    """
    indices = np.asarray(indices, dtype=np.int64)

    if mode == PrimitiveMode.TRIANGLES:
        usable = len(indices) - len(indices) % 3
        return indices[:usable].reshape(-1, 3)

    if mode in (PrimitiveMode.TRIANGLE_STRIP, PrimitiveMode.TRIANGLE_FAN):
        count = max(len(indices) - 2, 0)
        if count == 0:
            return np.zeros((0, 3), dtype=np.int64)
        i = np.arange(count)

        if mode == PrimitiveMode.TRIANGLE_STRIP:
            odd = i % 2
            return np.stack(
                [indices[i], indices[i + 1 + odd], indices[i + 2 - odd]], axis=1
            )

        return np.stack(
            [indices[i + 1], indices[i + 2], np.full(count, indices[0])], axis=1
        )

    raise UnsupportedPrimitiveMode(mode)


def face_normals(positions: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """
    Unnormalized face normals, cross(v1 - v0, v2 - v0).

    The length equals twice the triangle's area, which makes the result
    usable directly as an area weight.
    """
    v0 = positions[triangles[:, 0]]
    v1 = positions[triangles[:, 1]]
    v2 = positions[triangles[:, 2]]
    return np.cross(v1 - v0, v2 - v0)


def generate_smooth_normals(positions: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """
    Generate vertex normals by averaging the face normals of shared vertices.

    Args:
        positions: (N, 3) vertex positions
        triangles: (M, 3) vertex indices

    Returns:
        (N, 3) unit normals; vertices without a usable face get +Y
    """
    positions = np.asarray(positions, dtype=np.float64)
    accumulated = np.zeros_like(positions)
    faces = face_normals(positions, triangles)
    for corner in range(3):
        np.add.at(accumulated, triangles[:, corner], faces)
    return normalize_rows(accumulated, GENERATED_NORMAL_FALLBACK)


def generate_tangents(positions: np.ndarray, normals: np.ndarray, tex_coords: np.ndarray,
                      triangles: np.ndarray) -> np.ndarray:
    """
    Generate tangents using Lengyel's method.

    Reference: http://www.terathon.com/code/tangent.html

    Args:
        positions: (N, 3) vertex positions
        normals: (N, 3) unit vertex normals
        tex_coords: (N, 2) texture coordinates
        triangles: (M, 3) vertex indices

    Returns:
        (N, 4) tangents: xyz + handedness
    """
    positions = np.asarray(positions, dtype=np.float64)
    normals = np.asarray(normals, dtype=np.float64)
    tex_coords = np.asarray(tex_coords, dtype=np.float64)

    # Tangent and bitangent accumulators
    tan1 = np.zeros_like(positions)
    tan2 = np.zeros_like(positions)

    if len(triangles):
        p0, p1, p2 = (positions[triangles[:, k]] for k in range(3))
        uv0, uv1, uv2 = (tex_coords[triangles[:, k]] for k in range(3))

        edge1 = p1 - p0
        edge2 = p2 - p0
        duv1 = uv1 - uv0
        duv2 = uv2 - uv0

        det = duv1[:, 0] * duv2[:, 1] - duv1[:, 1] * duv2[:, 0]
        # Triangles with degenerate UVs contribute nothing
        safe = np.abs(det) > NORMAL_EPSILON
        r = np.where(safe, 1.0 / np.where(safe, det, 1.0), 0.0)[:, np.newaxis]

        sdir = (edge1 * duv2[:, 1:2] - edge2 * duv1[:, 1:2]) * r
        tdir = (edge2 * duv1[:, 0:1] - edge1 * duv2[:, 0:1]) * r

        for corner in range(3):
            np.add.at(tan1, triangles[:, corner], sdir)
            np.add.at(tan2, triangles[:, corner], tdir)

    # Gram-Schmidt orthogonalize
    ortho = tan1 - normals * np.einsum('ij,ij->i', normals, tan1)[:, np.newaxis]

    # Fallback: any vector perpendicular to the normal
    axis = np.where(
        (np.abs(normals[:, 0]) < 0.9)[:, np.newaxis],
        np.array([1.0, 0.0, 0.0]),
        np.array([0.0, 1.0, 0.0]),
    )
    fallback = axis - normals * np.einsum('ij,ij->i', normals, axis)[:, np.newaxis]
    degenerate = np.einsum('ij,ij->i', ortho, ortho) < NORMAL_EPSILON
    ortho[degenerate] = fallback[degenerate]
    ortho = normalize_rows(ortho, (1.0, 0.0, 0.0))

    # Handedness (w component)
    handedness = np.where(
        np.einsum('ij,ij->i', np.cross(normals, ortho), tan2) < 0.0, -1.0, 1.0
    )
    return np.concatenate([ortho, handedness[:, np.newaxis]], axis=1)


class MeshAssembler:
    """
    Assembles mesh primitives of one document.

    Results are cached per (mesh, primitive) so instanced meshes are
    decoded once.
    """

    def __init__(self, document: GltfDocument, accessors: AccessorDecoder,
                 flat_normals: bool = GENERATE_FLAT_NORMALS,
                 generate_tangents: bool = GENERATE_TANGENTS,
                 warnings: Optional[List[str]] = None):
        """
        Initialize assembler.

        Args:
            document: Document owning the meshes
            accessors: Decoder for attribute and index accessors
            flat_normals: Unweld meshes without normals and give each face its own normal
            generate_tangents: Compute tangents from UVs when the source has none
            warnings: List receiving non-fatal diagnostics
        """
        self.document = document
        self.accessors = accessors
        self.flat_normals = flat_normals
        self.generate_tangents = generate_tangents
        self.warnings = warnings if warnings is not None else []
        self._cache: Dict[Tuple[int, int], AssembledPrimitive] = {}

    def primitive_count(self, mesh_index: int) -> int:
        return len(self.document.mesh(mesh_index).primitives or [])

    def assemble(self, mesh_index: int, primitive_index: int) -> AssembledPrimitive:
        """
        Get the local space geometry of a primitive.

        Args:
            mesh_index: Index into the document's meshes
            primitive_index: Index into the mesh's primitives

        Returns:
            AssembledPrimitive with a triangle list
        """
        key = (mesh_index, primitive_index)
        if key not in self._cache:
            self._cache[key] = self._assemble(mesh_index, primitive_index)
        return self._cache[key]

    def _assemble(self, mesh_index: int, primitive_index: int) -> AssembledPrimitive:
        gltf_mesh = self.document.mesh(mesh_index)
        primitives = gltf_mesh.primitives or []
        if not 0 <= primitive_index < len(primitives):
            raise MalformedDocument(
                f"Mesh {mesh_index} has no primitive {primitive_index}"
            )
        primitive = primitives[primitive_index]
        label = f"Mesh {mesh_index} primitive {primitive_index}"

        mode = self._mode(primitive)

        attributes = primitive.attributes
        position_idx = getattr(attributes, 'POSITION', None) if attributes is not None else None
        if position_idx is None:
            raise MalformedDocument(f"{label} has no POSITION attribute")

        positions = self._attribute(label, 'POSITION', position_idx, 3)
        vertex_count = len(positions)

        normals = self._optional_attribute(label, attributes, 'NORMAL', 3, vertex_count)
        tangents = self._optional_attribute(label, attributes, 'TANGENT', 4, vertex_count)
        tex_coords = self._optional_attribute(label, attributes, 'TEXCOORD_0', 2, vertex_count)

        stream = self._index_stream(label, primitive.indices, vertex_count)
        triangles = triangulate(stream, mode)

        if mode == PrimitiveMode.TRIANGLES and len(stream) % 3:
            message = (f"{label}: dropped {len(stream) % 3} trailing indices "
                       f"that do not form a triangle")
            logger.warning(message)
            self.warnings.append(message)

        has_normals = normals is not None
        has_tangents = tangents is not None
        has_tex_coords = tex_coords is not None

        if tex_coords is None:
            tex_coords = np.zeros((vertex_count, 2), dtype=np.float32)

        if normals is None:
            if self.flat_normals:
                # Unweld so every triangle owns its three vertices
                corners = triangles.reshape(-1)
                positions = positions[corners]
                tex_coords = tex_coords[corners]
                if tangents is not None:
                    tangents = tangents[corners]
                triangles = np.arange(len(corners), dtype=np.int64).reshape(-1, 3)

                faces = normalize_rows(
                    face_normals(np.asarray(positions, dtype=np.float64), triangles),
                    GENERATED_NORMAL_FALLBACK,
                )
                normals = np.repeat(faces, 3, axis=0)
            else:
                normals = generate_smooth_normals(positions, triangles)
            logger.debug("%s: generated normals", label)

        if tangents is None:
            if self.generate_tangents and has_tex_coords:
                tangents = generate_tangents(positions, normals, tex_coords, triangles)
                logger.debug("%s: generated tangents", label)
            else:
                tangents = np.zeros((len(positions), 4), dtype=np.float32)

        assembled = AssembledPrimitive(
            positions=np.array(positions, dtype=np.float32),
            normals=np.array(normals, dtype=np.float32),
            tangents=np.array(tangents, dtype=np.float32),
            tex_coords=np.array(tex_coords, dtype=np.float32),
            indices=np.ascontiguousarray(triangles.reshape(-1), dtype=np.uint32),
            mode=mode,
            material_index=primitive.material,
        )
        assembled.has_normals = has_normals
        assembled.has_tangents = has_tangents
        assembled.has_tex_coords = has_tex_coords
        assembled.extras = primitive.extras or None

        logger.debug(
            "%s: %d vertices, %d triangles", label,
            assembled.vertex_count, assembled.triangle_count
        )
        return assembled

    def _mode(self, primitive) -> PrimitiveMode:
        raw = primitive.mode if primitive.mode is not None else PrimitiveMode.TRIANGLES
        try:
            mode = PrimitiveMode(raw)
        except ValueError:
            raise UnsupportedPrimitiveMode(raw) from None

        if mode not in (PrimitiveMode.TRIANGLES, PrimitiveMode.TRIANGLE_STRIP,
                        PrimitiveMode.TRIANGLE_FAN):
            raise UnsupportedPrimitiveMode(
                int(mode), f"Primitive mode {mode.name} cannot be converted to triangles"
            )
        return mode

    def _attribute(self, label: str, name: str, accessor_idx: int, width: int) -> np.ndarray:
        values = self.accessors.decode_float(accessor_idx)
        if values.ndim != 2 or values.shape[1] != width:
            raise MalformedDocument(
                f"{label}: {name} must be VEC{width}, got shape {values.shape[1:]}"
            )
        return values

    def _optional_attribute(self, label: str, attributes, name: str, width: int,
                            vertex_count: int) -> Optional[np.ndarray]:
        accessor_idx = getattr(attributes, name, None)
        if accessor_idx is None:
            return None

        values = self._attribute(label, name, accessor_idx, width)
        if len(values) != vertex_count:
            raise MalformedDocument(
                f"{label}: {name} has {len(values)} elements but POSITION has {vertex_count}"
            )
        return values

    def _index_stream(self, label: str, accessor_idx: Optional[int],
                      vertex_count: int) -> np.ndarray:
        if accessor_idx is None:
            # Non-indexed: the vertex stream itself is the index sequence
            return np.arange(vertex_count, dtype=np.int64)

        indices = self.accessors.decode(accessor_idx)
        if indices.ndim != 1 or indices.dtype not in INDEX_DTYPES:
            raise MalformedDocument(
                f"{label}: indices must be unsigned integer scalars, got {indices.dtype}"
            )

        indices = indices.astype(np.int64)
        if len(indices) and int(indices.max()) >= vertex_count:
            raise AccessorOutOfBounds(
                f"{label}: index {int(indices.max())} references past "
                f"{vertex_count} vertices"
            )
        return indices
