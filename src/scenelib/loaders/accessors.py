"""
Accessor Decoder

Decodes glTF accessors into typed numpy arrays, honoring component type,
element type, byte stride, normalization and sparse substitution.
"""

from __future__ import annotations

import logging
from typing import Dict, Tuple

import numpy as np

from ..errors import AccessorOutOfBounds, MalformedDocument, UnsupportedComponentType
from .buffers import BufferResolver
from .document import GltfDocument

logger = logging.getLogger(__name__)

# glTF component type codes: little-endian numpy dtypes
COMPONENT_DTYPES = {
    5120: np.dtype('<i1'),  # BYTE
    5121: np.dtype('<u1'),  # UNSIGNED_BYTE
    5122: np.dtype('<i2'),  # SHORT
    5123: np.dtype('<u2'),  # UNSIGNED_SHORT
    5125: np.dtype('<u4'),  # UNSIGNED_INT
    5126: np.dtype('<f4'),  # FLOAT
}

# Element type: (rows, columns); columns > 1 only for matrices
ELEMENT_SHAPES = {
    'SCALAR': (1, 1),
    'VEC2': (2, 1),
    'VEC3': (3, 1),
    'VEC4': (4, 1),
    'MAT2': (2, 2),
    'MAT3': (3, 3),
    'MAT4': (4, 4),
}

# Largest positive value per normalizable integer type
NORMALIZATION_DIVISORS = {
    5120: 127.0,
    5121: 255.0,
    5122: 32767.0,
    5123: 65535.0,
}

SPARSE_INDEX_TYPES = (5121, 5123, 5125)


class ElementLayout:
    """
    Byte layout of one accessor element.

    Matrix columns built from 1- or 2-byte components are padded so every
    column starts on a 4-byte boundary.
    """

    def __init__(self, component_type: int, element_type: str):
        if component_type not in COMPONENT_DTYPES:
            raise UnsupportedComponentType(f"Unknown component type: {component_type}")
        if element_type not in ELEMENT_SHAPES:
            raise UnsupportedComponentType(f"Unknown element type: {element_type}")

        self.component_type = component_type
        self.element_type = element_type
        self.dtype = COMPONENT_DTYPES[component_type]
        self.rows, self.columns = ELEMENT_SHAPES[element_type]

        column_bytes = self.rows * self.dtype.itemsize
        if self.columns > 1 and column_bytes % 4:
            column_bytes += 4 - column_bytes % 4
        self.column_stride = column_bytes
        self.size = column_bytes * self.columns

    @property
    def is_matrix(self) -> bool:
        return self.columns > 1

    @property
    def is_padded(self) -> bool:
        return self.column_stride != self.rows * self.dtype.itemsize

    @property
    def shape(self) -> Tuple[int, ...]:
        """Per-element output shape."""
        if self.is_matrix:
            return (self.rows, self.columns)
        if self.rows == 1:
            return ()
        return (self.rows,)

    def read(self, data: memoryview, offset: int, count: int, stride: int) -> np.ndarray:
        """
        Read ``count`` elements starting at ``offset``, ``stride`` bytes apart.

        Args:
            data: Bytes of the buffer view
            offset: Byte offset of the first element within ``data``
            count: Number of elements
            stride: Distance in bytes between element starts

        Returns:
            Array of shape (count, *shape)
        """
        if count == 0:
            return np.zeros((0, *self.shape), dtype=self.dtype)

        end = offset + (count - 1) * stride + self.size
        if offset < 0 or end > len(data):
            raise AccessorOutOfBounds(
                f"Reading {count} x {self.element_type} elements needs bytes "
                f"[{offset}, {end}) but only {len(data)} are available"
            )

        base = np.frombuffer(data, dtype=np.uint8, count=end - offset, offset=offset)
        rows = np.lib.stride_tricks.as_strided(
            base, shape=(count, self.size), strides=(stride, 1), writeable=False
        )

        if self.is_padded:
            packed = self.rows * self.dtype.itemsize
            rows = rows.reshape(count, self.columns, self.column_stride)[:, :, :packed]
        values = np.ascontiguousarray(rows).view(self.dtype)

        if self.is_matrix:
            # glTF matrices are column-major: (count, columns, rows) -> math order
            return values.reshape(count, self.columns, self.rows).transpose(0, 2, 1).copy()
        return values.reshape(count, *self.shape)


def normalize_values(values: np.ndarray, component_type: int) -> np.ndarray:
    """
    Map normalized integers to floats.

    Unsigned types map to [0, 1]; signed types map to [-1, 1], with the most
    negative value clamped to -1.
    """
    divisor = NORMALIZATION_DIVISORS.get(component_type)
    if divisor is None:
        raise UnsupportedComponentType(
            f"Component type {component_type} cannot be normalized"
        )
    result = values.astype(np.float32) / np.float32(divisor)
    if COMPONENT_DTYPES[component_type].kind == 'i':
        result = np.maximum(result, np.float32(-1.0))
    return result


class AccessorDecoder:
    """
    Decodes accessors of one document.

    Decoded arrays are cached per accessor index and returned read-only,
    so several primitives can share them safely.
    """

    def __init__(self, document: GltfDocument, buffers: BufferResolver):
        """
        Initialize decoder.

        Args:
            document: Document whose accessors are decoded
            buffers: Resolver providing buffer view bytes
        """
        self.document = document
        self.buffers = buffers
        self._cache: Dict[int, np.ndarray] = {}

    def decode(self, accessor_index: int) -> np.ndarray:
        """
        Decode an accessor.

        Args:
            accessor_index: Index into the document's accessors

        Returns:
            Array with exactly ``count`` elements: shape (count,) for SCALAR,
            (count, n) for VECn and (count, n, n) for MATn. Normalized
            accessors decode to float32; others keep their component dtype.
        """
        if accessor_index in self._cache:
            return self._cache[accessor_index]

        accessor = self.document.accessor(accessor_index)
        count = accessor.count
        if count is None or isinstance(count, bool) or count < 0:
            raise MalformedDocument(f"Accessor {accessor_index} has no valid count")

        layout = ElementLayout(accessor.componentType, accessor.type)
        if accessor.normalized and accessor.componentType not in NORMALIZATION_DIVISORS:
            raise UnsupportedComponentType(
                f"Accessor {accessor_index}: component type {accessor.componentType} "
                f"cannot be normalized"
            )

        values = self._read_dense(accessor_index, accessor, layout)

        if accessor.sparse is not None:
            values = self._apply_sparse(accessor_index, accessor, layout, values)

        if accessor.normalized:
            values = normalize_values(values, accessor.componentType)

        values.flags.writeable = False
        self._cache[accessor_index] = values
        return values

    def decode_float(self, accessor_index: int) -> np.ndarray:
        """Decode an accessor and convert it to float32."""
        values = self.decode(accessor_index)
        if values.dtype != np.float32:
            values = values.astype(np.float32)
            values.flags.writeable = False
        return values

    def _read_dense(self, accessor_index: int, accessor, layout: ElementLayout) -> np.ndarray:
        count = accessor.count
        if accessor.bufferView is None:
            # No buffer view: zeros, possibly overridden by sparse values
            return np.zeros((count, *layout.shape), dtype=layout.dtype)

        view = self.document.buffer_view(accessor.bufferView)
        data = self.buffers.view_bytes(accessor.bufferView)

        stride = view.byteStride or layout.size
        if stride < layout.size:
            raise MalformedDocument(
                f"Accessor {accessor_index}: byteStride {stride} is smaller than "
                f"the element size {layout.size}"
            )

        try:
            return layout.read(data, accessor.byteOffset or 0, count, stride)
        except AccessorOutOfBounds as exc:
            raise AccessorOutOfBounds(
                f"Accessor {accessor_index} (buffer view {accessor.bufferView}): {exc}"
            ) from exc

    def _apply_sparse(self, accessor_index: int, accessor, layout: ElementLayout,
                      values: np.ndarray) -> np.ndarray:
        sparse = accessor.sparse
        sparse_count = sparse.count
        if sparse_count is None or sparse_count < 1 or sparse.indices is None or sparse.values is None:
            raise MalformedDocument(f"Accessor {accessor_index} has an incomplete sparse block")

        index_type = sparse.indices.componentType
        if index_type not in SPARSE_INDEX_TYPES:
            raise UnsupportedComponentType(
                f"Accessor {accessor_index}: sparse index component type {index_type}"
            )

        index_layout = ElementLayout(index_type, 'SCALAR')
        index_data = self.buffers.view_bytes(sparse.indices.bufferView)
        value_data = self.buffers.view_bytes(sparse.values.bufferView)

        try:
            indices = index_layout.read(
                index_data, sparse.indices.byteOffset or 0, sparse_count, index_layout.size
            ).astype(np.int64)
            substitutes = layout.read(
                value_data, sparse.values.byteOffset or 0, sparse_count, layout.size
            )
        except AccessorOutOfBounds as exc:
            raise AccessorOutOfBounds(f"Accessor {accessor_index} sparse block: {exc}") from exc

        if np.any(indices >= accessor.count):
            raise AccessorOutOfBounds(
                f"Accessor {accessor_index}: sparse index {int(indices.max())} "
                f"exceeds count {accessor.count}"
            )

        values = np.array(values, copy=True)
        values[indices] = substitutes
        logger.debug("Accessor %d: applied %d sparse substitutions", accessor_index, sparse_count)
        return values
