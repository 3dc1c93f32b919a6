"""Tests for accessor decoding"""

import numpy as np
import pytest

from conftest import (
    BYTE,
    FLOAT,
    SHORT,
    UNSIGNED_BYTE,
    UNSIGNED_INT,
    UNSIGNED_SHORT,
    open_document,
)
from scenelib.errors import AccessorOutOfBounds, UnsupportedComponentType
from scenelib.loaders.accessors import AccessorDecoder, ElementLayout, normalize_values
from scenelib.loaders.buffers import BufferResolver


def make_decoder(gltf, glb=False):
    document = open_document(gltf, glb=glb)
    return AccessorDecoder(document, BufferResolver(document))


def test_decode_vec3_floats(builder):
    values = [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]
    accessor = builder.add_accessor(values)

    result = make_decoder(builder).decode(accessor)

    assert result.shape == (2, 3)
    assert result.dtype == np.float32
    assert np.allclose(result, values)


def test_decode_scalar_indices(builder):
    accessor = builder.add_accessor([0, 1, 2, 65535], UNSIGNED_SHORT)
    result = make_decoder(builder).decode(accessor)

    assert result.shape == (4,)
    assert result.tolist() == [0, 1, 2, 65535]


def test_decode_from_glb(builder):
    accessor = builder.add_accessor([7, 8, 9], UNSIGNED_INT)
    assert make_decoder(builder, glb=True).decode(accessor).tolist() == [7, 8, 9]


def test_decoded_arrays_are_cached_and_read_only(builder):
    accessor = builder.add_accessor([[0.0, 1.0]])
    decoder = make_decoder(builder)

    result = decoder.decode(accessor)

    assert decoder.decode(accessor) is result
    with pytest.raises(ValueError):
        result[0, 0] = 5.0


def test_interleaved_stride(builder):
    """Two VEC3 attributes interleaved in one view with a 24 byte stride"""
    interleaved = np.array([
        [0.0, 0.0, 0.0, 0.0, 0.0, 1.0],
        [1.0, 0.0, 0.0, 0.0, 1.0, 0.0],
        [0.0, 1.0, 0.0, 1.0, 0.0, 0.0],
    ], dtype='<f4')
    view = builder.add_view(interleaved.tobytes(), byte_stride=24)
    builder.document.setdefault("accessors", []).extend([
        {"bufferView": view, "byteOffset": 0, "componentType": FLOAT, "count": 3, "type": "VEC3"},
        {"bufferView": view, "byteOffset": 12, "componentType": FLOAT, "count": 3, "type": "VEC3"},
    ])
    decoder = make_decoder(builder)

    assert np.allclose(decoder.decode(0), interleaved[:, :3])
    assert np.allclose(decoder.decode(1), interleaved[:, 3:])


@pytest.mark.parametrize("component_type, values, expected", [
    (UNSIGNED_BYTE, [0, 128, 255], [0.0, 128 / 255, 1.0]),
    (UNSIGNED_SHORT, [0, 65535], [0.0, 1.0]),
    (BYTE, [-128, -127, 0, 127], [-1.0, -1.0, 0.0, 1.0]),
    (SHORT, [-32768, -32767, 0, 32767], [-1.0, -1.0, 0.0, 1.0]),
])
def test_normalized_integers(builder, component_type, values, expected):
    accessor = builder.add_accessor(values, component_type, normalized=True)

    result = make_decoder(builder).decode(accessor)

    assert result.dtype == np.float32
    assert np.allclose(result, expected)


@pytest.mark.parametrize("component_type, low, high", [
    (UNSIGNED_BYTE, 0, 255),
    (UNSIGNED_SHORT, 0, 65535),
    (BYTE, -128, 127),
    (SHORT, -32768, 32767),
])
def test_normalized_range(builder, component_type, low, high):
    """Normalized values stay in [0, 1] for unsigned and [-1, 1] for signed types"""
    values = np.linspace(low, high, 50).astype(np.int64)
    accessor = builder.add_accessor(values, component_type, normalized=True)

    result = make_decoder(builder).decode(accessor)

    lower = 0.0 if low == 0 else -1.0
    assert result.min() >= lower
    assert result.max() <= 1.0


@pytest.mark.parametrize("component_type", [FLOAT, UNSIGNED_INT])
def test_normalized_float_and_uint_rejected(builder, component_type):
    accessor = builder.add_accessor([1, 2], component_type, normalized=True)
    with pytest.raises(UnsupportedComponentType):
        make_decoder(builder).decode(accessor)


def test_unknown_component_type(builder):
    view = builder.add_view(b"\0" * 8)
    builder.document["accessors"] = [
        {"bufferView": view, "componentType": 5130, "count": 1, "type": "SCALAR"}
    ]
    with pytest.raises(UnsupportedComponentType):
        make_decoder(builder).decode(0)


def test_unknown_element_type(builder):
    view = builder.add_view(b"\0" * 8)
    builder.document["accessors"] = [
        {"bufferView": view, "componentType": FLOAT, "count": 1, "type": "VEC5"}
    ]
    with pytest.raises(UnsupportedComponentType):
        make_decoder(builder).decode(0)


def test_read_past_view_is_out_of_bounds(builder):
    """Element count exceeding the buffer view is an error, not a truncation"""
    view = builder.add_view(np.zeros(6, dtype='<f4').tobytes())
    builder.document["accessors"] = [
        {"bufferView": view, "componentType": FLOAT, "count": 3, "type": "VEC3"}
    ]
    with pytest.raises(AccessorOutOfBounds):
        make_decoder(builder).decode(0)


def test_byte_offset_past_view_is_out_of_bounds(builder):
    view = builder.add_view(np.zeros(3, dtype='<f4').tobytes())
    builder.document["accessors"] = [
        {"bufferView": view, "byteOffset": 4, "componentType": FLOAT, "count": 1, "type": "VEC3"}
    ]
    with pytest.raises(AccessorOutOfBounds):
        make_decoder(builder).decode(0)


def test_mat4_is_column_major(builder):
    """MAT4 data is stored column-major; decoded matrices are in math order"""
    matrix = np.eye(4, dtype='<f4')
    matrix[:3, 3] = [1.0, 2.0, 3.0]
    view = builder.add_view(matrix.T.tobytes())  # column-major bytes
    builder.document["accessors"] = [
        {"bufferView": view, "componentType": FLOAT, "count": 1, "type": "MAT4"}
    ]

    result = make_decoder(builder).decode(0)

    assert result.shape == (1, 4, 4)
    assert np.allclose(result[0], matrix)


def test_mat2_byte_columns_are_padded():
    """MAT2 of bytes: each 2-byte column is padded to 4 bytes"""
    layout = ElementLayout(UNSIGNED_BYTE, 'MAT2')
    assert layout.size == 8

    data = memoryview(bytes([1, 2, 0, 0, 3, 4, 0, 0]))
    result = layout.read(data, 0, 1, layout.size)

    assert result[0].tolist() == [[1, 3], [2, 4]]


def test_sparse_substitution(builder):
    base = builder.add_accessor([0.0, 0.0, 0.0, 0.0, 0.0])
    index_view = builder.add_view(np.array([1, 3], dtype='<u2').tobytes())
    value_view = builder.add_view(np.array([7.0, 9.0], dtype='<f4').tobytes())
    builder.document["accessors"][base]["sparse"] = {
        "count": 2,
        "indices": {"bufferView": index_view, "componentType": UNSIGNED_SHORT},
        "values": {"bufferView": value_view},
    }

    result = make_decoder(builder).decode(base)

    assert result.tolist() == [0.0, 7.0, 0.0, 9.0, 0.0]


def test_sparse_without_buffer_view_starts_from_zeros(builder):
    index_view = builder.add_view(np.array([2], dtype='<u1').tobytes())
    value_view = builder.add_view(np.array([[1.0, 2.0, 3.0]], dtype='<f4').tobytes())
    builder.document["accessors"] = [{
        "componentType": FLOAT,
        "count": 3,
        "type": "VEC3",
        "sparse": {
            "count": 1,
            "indices": {"bufferView": index_view, "componentType": UNSIGNED_BYTE},
            "values": {"bufferView": value_view},
        },
    }]

    result = make_decoder(builder).decode(0)

    assert result.tolist() == [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [1.0, 2.0, 3.0]]


def test_sparse_index_past_count(builder):
    index_view = builder.add_view(np.array([5], dtype='<u1').tobytes())
    value_view = builder.add_view(np.array([1.0], dtype='<f4').tobytes())
    builder.document["accessors"] = [{
        "componentType": FLOAT,
        "count": 2,
        "type": "SCALAR",
        "sparse": {
            "count": 1,
            "indices": {"bufferView": index_view, "componentType": UNSIGNED_BYTE},
            "values": {"bufferView": value_view},
        },
    }]
    with pytest.raises(AccessorOutOfBounds):
        make_decoder(builder).decode(0)


def test_normalize_values_clamps_most_negative():
    result = normalize_values(np.array([-128], dtype=np.int8), BYTE)
    assert result[0] == -1.0
