"""Tests for buffer resolution"""

import base64
import json

import numpy as np
import pytest

from conftest import TRIANGLE_POSITIONS, open_document, pack_glb
from scenelib.errors import AccessorOutOfBounds, BufferUnavailable, MalformedDocument
from scenelib.loaders.accessors import AccessorDecoder
from scenelib.loaders.buffers import BufferResolver, read_uri_bytes
from scenelib.loaders.document import GltfDocument


def document_with_buffer(buffer, views=None, binary=None, base_path=None, extra_buffers=()):
    doc = {
        "asset": {"version": "2.0"},
        "buffers": [buffer, *extra_buffers],
        "bufferViews": views or [],
    }
    if binary is not None:
        return GltfDocument.from_bytes(pack_glb(doc, binary), base_path=base_path)
    return GltfDocument.from_bytes(json.dumps(doc).encode(), base_path=base_path)


def test_read_data_uri():
    payload = base64.b64encode(b"hello").decode()
    document = document_with_buffer({"byteLength": 5})
    assert read_uri_bytes(document, f"data:application/octet-stream;base64,{payload}") == b"hello"


def test_read_data_uri_with_other_mime_type():
    payload = base64.b64encode(b"\x89PNG").decode()
    document = document_with_buffer({"byteLength": 4})
    assert read_uri_bytes(document, f"data:image/png;base64,{payload}") == b"\x89PNG"


def test_plain_data_uri_rejected():
    document = document_with_buffer({"byteLength": 4})
    with pytest.raises(ValueError):
        read_uri_bytes(document, "data:text/plain,abcd")


def test_read_percent_encoded_file(tmp_path):
    (tmp_path / "my data.bin").write_bytes(b"\x01\x02")
    document = document_with_buffer({"byteLength": 2}, base_path=tmp_path)
    assert read_uri_bytes(document, "my%20data.bin") == b"\x01\x02"


@pytest.mark.parametrize("uri", ["http://example.com/a.bin", "https://example.com/a.bin"])
def test_remote_uri_rejected(uri, tmp_path):
    document = document_with_buffer({"byteLength": 4}, base_path=tmp_path)
    with pytest.raises(ValueError):
        read_uri_bytes(document, uri)


def test_relative_uri_needs_base():
    document = document_with_buffer({"byteLength": 4})
    with pytest.raises(ValueError):
        read_uri_bytes(document, "a.bin")


def test_data_uri_buffer(builder):
    builder.add_mesh(TRIANGLE_POSITIONS)
    resolver = BufferResolver(open_document(builder))

    data = resolver.resolve(0)

    assert len(data) == len(builder.blob)
    assert data.readonly
    assert resolver.resolve(0) is data


def test_external_buffer(tmp_path):
    (tmp_path / "mesh.bin").write_bytes(b"\0" * 16)
    document = document_with_buffer({"uri": "mesh.bin", "byteLength": 16}, base_path=tmp_path)

    assert len(BufferResolver(document).resolve(0)) == 16


def test_missing_file_is_unavailable(tmp_path):
    document = document_with_buffer({"uri": "missing.bin", "byteLength": 16}, base_path=tmp_path)
    with pytest.raises(BufferUnavailable):
        BufferResolver(document).resolve(0)


def test_length_mismatch_is_unavailable(tmp_path):
    (tmp_path / "short.bin").write_bytes(b"\0" * 8)
    document = document_with_buffer({"uri": "short.bin", "byteLength": 16}, base_path=tmp_path)
    with pytest.raises(BufferUnavailable):
        BufferResolver(document).resolve(0)


def test_invalid_base64_is_unavailable():
    document = document_with_buffer({"uri": "data:application/octet-stream;base64,@@@@", "byteLength": 3})
    with pytest.raises(BufferUnavailable):
        BufferResolver(document).resolve(0)


def test_remote_buffer_is_unavailable(tmp_path):
    document = document_with_buffer({"uri": "https://example.com/a.bin", "byteLength": 4}, base_path=tmp_path)
    with pytest.raises(BufferUnavailable):
        BufferResolver(document).resolve(0)


def test_buffer_without_uri_needs_glb():
    document = document_with_buffer({"byteLength": 4})
    with pytest.raises(BufferUnavailable):
        BufferResolver(document).resolve(0)


def test_only_buffer_zero_uses_binary_chunk():
    document = document_with_buffer(
        {"byteLength": 4}, binary=b"\x01" * 4, extra_buffers=[{"byteLength": 4}],
    )
    resolver = BufferResolver(document)

    assert bytes(resolver.resolve(0)) == b"\x01" * 4
    with pytest.raises(BufferUnavailable, match="Only buffer 0"):
        resolver.resolve(1)


def test_missing_byte_length_is_malformed():
    document = document_with_buffer({"uri": "data:application/octet-stream;base64,AAAA"})
    with pytest.raises(MalformedDocument):
        BufferResolver(document).resolve(0)


def test_glb_chunk_padding_is_addressable():
    """The BIN chunk may be padded past byteLength; the buffer keeps its declared size"""
    document = document_with_buffer({"byteLength": 6}, binary=b"\x01" * 6)
    assert len(BufferResolver(document).resolve(0)) == 6


def test_view_bytes_bounds():
    views = [
        {"buffer": 0, "byteOffset": 4, "byteLength": 4},
        {"buffer": 0, "byteOffset": 4, "byteLength": 8},
    ]
    document = document_with_buffer({"byteLength": 8}, views=views, binary=bytes(range(8)))
    resolver = BufferResolver(document)

    assert bytes(resolver.view_bytes(0)) == bytes([4, 5, 6, 7])
    with pytest.raises(AccessorOutOfBounds):
        resolver.view_bytes(1)


def test_glb_views_past_binary_chunk():
    """JSON claiming more bytes than the BIN chunk holds fails instead of truncating"""
    doc = {
        "asset": {"version": "2.0"},
        "buffers": [{"byteLength": 64}],
        "bufferViews": [{"buffer": 0, "byteOffset": 0, "byteLength": 36}],
        "accessors": [{"bufferView": 0, "componentType": 5126, "count": 3, "type": "VEC3"}],
    }
    binary = np.zeros(6, dtype='<f4').tobytes()  # 24 bytes, 2 vertices
    document = GltfDocument.from_bytes(pack_glb(doc, binary))
    decoder = AccessorDecoder(document, BufferResolver(document))

    with pytest.raises(AccessorOutOfBounds):
        decoder.decode(0)
