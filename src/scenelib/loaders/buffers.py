"""
Buffer Resolver

Materializes the bytes behind glTF buffers: base64 data URIs, files next to
the asset, or the BIN chunk of a .glb container.
"""

from __future__ import annotations

import binascii
import logging
from typing import Dict
from urllib.parse import unquote

import pygltflib

from ..config.settings import REMOTE_URI_SCHEMES
from ..errors import AccessorOutOfBounds, BufferUnavailable, MalformedDocument
from .document import GltfDocument

logger = logging.getLogger(__name__)


def read_uri_bytes(document: GltfDocument, uri: str) -> bytes:
    """
    Load a URI as bytes through pygltflib, either from an embedded data URI
    or from a file next to the asset.

    Args:
        document: Document the URI belongs to
        uri: "data:<mime>;base64,..." or a (percent-encoded) relative path

    Returns:
        Raw bytes

    Raises:
        ValueError: Undecodable data URI, remote URI, or no base location
        OSError: File could not be read
    """
    if uri.startswith('data:'):
        header, sep, payload = uri.partition(',')
        if not sep or not header.endswith(';base64'):
            raise ValueError("only base64 data URIs are supported")
        # pygltflib only recognizes the octet-stream header
        try:
            return document.gltf.decode_data_uri(pygltflib.DATA_URI_HEADER + payload)
        except binascii.Error as exc:
            raise ValueError(f"invalid base64 payload: {exc}") from exc

    if uri.lower().startswith(REMOTE_URI_SCHEMES):
        raise ValueError(f"remote URIs are not supported: {uri}")

    if document.base_path is None:
        raise ValueError(f"relative URI '{uri}' needs a base location")

    relative = unquote(uri)
    path = document.base_path / relative
    if not path.is_file():
        raise FileNotFoundError(f"No such file: {path}")
    return document.gltf.get_data_from_buffer_uri(relative)


class BufferResolver:
    """
    Resolves buffers and buffer views to addressable bytes.

    Each buffer is read once per load and kept for the accessor decoder.
    """

    def __init__(self, document: GltfDocument):
        """
        Initialize resolver.

        Args:
            document: Document whose buffers are resolved
        """
        self.document = document
        self._buffers: Dict[int, memoryview] = {}

    def resolve(self, buffer_index: int) -> memoryview:
        """
        Get the bytes of a buffer.

        Args:
            buffer_index: Index into the document's buffers

        Returns:
            Read-only view of the buffer bytes
        """
        if buffer_index in self._buffers:
            return self._buffers[buffer_index]

        buffer = self.document.buffer(buffer_index)
        declared = buffer.byteLength
        if declared is None or declared < 0:
            raise MalformedDocument(f"Buffer {buffer_index} has no valid byteLength")

        if buffer.uri:
            data = self._resolve_uri(buffer_index, buffer.uri)
            if len(data) != declared:
                raise BufferUnavailable(
                    f"Buffer {buffer_index} resolved to {len(data)} bytes, expected {declared}"
                )
        else:
            data = self._resolve_binary_chunk(buffer_index, declared)

        view = memoryview(data).toreadonly()
        self._buffers[buffer_index] = view
        logger.debug("Resolved buffer %d (%d bytes)", buffer_index, len(view))
        return view

    def _resolve_uri(self, buffer_index: int, uri: str) -> bytes:
        try:
            return read_uri_bytes(self.document, uri)
        except (ValueError, OSError) as exc:
            label = uri if not uri.startswith('data:') else 'data URI'
            raise BufferUnavailable(f"Buffer {buffer_index} ({label}): {exc}") from exc

    def _resolve_binary_chunk(self, buffer_index: int, declared: int) -> bytes:
        chunk = self.document.binary_chunk
        if chunk is None:
            raise BufferUnavailable(
                f"Buffer {buffer_index} has no URI and the asset has no binary chunk"
            )
        if buffer_index != 0:
            raise BufferUnavailable(
                f"Only buffer 0 may reference the binary chunk (buffer {buffer_index} has no URI)"
            )
        if declared > len(chunk):
            # Reads past the chunk surface as AccessorOutOfBounds in the decoder
            logger.debug(
                "Buffer 0 declares %d bytes but the binary chunk holds %d", declared, len(chunk)
            )
        elif len(chunk) > declared:
            logger.debug("Binary chunk has %d bytes past buffer 0", len(chunk) - declared)
        return chunk[:min(declared, len(chunk))]

    def view_bytes(self, view_index: int) -> memoryview:
        """
        Get the byte range of a buffer view.

        Args:
            view_index: Index into the document's bufferViews

        Returns:
            Read-only view limited to the buffer view
        """
        view = self.document.buffer_view(view_index)
        if view.byteLength is None or view.byteLength < 0:
            raise MalformedDocument(f"Buffer view {view_index} has no valid byteLength")

        data = self.resolve(view.buffer)
        start = view.byteOffset or 0
        end = start + view.byteLength
        if start < 0 or end > len(data):
            raise AccessorOutOfBounds(
                f"Buffer view {view_index} spans bytes [{start}, {end}) "
                f"but buffer {view.buffer} has only {len(data)} bytes"
            )
        return data[start:end]
