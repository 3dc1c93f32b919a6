"""
glTF Document

Parses .gltf JSON and .glb containers into a pygltflib document and offers
checked, index-based access to its tables.
"""

from __future__ import annotations

import logging
import struct
from pathlib import Path
from typing import Any, Dict, List, Optional

import pygltflib

from ..config.settings import SUPPORTED_ASSET_MAJOR_VERSION, SUPPORTED_EXTENSIONS
from ..errors import MalformedDocument

logger = logging.getLogger(__name__)

LIGHTS_EXTENSION = "KHR_lights_punctual"


def parse_glb(data: bytes) -> pygltflib.GLTF2:
    """
    Parse a binary glTF container.

    pygltflib keeps the BIN chunk as the document's binary blob.

    Args:
        data: Whole .glb file contents

    Returns:
        Parsed GLTF2 document
    """
    try:
        gltf = pygltflib.GLTF2.load_from_bytes(data)
    except (struct.error, OSError, ValueError, TypeError, KeyError, AttributeError) as exc:
        # BIN before JSON surfaces as AttributeError, truncation as struct.error
        raise MalformedDocument(f"Invalid GLB container: {exc}") from exc

    if gltf is None:
        raise MalformedDocument("GLB file has no JSON chunk")
    return gltf


def parse_json(payload: bytes) -> pygltflib.GLTF2:
    """
    Parse glTF JSON text into a pygltflib document.

    Args:
        payload: UTF-8 JSON bytes (a BOM is tolerated)

    Returns:
        Parsed GLTF2 document
    """
    try:
        return pygltflib.GLTF2.gltf_from_json(payload.decode('utf-8-sig'))
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        # JSONDecodeError and UnicodeDecodeError are ValueErrors
        raise MalformedDocument(f"Invalid glTF JSON: {exc}") from exc


class GltfDocument:
    """
    Parsed glTF root plus the data needed to resolve its buffers.

    Index-based lookups check their references so consumers never see an
    IndexError or a None where an object is required.
    """

    def __init__(self, gltf: pygltflib.GLTF2, is_binary: bool = False,
                 base_path: Optional[Path] = None, source_name: str = "<memory>"):
        """
        Initialize document.

        Args:
            gltf: Parsed pygltflib document (its binary blob backs buffer 0 of a .glb)
            is_binary: Whether the document came from a .glb container
            base_path: Directory relative URIs resolve against (None for in-memory sources)
            source_name: Name used in log and error messages
        """
        self.gltf = gltf
        self.is_binary = is_binary
        self.base_path = Path(base_path) if base_path is not None else None
        self.source_name = source_name

        if self.base_path is not None:
            # pygltflib resolves file URIs against _path
            self.gltf._path = self.base_path

        self._validate()

    @classmethod
    def from_bytes(cls, data: bytes, base_path: Optional[Path] = None,
                   source_name: str = "<memory>") -> "GltfDocument":
        """Parse either container format from raw bytes."""
        data = bytes(data)
        if data[:4] == pygltflib.MAGIC:
            return cls(parse_glb(data), True, base_path, source_name)
        return cls(parse_json(data), False, base_path, source_name)

    @property
    def binary_chunk(self) -> Optional[bytes]:
        """BIN chunk of a .glb container (None for .gltf or a .glb without one)."""
        return self.gltf.binary_blob()

    def _validate(self):
        asset = self.gltf.asset
        version = getattr(asset, 'version', None) if asset is not None else None
        if version is None:
            raise MalformedDocument("glTF asset.version is missing")
        if str(version).split('.')[0] != SUPPORTED_ASSET_MAJOR_VERSION:
            raise MalformedDocument(f"Unsupported glTF version: {version}")

        unsupported = sorted(set(self.gltf.extensionsRequired or []) - SUPPORTED_EXTENSIONS)
        if unsupported:
            raise MalformedDocument(
                f"Document requires unsupported extensions: {', '.join(unsupported)}"
            )

        if self.gltf.scene is not None and not 0 <= self.gltf.scene < len(self.scenes):
            raise MalformedDocument(f"Default scene index {self.gltf.scene} is out of range")

    # ------------------------------------------------------------------
    # Checked table access
    # ------------------------------------------------------------------

    def _lookup(self, table: str, index: Optional[int]):
        items = getattr(self.gltf, table) or []
        if index is None or isinstance(index, bool) or not isinstance(index, int):
            raise MalformedDocument(f"Invalid {table} reference: {index!r}")
        if not 0 <= index < len(items):
            raise MalformedDocument(
                f"{table} index {index} is out of range (document has {len(items)})"
            )
        item = items[index]
        if item is None:
            raise MalformedDocument(f"{table}[{index}] is null")
        return item

    def accessor(self, index: int) -> pygltflib.Accessor:
        return self._lookup('accessors', index)

    def buffer_view(self, index: int) -> pygltflib.BufferView:
        return self._lookup('bufferViews', index)

    def buffer(self, index: int) -> pygltflib.Buffer:
        return self._lookup('buffers', index)

    def node(self, index: int) -> pygltflib.Node:
        return self._lookup('nodes', index)

    def mesh(self, index: int) -> pygltflib.Mesh:
        return self._lookup('meshes', index)

    def material(self, index: int) -> pygltflib.Material:
        return self._lookup('materials', index)

    def texture(self, index: int) -> pygltflib.Texture:
        return self._lookup('textures', index)

    def image(self, index: int) -> pygltflib.Image:
        return self._lookup('images', index)

    def sampler(self, index: int) -> pygltflib.Sampler:
        return self._lookup('samplers', index)

    def camera(self, index: int) -> pygltflib.Camera:
        return self._lookup('cameras', index)

    def scene(self, index: int) -> pygltflib.Scene:
        return self._lookup('scenes', index)

    @property
    def scenes(self) -> List[pygltflib.Scene]:
        return list(self.gltf.scenes or [])

    @property
    def default_scene(self) -> Optional[int]:
        return self.gltf.scene

    @property
    def texture_count(self) -> int:
        return len(self.gltf.textures or [])

    # ------------------------------------------------------------------
    # KHR_lights_punctual
    # ------------------------------------------------------------------

    @property
    def lights(self) -> List[Dict[str, Any]]:
        """Light definitions from the root KHR_lights_punctual extension."""
        extension = (self.gltf.extensions or {}).get(LIGHTS_EXTENSION) or {}
        if not isinstance(extension, dict):
            raise MalformedDocument(f"{LIGHTS_EXTENSION} must be an object")
        lights = extension.get('lights') or []
        if not isinstance(lights, list):
            raise MalformedDocument(f"{LIGHTS_EXTENSION}.lights must be an array")
        return lights

    def light(self, index: int) -> Dict[str, Any]:
        lights = self.lights
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(lights):
            raise MalformedDocument(
                f"Light index {index!r} is out of range (document has {len(lights)})"
            )
        light = lights[index]
        if not isinstance(light, dict):
            raise MalformedDocument(f"Light {index} must be an object")
        return light

    def node_light_index(self, node) -> Optional[int]:
        """Light attached to a node, or None."""
        extension = (node.extensions or {}).get(LIGHTS_EXTENSION)
        if extension is None:
            return None
        if not isinstance(extension, dict) or 'light' not in extension:
            raise MalformedDocument(f"Node {LIGHTS_EXTENSION} extension has no 'light'")
        return extension['light']
