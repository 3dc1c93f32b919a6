"""Shared builders for in-memory glTF test assets"""

import base64
import json
import struct
from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from scenelib.loaders.document import GltfDocument

BYTE = 5120
UNSIGNED_BYTE = 5121
SHORT = 5122
UNSIGNED_SHORT = 5123
UNSIGNED_INT = 5125
FLOAT = 5126

COMPONENT_DTYPES = {
    BYTE: '<i1',
    UNSIGNED_BYTE: '<u1',
    SHORT: '<i2',
    UNSIGNED_SHORT: '<u2',
    UNSIGNED_INT: '<u4',
    FLOAT: '<f4',
}

VECTOR_TYPES = {2: 'VEC2', 3: 'VEC3', 4: 'VEC4'}

# Unit cube: 8 corners, 12 outward-facing (counter-clockwise) triangles
CUBE_POSITIONS = [
    [-1.0, -1.0, -1.0], [1.0, -1.0, -1.0], [1.0, 1.0, -1.0], [-1.0, 1.0, -1.0],
    [-1.0, -1.0, 1.0], [1.0, -1.0, 1.0], [1.0, 1.0, 1.0], [-1.0, 1.0, 1.0],
]
CUBE_INDICES = [
    0, 2, 1, 0, 3, 2,  # -Z
    4, 5, 6, 4, 6, 7,  # +Z
    0, 1, 5, 0, 5, 4,  # -Y
    3, 6, 2, 3, 7, 6,  # +Y
    0, 4, 7, 0, 7, 3,  # -X
    1, 2, 6, 1, 6, 5,  # +X
]

TRIANGLE_POSITIONS = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]


def make_png(width=2, height=2, color=(255, 0, 0, 255), mode='RGBA'):
    """Encode a solid-color image as PNG bytes."""
    img = Image.new(mode, (width, height), color)
    out = BytesIO()
    img.save(out, format='PNG')
    return out.getvalue()


def pack_glb(document, binary=None, extra_chunks=()):
    """Pack a JSON document and optional BIN payload into a .glb container."""
    json_bytes = json.dumps(document).encode('utf-8')
    json_bytes += b' ' * (-len(json_bytes) % 4)
    chunks = [struct.pack('<II', len(json_bytes), 0x4E4F534A) + json_bytes]

    for chunk_type, payload in extra_chunks:
        chunks.append(struct.pack('<II', len(payload), chunk_type) + payload)

    if binary is not None:
        padded = bytes(binary) + b'\0' * (-len(binary) % 4)
        chunks.append(struct.pack('<II', len(padded), 0x004E4942) + padded)

    body = b''.join(chunks)
    return struct.pack('<III', 0x46546C67, 2, 12 + len(body)) + body


class GltfBuilder:
    """
    Assembles a glTF document and its single binary buffer.

    Every add_* method returns the index of the new item.
    """

    def __init__(self):
        self.document = {"asset": {"version": "2.0"}}
        self.blob = bytearray()

    def _append(self, key, item):
        items = self.document.setdefault(key, [])
        items.append(item)
        return len(items) - 1

    def add_view(self, data, byte_stride=None):
        self.blob.extend(b'\0' * (-len(self.blob) % 4))
        view = {"buffer": 0, "byteOffset": len(self.blob), "byteLength": len(data)}
        if byte_stride is not None:
            view["byteStride"] = byte_stride
        self.blob.extend(data)
        return self._append("bufferViews", view)

    def add_accessor(self, values, component_type=FLOAT, element_type=None, normalized=False):
        array = np.asarray(values, dtype=COMPONENT_DTYPES[component_type])
        if element_type is None:
            element_type = 'SCALAR' if array.ndim == 1 else VECTOR_TYPES[array.shape[1]]
        accessor = {
            "bufferView": self.add_view(array.tobytes()),
            "componentType": component_type,
            "count": len(array),
            "type": element_type,
        }
        if normalized:
            accessor["normalized"] = True
        return self._append("accessors", accessor)

    def add_primitive(self, positions, indices=None, normals=None, tex_coords=None,
                      tangents=None, material=None, mode=None, index_type=UNSIGNED_SHORT):
        """Build a primitive dict (not yet attached to a mesh)."""
        attributes = {"POSITION": self.add_accessor(positions)}
        if normals is not None:
            attributes["NORMAL"] = self.add_accessor(normals)
        if tex_coords is not None:
            attributes["TEXCOORD_0"] = self.add_accessor(tex_coords)
        if tangents is not None:
            attributes["TANGENT"] = self.add_accessor(tangents)

        primitive = {"attributes": attributes}
        if indices is not None:
            primitive["indices"] = self.add_accessor(indices, index_type)
        if material is not None:
            primitive["material"] = material
        if mode is not None:
            primitive["mode"] = mode
        return primitive

    def add_mesh(self, positions, name=None, **primitive_fields):
        return self.add_mesh_primitives([self.add_primitive(positions, **primitive_fields)], name)

    def add_mesh_primitives(self, primitives, name=None):
        mesh = {"primitives": primitives}
        if name is not None:
            mesh["name"] = name
        return self._append("meshes", mesh)

    def add_node(self, **fields):
        return self._append("nodes", fields)

    def add_scene(self, nodes, **fields):
        return self._append("scenes", dict(fields, nodes=list(nodes)))

    def add_material(self, **fields):
        return self._append("materials", fields)

    def add_camera(self, **fields):
        return self._append("cameras", fields)

    def add_light(self, **fields):
        extensions = self.document.setdefault("extensions", {})
        lights = extensions.setdefault("KHR_lights_punctual", {"lights": []})["lights"]
        lights.append(fields)
        return len(lights) - 1

    def add_texture(self, image_bytes, mime_type="image/png", embed="view", sampler=None):
        if embed == "view":
            image = {"bufferView": self.add_view(image_bytes), "mimeType": mime_type}
        elif embed == "data":
            payload = base64.b64encode(image_bytes).decode('ascii')
            image = {"uri": f"data:{mime_type};base64,{payload}"}
        else:
            image = {"uri": embed}

        texture = {"source": self._append("images", image)}
        if sampler is not None:
            texture["sampler"] = self._append("samplers", sampler)
        return self._append("textures", texture)

    def gltf_document(self):
        """Document with the buffer embedded as a base64 data URI."""
        document = json.loads(json.dumps(self.document))
        if self.blob:
            payload = base64.b64encode(bytes(self.blob)).decode('ascii')
            document["buffers"] = [{
                "uri": f"data:application/octet-stream;base64,{payload}",
                "byteLength": len(self.blob),
            }]
        return document

    def to_gltf_bytes(self):
        return json.dumps(self.gltf_document()).encode('utf-8')

    def to_glb(self):
        document = json.loads(json.dumps(self.document))
        if self.blob:
            document["buffers"] = [{"byteLength": len(self.blob)}]
        return pack_glb(document, bytes(self.blob) if self.blob else None)


@pytest.fixture
def builder():
    return GltfBuilder()


@pytest.fixture
def cube_builder():
    """Indexed cube mesh on a single root node in scene 0."""
    gltf = GltfBuilder()
    mesh = gltf.add_mesh(CUBE_POSITIONS, indices=CUBE_INDICES, name="Cube")
    node = gltf.add_node(mesh=mesh, name="CubeNode")
    gltf.add_scene([node], name="Main")
    return gltf


@pytest.fixture
def png_bytes():
    return make_png


def open_document(gltf, glb=False, base_path=None):
    """Parse a builder's output as a GltfDocument."""
    data = gltf.to_glb() if glb else gltf.to_gltf_bytes()
    return GltfDocument.from_bytes(data, base_path=base_path)
