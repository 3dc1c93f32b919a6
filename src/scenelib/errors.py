"""
Errors

Exception types raised while loading glTF assets.

Structural errors abort the whole load. ImageDecodeError is the one cosmetic
error: the material resolver catches it and keeps the factor-only material.
"""


class GltfLoadError(RuntimeError):
    """Base class for every failure raised by the loader."""


class MalformedDocument(GltfLoadError):
    """Raised when the JSON/GLB container or the glTF schema is invalid."""


class BufferUnavailable(GltfLoadError):
    """Raised when a buffer's bytes cannot be read, decoded or have the wrong length."""


class AccessorOutOfBounds(GltfLoadError):
    """Raised when an accessor or buffer view would read past the bytes backing it."""


class UnsupportedComponentType(GltfLoadError):
    """Raised for unknown component/element types or invalid normalization."""


class UnsupportedPrimitiveMode(GltfLoadError):
    """Raised for primitive topologies that cannot be turned into triangles."""

    def __init__(self, mode: int, message: str = None):
        self.mode = mode
        super().__init__(message or f"Unsupported primitive mode: {mode}")


class CyclicNodeGraph(GltfLoadError):
    """Raised when a node appears among its own ancestors."""

    def __init__(self, node_index: int, path):
        self.node_index = node_index
        self.path = tuple(path)
        chain = " -> ".join(str(idx) for idx in (*self.path, node_index))
        super().__init__(f"Node graph contains a cycle: {chain}")


class NoDefaultScene(GltfLoadError):
    """Raised when no scene was requested and none can be picked unambiguously."""


class SceneNotFound(GltfLoadError, LookupError):
    """Raised when a requested scene index does not exist."""


class ImageDecodeError(GltfLoadError):
    """Raised when a texture's image cannot be read or decoded."""

    def __init__(self, texture_index: int, message: str):
        self.texture_index = texture_index
        self.reason = message
        super().__init__(f"Texture {texture_index}: {message}")
