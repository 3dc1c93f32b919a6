"""
SceneLib - glTF 2.0 Scene Loader

Loads glTF/GLB assets into flattened, world space snapshots: meshes with
resolved vertex data and materials, cameras and lights.
"""

# Errors
from .errors import (
    AccessorOutOfBounds,
    BufferUnavailable,
    CyclicNodeGraph,
    GltfLoadError,
    ImageDecodeError,
    MalformedDocument,
    NoDefaultScene,
    SceneNotFound,
    UnsupportedComponentType,
    UnsupportedPrimitiveMode,
)

# Scene components
from .core.camera import Camera
from .core.light import Light, LightKind
from .core.scene import SceneEmpty, SceneLoadResult

# Loaders
from .loaders import GltfLoader, Material, Mesh, PrimitiveMode, Vertex, load, load_all

__version__ = "0.1.0"
__all__ = [
    # Entry points
    "load",
    "load_all",
    "GltfLoader",
    # Results
    "SceneLoadResult",
    "SceneEmpty",
    "Mesh",
    "Vertex",
    "PrimitiveMode",
    "Material",
    "Camera",
    "Light",
    "LightKind",
    # Errors
    "GltfLoadError",
    "MalformedDocument",
    "BufferUnavailable",
    "AccessorOutOfBounds",
    "UnsupportedComponentType",
    "UnsupportedPrimitiveMode",
    "CyclicNodeGraph",
    "NoDefaultScene",
    "SceneNotFound",
    "ImageDecodeError",
]
