"""Scene components"""
from .camera import Camera, OrthographicProjection, PerspectiveProjection
from .light import Light, LightKind
from .scene import SceneEmpty, SceneLoadResult

__all__ = [
    "Camera",
    "PerspectiveProjection",
    "OrthographicProjection",
    "Light",
    "LightKind",
    "SceneEmpty",
    "SceneLoadResult",
]
