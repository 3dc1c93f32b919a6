"""
Light Module

Punctual lights (KHR_lights_punctual): directional, point and spot lights
placed in world space.
"""

import math
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np
from pyrr import Matrix44, Vector3

from ..errors import MalformedDocument
from .transforms import normalize_rows, translation_of

DEFAULT_LIGHT_COLOR = (1.0, 1.0, 1.0)
DEFAULT_LIGHT_INTENSITY = 1.0
DEFAULT_INNER_CONE_ANGLE = 0.0
DEFAULT_OUTER_CONE_ANGLE = math.pi / 4.0


class LightKind(Enum):
    DIRECTIONAL = "directional"
    POINT = "point"
    SPOT = "spot"


def _vec3(value, fallback: Tuple[float, float, float]) -> Tuple[float, float, float]:
    """Utility to coerce JSON vectors into tuples."""

    if value is None:
        value = fallback
    if len(value) != 3:
        raise MalformedDocument(f"Expected 3 components, got {value}")
    return tuple(float(v) for v in value)


class Light:
    """
    Punctual light placed in world space.

    Lights shine along their local -Z axis; point lights have no direction.
    """

    def __init__(self, kind: LightKind, color: Tuple[float, float, float] = DEFAULT_LIGHT_COLOR,
                 intensity: float = DEFAULT_LIGHT_INTENSITY, range: Optional[float] = None,
                 inner_cone_angle: float = DEFAULT_INNER_CONE_ANGLE,
                 outer_cone_angle: float = DEFAULT_OUTER_CONE_ANGLE,
                 world_transform: Matrix44 = None, name: Optional[str] = None):
        """
        Initialize light.

        Args:
            kind: Directional, point or spot
            color: Linear RGB color
            intensity: Candela (point/spot) or lux (directional)
            range: Cutoff distance, None for infinite
            inner_cone_angle: Spot cone angle with full intensity (radians)
            outer_cone_angle: Spot cone angle where intensity reaches zero (radians)
            world_transform: Node world transform
            name: Light name
        """
        self.kind = kind
        self.color = color
        self.intensity = intensity
        self.range = range
        self.inner_cone_angle = inner_cone_angle
        self.outer_cone_angle = outer_cone_angle
        self.world_transform = Matrix44(world_transform) if world_transform is not None else Matrix44.identity()
        self.name = name

        self.light_index: Optional[int] = None
        self.node_index: Optional[int] = None
        self.parent_nodes: Tuple[int, ...] = ()
        self.extras: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], world_transform: Matrix44 = None) -> "Light":
        """Create a light from a KHR_lights_punctual light object."""

        try:
            kind = LightKind(data.get("type"))
        except ValueError:
            raise MalformedDocument(f"Unknown light type: {data.get('type')!r}") from None

        light_range = data.get("range")
        if light_range is not None:
            light_range = float(light_range)
            if light_range <= 0.0:
                raise MalformedDocument(f"Light range must be positive, got {light_range}")

        inner = DEFAULT_INNER_CONE_ANGLE
        outer = DEFAULT_OUTER_CONE_ANGLE
        if kind == LightKind.SPOT:
            spot = data.get("spot") or {}
            inner = float(spot.get("innerConeAngle", inner))
            outer = float(spot.get("outerConeAngle", outer))
            if not 0.0 <= inner < outer <= math.pi / 2.0:
                raise MalformedDocument(
                    f"Spot light cone angles must satisfy 0 <= inner < outer <= pi/2, "
                    f"got {inner} and {outer}"
                )

        light = cls(
            kind=kind,
            color=_vec3(data.get("color"), DEFAULT_LIGHT_COLOR),
            intensity=float(data.get("intensity", DEFAULT_LIGHT_INTENSITY)),
            range=light_range,
            inner_cone_angle=inner,
            outer_cone_angle=outer,
            world_transform=world_transform,
            name=data.get("name"),
        )
        light.extras = data.get("extras")
        return light

    @property
    def position(self) -> Vector3:
        """World space position"""
        return Vector3(translation_of(self.world_transform))

    @property
    def direction(self) -> Optional[Vector3]:
        """World space direction the light shines in (None for point lights)"""
        if self.kind == LightKind.POINT:
            return None
        linear = np.asarray(self.world_transform, dtype=np.float64)[:3, :3]
        forward = np.array([0.0, 0.0, -1.0]) @ linear
        return Vector3(normalize_rows(forward[np.newaxis, :], (0.0, 0.0, -1.0))[0])

    def __repr__(self):
        return (f"Light(name={self.name!r}, kind={self.kind.value}, "
                f"intensity={self.intensity}, position={tuple(self.position)})")
