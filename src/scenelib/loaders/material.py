"""
Material

Resolves glTF PBR metallic-roughness materials into fully populated
Material objects, applying the glTF default for every absent field.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..errors import ImageDecodeError, MalformedDocument
from .document import GltfDocument
from .texture_loader import Texture, TextureCache
from .texture_transform import TextureTransform

logger = logging.getLogger(__name__)

ALPHA_MODES = ("OPAQUE", "MASK", "BLEND")

UNLIT_EXTENSION = "KHR_materials_unlit"
EMISSIVE_STRENGTH_EXTENSION = "KHR_materials_emissive_strength"


class MaterialTexture:
    """
    A decoded texture bound to a material slot.

    Carries the texture coordinate set and the optional KHR_texture_transform.
    """

    def __init__(self, texture: Texture, tex_coord: int = 0,
                 transform: Optional[TextureTransform] = None):
        self.texture = texture
        self.tex_coord = tex_coord
        self.transform = transform

    @property
    def index(self) -> int:
        return self.texture.index

    @property
    def uv_set(self) -> int:
        """Texture coordinate set after applying a transform's texCoord override."""
        if self.transform is not None and self.transform.texcoord is not None:
            return self.transform.texcoord
        return self.tex_coord

    def __repr__(self):
        return f"MaterialTexture(index={self.index}, tex_coord={self.tex_coord})"


class Material:
    """
    Represents a PBR material with textures.

    Supports the standard PBR workflow:
    - Base Color (albedo)
    - Metallic/Roughness (packed in single texture: G = roughness, B = metallic)
    - Normal Map
    - Occlusion (R channel)
    - Emissive

    Every field holds its glTF default until a resolver overrides it.
    """

    def __init__(self, name: str = "Material", index: Optional[int] = None):
        """
        Initialize material.

        Args:
            name: Material name for debugging
            index: Source material index (None for the implicit default material)
        """
        self.name = name
        self.index = index

        # Texture slots (None when absent or when decoding failed)
        self.base_color_texture: Optional[MaterialTexture] = None
        self.metallic_roughness_texture: Optional[MaterialTexture] = None
        self.normal_texture: Optional[MaterialTexture] = None
        self.occlusion_texture: Optional[MaterialTexture] = None
        self.emissive_texture: Optional[MaterialTexture] = None

        # Base color factor (used if no texture)
        self.base_color_factor: Tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)

        # PBR factors
        self.metallic_factor = 1.0
        self.roughness_factor = 1.0
        self.occlusion_strength = 1.0  # Strength of baked ambient occlusion
        self.normal_scale = 1.0  # Normal map intensity
        self.emissive_factor: Tuple[float, float, float] = (0.0, 0.0, 0.0)

        # Alpha mode ("OPAQUE", "MASK", "BLEND")
        self.alpha_mode = "OPAQUE"
        self.alpha_cutoff = 0.5  # Threshold for MASK mode

        # Double-sided rendering
        self.double_sided = False

        # Extensions
        self.unlit = False  # KHR_materials_unlit extension
        self.emissive_strength = 1.0  # KHR_materials_emissive_strength (allows HDR emissive > 1.0)

    def has_base_color(self) -> bool:
        """Check if material has base color texture"""
        return self.base_color_texture is not None

    def has_normal_map(self) -> bool:
        """Check if material has normal map"""
        return self.normal_texture is not None

    def has_metallic_roughness(self) -> bool:
        """Check if material has metallic/roughness texture"""
        return self.metallic_roughness_texture is not None

    def metallic_channel(self) -> Optional[np.ndarray]:
        """Metalness values (blue channel of the metallic/roughness texture)."""
        return self._packed_channel(2)

    def roughness_channel(self) -> Optional[np.ndarray]:
        """Roughness values (green channel of the metallic/roughness texture)."""
        return self._packed_channel(1)

    def occlusion_channel(self) -> Optional[np.ndarray]:
        """Ambient occlusion values (red channel of the occlusion texture)."""
        if self.occlusion_texture is None:
            return None
        return self.occlusion_texture.texture.channel(0)

    def _packed_channel(self, channel_index: int) -> Optional[np.ndarray]:
        if self.metallic_roughness_texture is None:
            return None
        texture = self.metallic_roughness_texture.texture
        if texture.channels < 3:
            # Grayscale images carry the same value in every channel
            return texture.channel(0)
        return texture.channel(channel_index)

    def __repr__(self):
        return (f"Material(name={self.name!r}, base_color={self.base_color_factor}, "
                f"metallic={self.metallic_factor}, roughness={self.roughness_factor})")


def _factor(value, size: int, default: Tuple[float, ...], label: str) -> Tuple[float, ...]:
    if value is None:
        return default
    if len(value) != size:
        raise MalformedDocument(f"{label} must have {size} values, got {len(value)}")
    return tuple(float(v) for v in value)


def _scalar(value, default: float) -> float:
    return float(value) if value is not None else default


class MaterialResolver:
    """
    Resolves material indices of one document into Material objects.

    Materials are resolved on first request and cached per index. Texture
    decode failures are recovered: the slot stays empty, the factors are
    kept and a warning is recorded.
    """

    def __init__(self, document: GltfDocument, textures: TextureCache,
                 warnings: Optional[List[str]] = None):
        """
        Initialize resolver.

        Args:
            document: Document owning the materials
            textures: Per-load texture cache
            warnings: List receiving non-fatal diagnostics
        """
        self.document = document
        self.textures = textures
        self.warnings = warnings if warnings is not None else []
        self._cache: Dict[Optional[int], Material] = {}

    def resolve(self, material_index: Optional[int]) -> Material:
        """
        Get the material for a primitive.

        Args:
            material_index: Index into the document's materials, or None

        Returns:
            Fully populated Material (the default material for None)
        """
        if material_index in self._cache:
            return self._cache[material_index]

        if material_index is None:
            material = Material("Default")
        else:
            material = self._parse_material(material_index)

        self._cache[material_index] = material
        return material

    def texture_indices(self, material_index: Optional[int]) -> List[int]:
        """Texture indices a material references, without decoding them."""
        if material_index is None:
            return []
        gltf_mat = self.document.material(material_index)
        pbr = gltf_mat.pbrMetallicRoughness
        infos = [gltf_mat.normalTexture, gltf_mat.occlusionTexture, gltf_mat.emissiveTexture]
        if pbr is not None:
            infos.extend([pbr.baseColorTexture, pbr.metallicRoughnessTexture])
        return [info.index for info in infos if info is not None and info.index is not None]

    def _parse_material(self, mat_idx: int) -> Material:
        gltf_mat = self.document.material(mat_idx)
        material = Material(gltf_mat.name or f"Material_{mat_idx}", index=mat_idx)

        # Parse PBR metallic roughness
        pbr = gltf_mat.pbrMetallicRoughness
        if pbr is not None:
            material.base_color_factor = _factor(
                pbr.baseColorFactor, 4, material.base_color_factor, "baseColorFactor"
            )
            material.metallic_factor = _scalar(pbr.metallicFactor, material.metallic_factor)
            material.roughness_factor = _scalar(pbr.roughnessFactor, material.roughness_factor)
            material.base_color_texture = self._load_slot(mat_idx, "baseColorTexture", pbr.baseColorTexture)
            material.metallic_roughness_texture = self._load_slot(
                mat_idx, "metallicRoughnessTexture", pbr.metallicRoughnessTexture
            )

        # Normal map
        if gltf_mat.normalTexture is not None:
            material.normal_texture = self._load_slot(mat_idx, "normalTexture", gltf_mat.normalTexture)
            material.normal_scale = _scalar(getattr(gltf_mat.normalTexture, 'scale', None), 1.0)

        # Occlusion texture
        if gltf_mat.occlusionTexture is not None:
            material.occlusion_texture = self._load_slot(
                mat_idx, "occlusionTexture", gltf_mat.occlusionTexture
            )
            material.occlusion_strength = _scalar(
                getattr(gltf_mat.occlusionTexture, 'strength', None), 1.0
            )

        # Emissive
        material.emissive_texture = self._load_slot(mat_idx, "emissiveTexture", gltf_mat.emissiveTexture)
        material.emissive_factor = _factor(
            gltf_mat.emissiveFactor, 3, material.emissive_factor, "emissiveFactor"
        )

        # Alpha mode and cutoff
        alpha_mode = gltf_mat.alphaMode or "OPAQUE"
        if alpha_mode not in ALPHA_MODES:
            raise MalformedDocument(f"Material {mat_idx} has unknown alphaMode '{alpha_mode}'")
        material.alpha_mode = alpha_mode
        material.alpha_cutoff = _scalar(gltf_mat.alphaCutoff, material.alpha_cutoff)

        # Double-sided rendering
        material.double_sided = bool(gltf_mat.doubleSided)

        extensions = gltf_mat.extensions or {}
        if UNLIT_EXTENSION in extensions:
            material.unlit = True
        emissive_ext = extensions.get(EMISSIVE_STRENGTH_EXTENSION)
        if isinstance(emissive_ext, dict) and 'emissiveStrength' in emissive_ext:
            material.emissive_strength = float(emissive_ext['emissiveStrength'])

        logger.debug("Material %d: %s", mat_idx, material)
        return material

    def _load_slot(self, mat_idx: int, slot: str, texture_info) -> Optional[MaterialTexture]:
        if texture_info is None or texture_info.index is None:
            return None

        try:
            texture = self.textures.get(texture_info.index)
        except ImageDecodeError as exc:
            message = f"Material {mat_idx} {slot}: {exc}; using factor values only"
            logger.warning(message)
            self.warnings.append(message)
            return None

        return MaterialTexture(
            texture=texture,
            tex_coord=texture_info.texCoord or 0,
            transform=TextureTransform.from_extensions(getattr(texture_info, 'extensions', None)),
        )
