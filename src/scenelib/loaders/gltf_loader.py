"""
GLTF/GLB Loader

Loads GLTF and GLB assets into flattened, world space scene snapshots.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Set, Union

from ..config.settings import (
    DEFAULT_TEXTURE_WORKERS,
    FALLBACK_TO_FIRST_SCENE,
    FORCE_RGBA_TEXTURES,
    GENERATE_FLAT_NORMALS,
    GENERATE_TANGENTS,
    MAX_NODE_INSTANCES,
)
from ..core.scene import SceneLoadResult
from ..errors import NoDefaultScene, SceneNotFound
from .accessors import AccessorDecoder
from .buffers import BufferResolver
from .document import GltfDocument
from .material import MaterialResolver
from .mesh_assembler import MeshAssembler
from .scene_flattener import SceneFlattener
from .texture_loader import TextureCache, TextureLoader

logger = logging.getLogger(__name__)

Source = Union[str, os.PathLike, bytes, bytearray, memoryview]
SceneSelection = Union[None, int, Iterable[int]]


class LoadContext:
    """
    State owned by a single load call.

    Every cache (buffers, accessors, textures, materials, primitives) lives
    here, so separate load calls never share mutable state.
    """

    def __init__(self, document: GltfDocument, flat_normals: bool, generate_tangents: bool,
                 texture_workers: int, force_rgba_textures: bool,
                 max_node_instances: int = MAX_NODE_INSTANCES):
        self.document = document
        self.warnings: List[str] = []

        self.buffers = BufferResolver(document)
        self.accessors = AccessorDecoder(document, self.buffers)
        self.textures = TextureCache(
            TextureLoader(document, self.buffers, force_rgba=force_rgba_textures),
            workers=texture_workers,
        )
        self.materials = MaterialResolver(document, self.textures, self.warnings)
        self.assembler = MeshAssembler(
            document, self.accessors,
            flat_normals=flat_normals,
            generate_tangents=generate_tangents,
            warnings=self.warnings,
        )
        self.flattener = SceneFlattener(
            document, self.assembler, self.materials, max_node_instances=max_node_instances,
        )

    def referenced_textures(self, scene_indices: Iterable[int]) -> Set[int]:
        """Texture indices used by the materials of meshes reachable from the scenes."""
        material_indices = set()
        for scene_index in scene_indices:
            for _idx, node, _world, _ancestors in self.flattener.walk(scene_index):
                if node.mesh is None:
                    continue
                for primitive in self.document.mesh(node.mesh).primitives or []:
                    material_indices.add(primitive.material)

        textures = set()
        for material_index in material_indices:
            textures.update(self.materials.texture_indices(material_index))
        return textures


class GltfLoader:
    """
    Loads GLTF/GLB assets and flattens their scenes.

    A loader only holds options; it can be reused and shared between threads.
    """

    def __init__(self, flat_normals: bool = GENERATE_FLAT_NORMALS,
                 generate_tangents: bool = GENERATE_TANGENTS,
                 texture_workers: int = DEFAULT_TEXTURE_WORKERS,
                 fallback_to_first_scene: bool = FALLBACK_TO_FIRST_SCENE,
                 force_rgba_textures: bool = FORCE_RGBA_TEXTURES,
                 max_node_instances: int = MAX_NODE_INSTANCES,
                 base_path: Optional[Union[str, os.PathLike]] = None):
        """
        Initialize loader.

        Args:
            flat_normals: Give each triangle its own face normal when NORMAL is missing
            generate_tangents: Generate tangents from UVs when TANGENT is missing
            texture_workers: Threads used to decode textures ahead of use
            fallback_to_first_scene: Pick scene 0 when several scenes exist and none is declared
            force_rgba_textures: Convert all decoded images to RGBA
            max_node_instances: Reject scenes whose hierarchy expands to more node instances
            base_path: Directory for relative URIs (defaults to the asset's directory)
        """
        self.flat_normals = flat_normals
        self.generate_tangents = generate_tangents
        self.texture_workers = texture_workers
        self.fallback_to_first_scene = fallback_to_first_scene
        self.force_rgba_textures = force_rgba_textures
        self.max_node_instances = max_node_instances
        self.base_path = Path(base_path) if base_path is not None else None

    def open(self, source, base_path: Optional[Union[str, os.PathLike]] = None) -> GltfDocument:
        """
        Parse an asset without extracting any scene.

        Args:
            source: Path to a .gltf/.glb file, raw bytes, or a binary file object
            base_path: Directory for relative URIs, overriding the loader's

        Returns:
            Parsed GltfDocument
        """
        base = Path(base_path) if base_path is not None else self.base_path

        if isinstance(source, (str, os.PathLike)):
            filepath = Path(source)
            data = filepath.read_bytes()
            return GltfDocument.from_bytes(
                data,
                base_path=base if base is not None else filepath.parent,
                source_name=str(filepath),
            )

        if isinstance(source, (bytes, bytearray, memoryview)):
            return GltfDocument.from_bytes(bytes(source), base_path=base)

        if hasattr(source, 'read'):
            name = getattr(source, 'name', None)
            if base is None and isinstance(name, str):
                base = Path(name).parent
            return GltfDocument.from_bytes(
                source.read(),
                base_path=base,
                source_name=name if isinstance(name, str) else "<stream>",
            )

        raise TypeError(f"Cannot load glTF from {type(source).__name__}")

    def load(self, source, scenes: SceneSelection = None,
             base_path: Optional[Union[str, os.PathLike]] = None) -> List[SceneLoadResult]:
        """
        Load a GLTF or GLB asset.

        Args:
            source: Path to a .gltf/.glb file, raw bytes, or a binary file object
            scenes: Scene index or indices to extract (None: the default scene)
            base_path: Directory for relative URIs, overriding the loader's

        Returns:
            One SceneLoadResult per requested scene, in request order
        """
        document = self.open(source, base_path=base_path)
        logger.info("Loading glTF: %s", document.source_name)

        scene_indices = self.select_scenes(document, scenes)
        return self._extract(document, scene_indices)

    def load_all(self, source, base_path: Optional[Union[str, os.PathLike]] = None) -> List[SceneLoadResult]:
        """Load every scene of an asset, in document order."""
        document = self.open(source, base_path=base_path)
        logger.info("Loading glTF: %s (all scenes)", document.source_name)
        return self._extract(document, list(range(len(document.scenes))))

    def select_scenes(self, document: GltfDocument, scenes: SceneSelection) -> List[int]:
        """
        Resolve a scene selection to concrete indices.

        Raises:
            NoDefaultScene: No scene requested and none can be picked
            SceneNotFound: A requested index does not exist
        """
        if scenes is None:
            return [self.default_scene_index(document)]

        if isinstance(scenes, int) and not isinstance(scenes, bool):
            requested = [scenes]
        else:
            requested = list(scenes)

        count = len(document.scenes)
        for index in requested:
            if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < count:
                raise SceneNotFound(f"Scene {index!r} does not exist (document has {count})")
        return requested

    def default_scene_index(self, document: GltfDocument) -> int:
        """
        The scene loaded when none is requested.

        The declared default scene wins; otherwise a single scene is used.
        With several scenes and no declaration, scene 0 is used only when
        fallback_to_first_scene is enabled.
        """
        if document.default_scene is not None:
            return document.default_scene

        count = len(document.scenes)
        if count == 0:
            raise NoDefaultScene("Document contains no scenes")
        if count == 1 or self.fallback_to_first_scene:
            return 0
        raise NoDefaultScene(
            f"Document declares no default scene and has {count} scenes; "
            f"request one explicitly"
        )

    def _extract(self, document: GltfDocument, scene_indices: List[int]) -> List[SceneLoadResult]:
        context = LoadContext(
            document,
            flat_normals=self.flat_normals,
            generate_tangents=self.generate_tangents,
            texture_workers=self.texture_workers,
            force_rgba_textures=self.force_rgba_textures,
            max_node_instances=self.max_node_instances,
        )

        if context.textures.workers > 1:
            context.textures.prefetch(context.referenced_textures(scene_indices))

        results = [context.flattener.flatten(index) for index in scene_indices]

        for result in results:
            result.warnings = list(context.warnings)
            logger.info(
                "  Scene %d%s: %d meshes, %d cameras, %d lights",
                result.index, f" ({result.name})" if result.name else "",
                len(result.meshes), len(result.cameras), len(result.lights)
            )
        if context.warnings:
            logger.info("  %d warnings while loading %s", len(context.warnings), document.source_name)

        return results


def load(source, scenes: SceneSelection = None, **options) -> List[SceneLoadResult]:
    """
    Load scenes from a GLTF/GLB asset.

    Keyword options are passed to GltfLoader.
    """
    base_path = options.pop('base_path', None)
    return GltfLoader(**options).load(source, scenes=scenes, base_path=base_path)


def load_all(source, **options) -> List[SceneLoadResult]:
    """Load every scene of a GLTF/GLB asset."""
    base_path = options.pop('base_path', None)
    return GltfLoader(**options).load_all(source, base_path=base_path)
