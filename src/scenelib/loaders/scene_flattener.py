"""
Scene Flattener

Walks a scene's node hierarchy, accumulating world transforms, and
instantiates the meshes, cameras and lights attached to the nodes.
"""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Tuple

import numpy as np
from pyrr import Matrix44

from ..config.settings import GENERATED_NORMAL_FALLBACK, MAX_NODE_INSTANCES, NORMAL_EPSILON
from ..core.camera import Camera, parse_projection
from ..core.light import Light
from ..core.scene import SceneEmpty, SceneLoadResult
from ..core.transforms import (
    compose,
    determinant,
    identity,
    node_local_transform,
    normal_matrix,
    transform_directions,
    transform_points,
)
from ..errors import CyclicNodeGraph, MalformedDocument
from .document import GltfDocument
from .material import MaterialResolver
from .mesh_assembler import AssembledPrimitive, MeshAssembler
from .model import Mesh

logger = logging.getLogger(__name__)


def bake_tangents(linear: np.ndarray, tangents: np.ndarray) -> np.ndarray:
    """
    Transform tangent xyz by a 3x3 matrix (row vectors), keeping the handedness.

    Zero tangents (the "no tangent" value) stay zero.
    """
    xyz = np.asarray(tangents[:, :3], dtype=np.float64) @ np.asarray(linear, dtype=np.float64)
    lengths = np.linalg.norm(xyz, axis=1)
    present = lengths > np.sqrt(NORMAL_EPSILON)
    xyz[present] /= lengths[present, np.newaxis]
    xyz[~present] = 0.0
    return np.concatenate([xyz, np.asarray(tangents[:, 3:4], dtype=np.float64)], axis=1)


class SceneFlattener:
    """
    Flattens scenes of one document.

    Traversal is depth-first in document order and iterative, so deep
    hierarchies cannot exhaust the interpreter stack. Each entry carries
    its chain of ancestors; meeting a node among its own ancestors is a
    cycle. The same node reached through different parents is instanced,
    up to max_node_instances instances per scene.
    """

    def __init__(self, document: GltfDocument, assembler: MeshAssembler,
                 materials: MaterialResolver, max_node_instances: int = MAX_NODE_INSTANCES):
        """
        Initialize flattener.

        Args:
            document: Document owning the scenes
            assembler: Mesh assembler for primitive geometry
            materials: Material resolver for primitive materials
            max_node_instances: Node instances a scene may expand to before it is rejected
        """
        self.document = document
        self.assembler = assembler
        self.materials = materials
        self.max_node_instances = max_node_instances

    def flatten(self, scene_index: int) -> SceneLoadResult:
        """
        Flatten one scene.

        Args:
            scene_index: Index into the document's scenes

        Returns:
            SceneLoadResult with meshes, cameras, lights and empties in traversal order
        """
        scene = self.document.scene(scene_index)
        result = SceneLoadResult(
            index=scene_index,
            name=scene.name,
            extras=scene.extras or None,
        )

        for node_idx, node, world, ancestors in self.walk(scene_index):
            self._process_node(node_idx, node, world, ancestors, result)

        logger.debug(
            "Scene %d: %d meshes, %d cameras, %d lights, %d empties",
            scene_index, len(result.meshes), len(result.cameras),
            len(result.lights), len(result.empties)
        )
        return result

    def walk(self, scene_index: int) -> Iterator[Tuple[int, object, Matrix44, Tuple[int, ...]]]:
        """
        Visit every node instance of a scene.

        Yields:
            (node index, node, world transform, ancestor chain) in depth-first
            document order
        """
        scene = self.document.scene(scene_index)

        # Stack of (node index, parent world transform, ancestor chain)
        stack: List[Tuple[int, np.ndarray, Tuple[int, ...]]] = [
            (node_idx, np.asarray(identity()), ()) for node_idx in reversed(scene.nodes or [])
        ]

        instances = 0
        while stack:
            node_idx, parent_world, ancestors = stack.pop()
            if node_idx in ancestors:
                raise CyclicNodeGraph(node_idx, ancestors)

            instances += 1
            if instances > self.max_node_instances:
                raise MalformedDocument(
                    f"Scene {scene_index} expands to more than {self.max_node_instances} node instances"
                )

            node = self.document.node(node_idx)
            world = compose(parent_world, node_local_transform(node))
            yield node_idx, node, world, ancestors

            chain = ancestors + (node_idx,)
            world_array = np.asarray(world)
            for child_idx in reversed(node.children or []):
                stack.append((child_idx, world_array, chain))

    def node_world_transform(self, scene_index: int, node_index: int) -> Optional[Matrix44]:
        """World transform of a node's first instance in a scene (None if unreachable)."""
        for node_idx, _node, world, _ancestors in self.walk(scene_index):
            if node_idx == node_index:
                return world
        return None

    def _process_node(self, node_idx: int, node, world: Matrix44,
                      ancestors: Tuple[int, ...], result: SceneLoadResult):
        attached = False

        if node.mesh is not None:
            attached = True
            gltf_mesh = self.document.mesh(node.mesh)
            for prim_idx in range(self.assembler.primitive_count(node.mesh)):
                primitive = self.assembler.assemble(node.mesh, prim_idx)
                mesh_name = f"{node.name or gltf_mesh.name or 'Mesh'}_{prim_idx}"
                mesh = self._bake(primitive, world, mesh_name)
                mesh.mesh_index = node.mesh
                mesh.primitive_index = prim_idx
                mesh.node_index = node_idx
                mesh.parent_nodes = ancestors
                mesh.extras = gltf_mesh.extras or None
                result.meshes.append(mesh)
                logger.debug("  Mesh: %s, vertices: %d", mesh_name, mesh.vertex_count)

        if node.camera is not None:
            attached = True
            gltf_camera = self.document.camera(node.camera)
            camera = Camera(
                parse_projection(gltf_camera),
                world_transform=world,
                name=gltf_camera.name or node.name,
            )
            camera.camera_index = node.camera
            camera.node_index = node_idx
            camera.parent_nodes = ancestors
            camera.extras = gltf_camera.extras or None
            result.cameras.append(camera)

        light_idx = self.document.node_light_index(node)
        if light_idx is not None:
            attached = True
            light = Light.from_dict(self.document.light(light_idx), world_transform=world)
            if light.name is None:
                light.name = node.name
            light.light_index = light_idx
            light.node_index = node_idx
            light.parent_nodes = ancestors
            result.lights.append(light)

        if not attached:
            result.empties.append(SceneEmpty(
                node_index=node_idx,
                world_transform=world,
                name=node.name,
                parent_nodes=ancestors,
                extras=node.extras or None,
            ))

    def _bake(self, primitive: AssembledPrimitive, world: Matrix44, name: str) -> Mesh:
        """Place a local space primitive in world space."""
        world_array = np.asarray(world, dtype=np.float64)

        positions = transform_points(world_array, primitive.positions)
        normals = transform_directions(
            normal_matrix(world_array), primitive.normals, GENERATED_NORMAL_FALLBACK
        )
        tangents = bake_tangents(world_array[:3, :3], primitive.tangents)

        indices = primitive.indices
        if determinant(world_array) < 0.0:
            # Mirroring flips the winding; swap two corners to keep front faces
            indices = indices.reshape(-1, 3)[:, [0, 2, 1]].reshape(-1)

        mesh = Mesh(
            positions=positions,
            normals=normals,
            tangents=tangents,
            tex_coords=primitive.tex_coords,
            indices=indices,
            material=self.materials.resolve(primitive.material_index),
            world_transform=world,
            name=name,
        )
        mesh.mode = primitive.mode
        mesh.has_normals = primitive.has_normals
        mesh.has_tangents = primitive.has_tangents
        mesh.has_tex_coords = primitive.has_tex_coords
        mesh.primitive_extras = primitive.extras
        return mesh

