"""Tests for Mesh and scene result classes"""

import numpy as np
import pytest

from scenelib.core.scene import SceneEmpty, SceneLoadResult
from scenelib.core.transforms import trs_matrix
from scenelib.loaders.material import Material
from scenelib.loaders.model import Mesh, Vertex


def make_mesh(offset=0.0):
    positions = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 2.0, 0.0]]) + offset
    return Mesh(
        positions=positions,
        normals=np.tile([0.0, 0.0, 1.0], (3, 1)),
        tangents=np.zeros((3, 4)),
        tex_coords=np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]]),
        indices=[0, 1, 2],
        material=Material("Test"),
    )


def test_mesh_initialization():
    """Test mesh arrays are normalized to fixed dtypes"""
    mesh = make_mesh()

    assert mesh.positions.dtype == np.float32
    assert mesh.indices.dtype == np.uint32
    assert mesh.vertex_count == 3
    assert mesh.triangle_count == 1
    assert mesh.name == "Mesh"
    assert np.allclose(np.asarray(mesh.world_transform), np.eye(4))


def test_mesh_is_read_only():
    mesh = make_mesh()
    with pytest.raises(ValueError):
        mesh.positions[0, 0] = 1.0
    with pytest.raises(ValueError):
        mesh.indices[0] = 2


def test_mesh_vertex_records():
    mesh = make_mesh()

    vertex = mesh.vertex(1)

    assert vertex == Vertex(
        position=(1.0, 0.0, 0.0),
        normal=(0.0, 0.0, 1.0),
        tangent=(0.0, 0.0, 0.0, 0.0),
        tex_coords=(1.0, 0.0),
    )
    assert len(list(mesh.vertices())) == 3


def test_mesh_triangles_and_bounds():
    mesh = make_mesh()

    assert mesh.triangles().tolist() == [[0, 1, 2]]
    low, high = mesh.bounds()
    assert np.allclose(low, [0.0, 0.0, 0.0])
    assert np.allclose(high, [1.0, 2.0, 0.0])


def test_scene_result_totals():
    result = SceneLoadResult(index=0, meshes=[make_mesh(), make_mesh(offset=5.0)])

    assert result.vertex_count == 6
    assert result.triangle_count == 2
    low, high = result.bounds()
    assert np.allclose(low, [0.0, 0.0, 0.0])
    assert np.allclose(high, [6.0, 7.0, 5.0])


def test_empty_scene_result():
    result = SceneLoadResult(index=3)

    assert result.meshes == []
    assert result.warnings == []
    assert result.vertex_count == 0
    low, high = result.bounds()
    assert np.all(low == 0.0) and np.all(high == 0.0)


def test_scene_empty_position():
    empty = SceneEmpty(node_index=2, world_transform=trs_matrix([1.0, 2.0, 3.0]))
    assert np.allclose(empty.position, [1.0, 2.0, 3.0])
    assert empty.parent_nodes == ()
