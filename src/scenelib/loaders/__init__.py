"""Loader pipeline for glTF assets."""

from .material import Material, MaterialResolver
from .model import Mesh, PrimitiveMode, Vertex
from .gltf_loader import GltfLoader, load, load_all

__all__ = ['Material', 'MaterialResolver', 'Mesh', 'PrimitiveMode', 'Vertex',
           'GltfLoader', 'load', 'load_all']
