# python/vimscene/__init__.py
# Public Python API for decoding VIM BIM scene files
# Exists to re-export the pipeline stages and the loader facade
# RELEVANT FILES: python/vimscene/loader.py, python/vimscene/vim.py, tests/test_loader.py
from .bfast import BFast, BFastHeader, pack_bfast, parse_bfast
from .bounds import BoundingBox, BoundingSphere
from .config import LoaderConfig, load_loader_config
from .entities import EntityTable, PropertiesBlob, construct_entity_table, construct_entity_tables
from .errors import (
    InsufficientBuffers,
    InvalidGeometry,
    MalformedContainer,
    UnknownColumnType,
    VimFormatError,
)
from .g3d import Attribute, AttributeDescriptor, G3d, VimG3d, construct_g3d
from .loader import VimLoader, VimScene, load_vim, parse_vim_scene
from .mesh_builder import MeshSlice, allocate_geometry
from .scene import (
    IndexMaps,
    InstancedBatch,
    MergedBatch,
    SceneGeometry,
    compose_scene,
    count_mesh_references,
)
from .vim import Vim, VimHeader, construct_vim, parse_vim

__version__ = "0.1.0"

__all__ = [
    "Attribute",
    "AttributeDescriptor",
    "BFast",
    "BFastHeader",
    "BoundingBox",
    "BoundingSphere",
    "EntityTable",
    "G3d",
    "IndexMaps",
    "InstancedBatch",
    "InsufficientBuffers",
    "InvalidGeometry",
    "LoaderConfig",
    "MalformedContainer",
    "MergedBatch",
    "MeshSlice",
    "PropertiesBlob",
    "SceneGeometry",
    "UnknownColumnType",
    "Vim",
    "VimFormatError",
    "VimG3d",
    "VimHeader",
    "VimLoader",
    "VimScene",
    "allocate_geometry",
    "compose_scene",
    "construct_entity_table",
    "construct_entity_tables",
    "construct_g3d",
    "construct_vim",
    "count_mesh_references",
    "load_loader_config",
    "load_vim",
    "pack_bfast",
    "parse_bfast",
    "parse_vim",
    "parse_vim_scene",
]
