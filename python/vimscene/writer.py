# python/vimscene/writer.py
# Builders for entity, geometry and top-level VIM containers
# Exists to produce VIM byte streams from numpy arrays for fixtures and tooling
# RELEVANT FILES: python/vimscene/bfast.py, tests/conftest.py, tests/test_vim.py
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from . import g3d as _g3d
from .bfast import pack_bfast
from .entities import INDEX, NUMERIC, PROPERTIES, STRING

_COLUMN_DTYPES = {NUMERIC: "<f8", INDEX: "<i4", STRING: "<i4"}


def pack_entity_table(columns: Mapping[str, Any]) -> bytes:
    """``columns`` maps ``type:name`` to array data (or raw bytes for properties)."""
    names = []
    buffers = []
    for full_name, values in columns.items():
        column_type = full_name.partition(":")[0]
        if column_type == PROPERTIES:
            payload = bytes(values)
        elif column_type in _COLUMN_DTYPES:
            payload = np.asarray(values, dtype=_COLUMN_DTYPES[column_type]).tobytes()
        else:
            payload = bytes(values)
        names.append(full_name)
        buffers.append(payload)
    return pack_bfast(names, buffers)


def pack_entity_tables(tables: Mapping[str, Mapping[str, Any]], prefix: str = "table:") -> bytes:
    names = [f"{prefix}{name}" for name in tables]
    return pack_bfast(names, [pack_entity_table(cols) for cols in tables.values()])


def pack_g3d(attributes: Mapping[str, Any], meta: str = "G3D") -> bytes:
    """``attributes`` maps descriptor strings to arrays; dtype follows the descriptor."""
    names = ["meta"]
    buffers = [meta.encode("utf-8")]
    for description, values in attributes.items():
        descriptor = _g3d.AttributeDescriptor.from_string(description)
        names.append(description)
        buffers.append(np.asarray(values, dtype=descriptor.dtype).reshape(-1).tobytes())
    return pack_bfast(names, buffers)


def pack_vim_geometry(
    positions: np.ndarray,
    indices: np.ndarray,
    mesh_submeshes: Sequence[int],
    submesh_index_offsets: Sequence[int],
    submesh_materials: Optional[Sequence[int]] = None,
    material_colors: Optional[np.ndarray] = None,
    instance_meshes: Sequence[int] = (),
    instance_transforms: Optional[np.ndarray] = None,
) -> bytes:
    attributes: Dict[str, Any] = {
        _g3d.POSITION: positions,
        _g3d.INDEX: indices,
        _g3d.MESH_SUBMESH_OFFSET: mesh_submeshes,
        _g3d.SUBMESH_INDEX_OFFSET: submesh_index_offsets,
    }
    if submesh_materials is not None:
        attributes[_g3d.SUBMESH_MATERIAL] = submesh_materials
    if material_colors is not None:
        attributes[_g3d.MATERIAL_COLOR] = material_colors
    attributes[_g3d.INSTANCE_MESH] = instance_meshes
    if instance_transforms is None:
        instance_transforms = np.tile(np.eye(4, dtype=np.float32).reshape(-1), len(instance_meshes))
    attributes[_g3d.INSTANCE_TRANSFORM] = instance_transforms
    return pack_g3d(attributes)


def pack_strings(strings: Sequence[str]) -> bytes:
    return b"".join(s.encode("utf-8") + b"\0" for s in strings)


def pack_vim(
    geometry: bytes,
    entities: Optional[Mapping[str, Mapping[str, Any]]] = None,
    strings: Sequence[str] = (),
    header: str = "vim=0.9\n",
    assets: Optional[Mapping[str, bytes]] = None,
) -> bytes:
    """Assemble the five top-level sections into one VIM file."""
    asset_items: Tuple[Tuple[str, bytes], ...] = tuple((assets or {}).items())
    sections = [
        ("header", header.encode("utf-8")),
        ("assets", pack_bfast([k for k, _ in asset_items], [v for _, v in asset_items])),
        ("entities", pack_entity_tables(entities or {})),
        ("strings", pack_strings(strings)),
        ("geometry", geometry),
    ]
    return pack_bfast([n for n, _ in sections], [b for _, b in sections])
