# python/vimscene/mesh_builder.py
# Per-mesh deduplicated buffers from validated G3D arrays
# Exists to slice shared vertex data into compact, rebased, colored mesh slices
# RELEVANT FILES: python/vimscene/g3d.py, python/vimscene/scene.py, tests/test_mesh_builder.py
"""Mesh slicing.

Ownership of the produced arrays:

- ``MeshSlice.positions`` is a view into the G3D position buffer (and so into
  the bytes handed to the parser).
- ``MeshSlice.indices`` and ``MeshSlice.colors`` are owned copies, since
  indices are rebased and colors are resolved from materials.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from .bounds import BoundingBox, BoundingSphere
from .g3d import NO_MATERIAL, VimG3d

logger = logging.getLogger(__name__)

TRANSPARENCY_THRESHOLD = 0.9
DEFAULT_COLOR = (0.5, 0.5, 0.5)


@dataclass
class MeshSlice:
    """One deduplicated mesh ready for instancing."""

    positions: np.ndarray = field(repr=False)
    indices: np.ndarray = field(repr=False)
    colors: Optional[np.ndarray] = field(default=None, repr=False)
    bounding_sphere: BoundingSphere = field(default_factory=BoundingSphere.empty)
    bounding_box: Optional[BoundingBox] = None
    vertex_offset: int = 0

    def __post_init__(self):
        if self.bounding_box is None:
            self.bounding_box = BoundingBox.from_positions(self.positions)
        if self.bounding_sphere.is_empty():
            self.bounding_sphere = BoundingSphere.from_positions(self.positions)

    @property
    def vertex_count(self) -> int:
        return int(self.positions.size // 3)

    @property
    def triangle_count(self) -> int:
        return int(self.indices.size // 3)

    def transformed(self, matrix: np.ndarray) -> "MeshSlice":
        """Copy with positions baked through a row-major 4x4 (row vectors)."""
        m = np.asarray(matrix, dtype=np.float64).reshape(4, 4)
        pts = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        out = pts @ m[:3, :3] + m[3, :3]
        return MeshSlice(
            positions=out.astype(np.float32).reshape(-1),
            indices=self.indices.copy(),
            colors=None if self.colors is None else self.colors.copy(),
        )


def get_submesh_color(g3d: VimG3d, submesh: int) -> Optional[Tuple[float, float, float]]:
    """RGB for ``submesh``; None when its material is transparent."""
    material = int(g3d.submesh_material[submesh])
    if material == NO_MATERIAL:
        return DEFAULT_COLOR
    start = material * g3d.color_arity
    rgba = g3d.material_colors[start:start + g3d.color_arity]
    if g3d.color_arity >= 4 and rgba[3] < TRANSPARENCY_THRESHOLD:
        return None
    rgb = [float(v) for v in rgba[:3]]
    rgb += [0.0] * (3 - len(rgb))
    return rgb[0], rgb[1], rgb[2]


def allocate_geometry(g3d: VimG3d) -> List[Optional[MeshSlice]]:
    """Build one :class:`MeshSlice` per mesh id, or None if fully transparent.

    The result is aligned with mesh ids: ``len(result) == g3d.mesh_count``.
    """
    mesh_count = g3d.mesh_count
    # Worst-case scratch buffer, reused for every mesh.
    index_buffer = np.zeros(g3d.indices.shape[0], dtype=np.int64)
    result: List[Optional[MeshSlice]] = []
    transparent = 0

    for mesh in range(mesh_count):
        index_count = 0
        painted: List[Tuple[np.ndarray, Tuple[float, float, float]]] = []
        lo = None
        hi = None

        mesh_start, mesh_end = g3d.get_mesh_submesh_range(mesh)
        for submesh in range(mesh_start, mesh_end):
            color = get_submesh_color(g3d, submesh)
            if color is None:
                continue
            start, end = g3d.get_submesh_index_range(submesh)
            if end <= start:
                continue
            vertices = g3d.indices[start:end]
            index_buffer[index_count:index_count + vertices.size] = vertices
            index_count += vertices.size
            sub_lo = int(vertices.min())
            sub_hi = int(vertices.max())
            lo = sub_lo if lo is None else min(lo, sub_lo)
            hi = sub_hi if hi is None else max(hi, sub_hi)
            painted.append((vertices, color))

        if index_count == 0:
            transparent += 1
            result.append(None)
            continue

        indices = (index_buffer[:index_count] - lo).astype(np.uint32)
        # Rows no opaque submesh references stay zero; the last submesh to touch a vertex decides its color.
        colors = np.zeros((hi - lo + 1, 3), dtype=np.float32)
        for vertices, color in painted:
            colors[vertices - lo] = color
        result.append(
            MeshSlice(
                positions=g3d.positions[lo * 3:(hi + 1) * 3],
                indices=indices,
                colors=colors.reshape(-1),
                vertex_offset=lo,
            )
        )

    logger.debug("Built %d mesh slices, %d fully transparent", mesh_count, transparent)
    return result
