# python/vimscene/scene.py
# Instancing decisions, transform application, static merging, and picking tables
# Exists to turn mesh slices plus instance arrays into renderer-agnostic batches
# RELEVANT FILES: python/vimscene/mesh_builder.py, python/vimscene/bounds.py, python/vimscene/loader.py, tests/test_scene.py
"""Instance composition.

Meshes referenced by more than one instance become :class:`InstancedBatch`
entries (one transform per slot). Meshes referenced exactly once are baked
through their instance transform and concatenated into a single
:class:`MergedBatch` drawn with the identity transform.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .bounds import BoundingSphere
from .g3d import MATRIX_ARITY
from .mesh_builder import MeshSlice

logger = logging.getLogger(__name__)

IDENTITY = np.eye(4, dtype=np.float32)


@dataclass
class InstancedBatch:
    """A mesh drawn once per slot with its own transform."""
    batch_id: int
    mesh_index: int
    mesh: MeshSlice
    matrices: np.ndarray = field(repr=False)

    @property
    def count(self) -> int:
        return int(self.matrices.shape[0])


@dataclass
class MergedBatch:
    """All single-use meshes baked into one buffer, drawn once."""
    batch_id: int
    mesh: MeshSlice
    nodes: List[int] = field(default_factory=list)
    triangle_starts: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64), repr=False)
    matrices: np.ndarray = field(default_factory=lambda: IDENTITY.reshape(1, 4, 4).copy(), repr=False)

    @property
    def count(self) -> int:
        return 1

    def node_for_triangle(self, triangle: int) -> Optional[int]:
        """Node whose baked geometry contains ``triangle`` of the merged buffer."""
        if triangle < 0 or triangle >= self.mesh.triangle_count or not self.nodes:
            return None
        pos = int(np.searchsorted(self.triangle_starts, triangle, side="right")) - 1
        return self.nodes[pos]


RenderBatch = Union[InstancedBatch, MergedBatch]


@dataclass
class IndexMaps:
    """Picking tables between node ids and ``(batch_id, slot)`` pairs."""
    node_to_instance: Dict[int, Tuple[int, int]] = field(default_factory=dict)
    batch_to_nodes: "OrderedDict[int, List[int]]" = field(default_factory=OrderedDict)
    merged_batch_id: Optional[int] = None

    def instance_of(self, node: int) -> Optional[Tuple[int, int]]:
        return self.node_to_instance.get(node)

    def node_at(self, batch_id: int, slot: int) -> Optional[int]:
        """Node at an instanced slot. Merged nodes share slot 0 and resolve by triangle only."""
        if batch_id == self.merged_batch_id:
            return None
        nodes = self.batch_to_nodes.get(batch_id)
        if nodes is None or slot < 0 or slot >= len(nodes):
            return None
        return nodes[slot]

    def _register(self, node: int, batch_id: int, slot: int) -> bool:
        """Record ``node`` and return True the first time ``batch_id`` is seen."""
        self.node_to_instance[node] = (batch_id, slot)
        nodes = self.batch_to_nodes.get(batch_id)
        if nodes is None:
            self.batch_to_nodes[batch_id] = [node]
            return True
        nodes.append(node)
        return False


@dataclass
class SceneGeometry:
    """Everything the external renderer consumes."""
    batches: List[RenderBatch]
    bounding_sphere: BoundingSphere
    index_maps: IndexMaps
    mesh_ref_counts: np.ndarray = field(repr=False)

    @property
    def instanced_batches(self) -> List[InstancedBatch]:
        return [b for b in self.batches if isinstance(b, InstancedBatch)]

    @property
    def merged_batch(self) -> Optional[MergedBatch]:
        for batch in self.batches:
            if isinstance(batch, MergedBatch):
                return batch
        return None

    def node_at(self, batch_id: int, slot: int, triangle: Optional[int] = None) -> Optional[int]:
        """Translate a renderer hit back to a node id."""
        merged = self.merged_batch
        if merged is not None and batch_id == merged.batch_id:
            return None if triangle is None else merged.node_for_triangle(triangle)
        return self.index_maps.node_at(batch_id, slot)


def count_mesh_references(instance_meshes: np.ndarray, mesh_count: int) -> np.ndarray:
    """Number of instances pointing at each mesh id; negative and out-of-range ids are ignored."""
    meshes = np.asarray(instance_meshes, dtype=np.int64)
    live = meshes[(meshes >= 0) & (meshes < mesh_count)]
    return np.bincount(live, minlength=mesh_count).astype(np.int32)


def instance_matrix(instance_transforms: np.ndarray, instance: int) -> np.ndarray:
    start = instance * MATRIX_ARITY
    return np.asarray(instance_transforms[start:start + MATRIX_ARITY], dtype=np.float32).reshape(4, 4)


def merge_mesh_slices(slices: Sequence[MeshSlice]) -> Tuple[MeshSlice, np.ndarray]:
    """Concatenate slices into one buffer; also return each slice's first triangle."""
    positions = np.concatenate([np.asarray(s.positions, dtype=np.float32) for s in slices])
    index_parts = []
    triangle_starts = np.zeros(len(slices), dtype=np.int64)
    vertex_base = 0
    triangle_base = 0
    for i, s in enumerate(slices):
        index_parts.append(s.indices.astype(np.uint32) + np.uint32(vertex_base))
        triangle_starts[i] = triangle_base
        vertex_base += s.vertex_count
        triangle_base += s.triangle_count
    indices = np.concatenate(index_parts)
    colors = None
    if all(s.colors is not None for s in slices):
        colors = np.concatenate([s.colors for s in slices])
    return MeshSlice(positions=positions, indices=indices, colors=colors), triangle_starts


def compose_scene(
    meshes: Sequence[Optional[MeshSlice]],
    instance_meshes: np.ndarray,
    instance_transforms: np.ndarray,
) -> SceneGeometry:
    """Place every live instance into an instanced batch or the merged batch.

    Parameters
    ----------
    meshes : sequence of MeshSlice or None
        Output of :func:`vimscene.mesh_builder.allocate_geometry`, aligned by mesh id.
    instance_meshes : (N,) int array
        Mesh id per instance; negative or out-of-range ids mean "no geometry".
    instance_transforms : (N*16,) float array
        Row-major 4x4 per instance.
    """
    mesh_count = len(meshes)
    ref_counts = count_mesh_references(instance_meshes, mesh_count)

    slot_counters = np.zeros(mesh_count, dtype=np.int64)
    batch_ids: Dict[int, int] = {}
    batches: List[RenderBatch] = []
    index_maps = IndexMaps()
    bounding = BoundingSphere.empty()
    singles: List[MeshSlice] = []
    single_nodes: List[int] = []
    skipped = 0

    for node, mesh_index in enumerate(np.asarray(instance_meshes).tolist()):
        if mesh_index < 0 or mesh_index >= mesh_count:
            if mesh_index >= mesh_count:
                skipped += 1
            continue
        mesh = meshes[mesh_index]
        if mesh is None:
            continue

        matrix = instance_matrix(instance_transforms, node)
        count = int(ref_counts[mesh_index])
        if count > 1:
            batch_id = batch_ids.get(mesh_index)
            if batch_id is None:
                batch_id = len(batches)
                batch_ids[mesh_index] = batch_id
                batches.append(
                    InstancedBatch(
                        batch_id=batch_id,
                        mesh_index=mesh_index,
                        mesh=mesh,
                        matrices=np.zeros((count, 4, 4), dtype=np.float32),
                    )
                )
            batch = batches[batch_id]
            slot = int(slot_counters[mesh_index])
            slot_counters[mesh_index] += 1
            batch.matrices[slot] = matrix
            index_maps._register(node, batch_id, slot)
        else:
            singles.append(mesh.transformed(matrix))
            single_nodes.append(node)

        bounding = bounding.union(mesh.bounding_sphere.apply_matrix(matrix))

    if singles:
        merged_mesh, triangle_starts = merge_mesh_slices(singles)
        merged = MergedBatch(
            batch_id=len(batches),
            mesh=merged_mesh,
            nodes=single_nodes,
            triangle_starts=triangle_starts,
        )
        batches.append(merged)
        index_maps.merged_batch_id = merged.batch_id
        for node in single_nodes:
            index_maps._register(node, merged.batch_id, 0)

    if skipped:
        logger.debug("Skipped %d instances referencing unknown meshes", skipped)
    logger.debug(
        "Composed %d instanced batches and %d merged meshes",
        len(batches) - (1 if singles else 0),
        len(singles),
    )
    return SceneGeometry(
        batches=batches,
        bounding_sphere=bounding,
        index_maps=index_maps,
        mesh_ref_counts=ref_counts,
    )
