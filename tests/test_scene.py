# tests/test_scene.py
"""Reference counting, instancing/merge partition and picking tables."""

import numpy as np

from vimscene.bfast import parse_bfast
from vimscene.g3d import VimG3d, construct_g3d
from vimscene.mesh_builder import MeshSlice, allocate_geometry
from vimscene.scene import (
    InstancedBatch,
    MergedBatch,
    compose_scene,
    count_mesh_references,
    merge_mesh_slices,
)

from _vim_builders import build_geometry, translation


def _compose(instance_meshes, transforms=None):
    g3d = VimG3d(construct_g3d(parse_bfast(build_geometry(instance_meshes, transforms))))
    g3d.validate()
    meshes = allocate_geometry(g3d)
    return g3d, meshes, compose_scene(meshes, g3d.instance_meshes, g3d.instance_transforms)


def _triangle(offset=0.0):
    return MeshSlice(
        positions=np.array([0, 0, 0, 1, 0, 0, 0, 1, 0], dtype=np.float32) + offset,
        indices=np.array([0, 1, 2], dtype=np.uint32),
        colors=np.ones(9, dtype=np.float32),
    )


class TestReferenceCounting:

    def test_counts(self):
        counts = count_mesh_references(np.array([0, 0, 1, -1, 2, 0]), 3)
        np.testing.assert_array_equal(counts, [3, 1, 1])

    def test_sum_matches_live_instances(self):
        instance_meshes = np.array([2, -1, 0, 0, -5, 1, 1, 1])
        counts = count_mesh_references(instance_meshes, 3)
        assert counts.sum() == np.count_nonzero(instance_meshes >= 0)

    def test_out_of_range_ignored(self):
        np.testing.assert_array_equal(count_mesh_references(np.array([0, 9]), 2), [1, 0])


class TestComposeScene:

    def test_instanced_and_merged(self):
        _, _, scene = _compose([0, 0, 1])
        instanced = scene.instanced_batches
        assert len(instanced) == 1
        batch = instanced[0]
        assert batch.mesh_index == 0
        assert batch.count == 2
        np.testing.assert_allclose(batch.matrices[0], translation(0, 0, 0))
        np.testing.assert_allclose(batch.matrices[1], translation(10, 0, 0))

        merged = scene.merged_batch
        assert isinstance(merged, MergedBatch)
        assert merged.nodes == [2]
        assert merged.count == 1
        np.testing.assert_allclose(merged.matrices[0], np.eye(4))
        # mesh 1 baked through translation(20, 0, 0)
        np.testing.assert_allclose(merged.mesh.positions.reshape(-1, 3)[0], [20, 0, 1])
        assert scene.batches[-1] is merged

    def test_index_maps(self):
        _, _, scene = _compose([0, 0, 1])
        maps = scene.index_maps
        assert maps.instance_of(0) == (0, 0)
        assert maps.instance_of(1) == (0, 1)
        assert maps.instance_of(2) == (1, 0)
        assert list(maps.batch_to_nodes.items()) == [(0, [0, 1]), (1, [2])]
        assert maps.node_at(0, 1) == 1
        assert maps.node_at(0, 5) is None
        assert scene.node_at(1, 0, triangle=0) == 2

    def test_merged_slots_resolve_by_triangle(self):
        _, _, scene = _compose([0, 0, 1, 2])
        merged = scene.merged_batch
        assert merged.nodes == [2, 3]
        maps = scene.index_maps
        assert maps.merged_batch_id == merged.batch_id
        assert maps.instance_of(3) == (merged.batch_id, 0)
        assert maps.node_at(merged.batch_id, 0) is None
        assert maps.node_at(merged.batch_id, 1) is None
        assert scene.node_at(merged.batch_id, 0) is None
        assert scene.node_at(merged.batch_id, 0, triangle=0) == 2
        assert scene.node_at(merged.batch_id, 0, triangle=2) == 3

    def test_sentinel_instance_contributes_nothing(self):
        far = translation(500, 0, 0)
        _, _, with_sentinel = _compose([0, -1, 0], np.stack([translation(0, 0, 0), far, translation(3, 0, 0)]))
        _, _, without = _compose([0, 0], np.stack([translation(0, 0, 0), translation(3, 0, 0)]))
        assert with_sentinel.index_maps.instance_of(1) is None
        assert with_sentinel.bounding_sphere == without.bounding_sphere
        np.testing.assert_array_equal(with_sentinel.mesh_ref_counts, without.mesh_ref_counts)
        assert with_sentinel.merged_batch is None

    def test_partition(self):
        instance_meshes = [0, 1, 0, 2, -1, 1]
        g3d, meshes, scene = _compose(instance_meshes)
        live = [i for i, m in enumerate(instance_meshes) if m >= 0 and meshes[m] is not None]
        instanced_nodes = [
            n for b in scene.batches if isinstance(b, InstancedBatch)
            for n in scene.index_maps.batch_to_nodes[b.batch_id]
        ]
        merged = scene.merged_batch
        assert merged is not None
        merged_nodes = merged.nodes
        assert sorted(instanced_nodes + merged_nodes) == live
        assert not set(instanced_nodes) & set(merged_nodes)
        assert set(scene.index_maps.node_to_instance) == set(live)

    def test_slot_order_follows_first_occurrence(self):
        _, _, scene = _compose([1, 0, 1, 0, 1])
        first = scene.batches[0]
        assert first.mesh_index == 1
        assert scene.index_maps.batch_to_nodes[first.batch_id] == [0, 2, 4]
        assert scene.batches[1].mesh_index == 0

    def test_deterministic(self):
        a = _compose([1, 0, 1, 2])[2]
        b = _compose([1, 0, 1, 2])[2]
        assert a.index_maps == b.index_maps
        assert a.bounding_sphere == b.bounding_sphere

    def test_bounding_sphere_covers_instances(self):
        _, meshes, scene = _compose([0, 0, 1])
        for node, (mesh_index, x) in enumerate([(0, 0.0), (0, 10.0), (1, 20.0)]):
            sphere = meshes[mesh_index].bounding_sphere.apply_matrix(translation(x, 0, 0))
            assert scene.bounding_sphere.contains(sphere)

    def test_out_of_range_mesh_skipped(self):
        meshes = [_triangle()]
        transforms = np.tile(np.eye(4, dtype=np.float32).reshape(-1), 2)
        scene = compose_scene(meshes, np.array([0, 7], dtype=np.int32), transforms)
        assert scene.index_maps.instance_of(1) is None
        assert scene.merged_batch.nodes == [0]

    def test_null_mesh_skipped(self):
        transforms = np.tile(np.eye(4, dtype=np.float32).reshape(-1), 2)
        scene = compose_scene([None], np.array([0, 0], dtype=np.int32), transforms)
        assert scene.batches == []
        assert scene.bounding_sphere.is_empty()
        np.testing.assert_array_equal(scene.mesh_ref_counts, [2])


class TestMerge:

    def test_merge_rebases_indices(self):
        merged, starts = merge_mesh_slices([_triangle(), _triangle(5.0)])
        np.testing.assert_array_equal(merged.indices, [0, 1, 2, 3, 4, 5])
        np.testing.assert_array_equal(starts, [0, 1])
        assert merged.vertex_count == 6
        assert merged.colors.size == 18

    def test_node_for_triangle(self):
        merged_mesh, starts = merge_mesh_slices([_triangle(), _triangle(), _triangle()])
        batch = MergedBatch(batch_id=0, mesh=merged_mesh, nodes=[4, 9, 11], triangle_starts=starts)
        assert batch.node_for_triangle(0) == 4
        assert batch.node_for_triangle(2) == 11
        assert batch.node_for_triangle(3) is None
