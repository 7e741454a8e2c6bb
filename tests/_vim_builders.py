# tests/_vim_builders.py
"""Synthetic VIM files for tests, built with vimscene.writer."""

import numpy as np

from vimscene.writer import pack_vim, pack_vim_geometry


def translation(x: float, y: float, z: float) -> np.ndarray:
    """Row-major 4x4 with the translation in the last row."""
    m = np.eye(4, dtype=np.float32)
    m[3, :3] = (x, y, z)
    return m


QUAD = np.array(
    [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]],
    dtype=np.float32,
)


def build_geometry(instance_meshes, transforms=None) -> bytes:
    """Three meshes over 12 vertices.

    mesh 0: vertices 0-3, one submesh, no material (gray)
    mesh 1: vertices 4-7, one submesh, opaque red
    mesh 2: vertices 8-11, submesh A opaque blue, submesh B transparent
    """
    positions = np.concatenate([QUAD, QUAD + [0, 0, 1], QUAD + [0, 0, 2]])
    indices = np.array(
        [0, 1, 2, 0, 2, 3,
         4, 5, 6, 4, 6, 7,
         8, 9, 10,
         8, 10, 11],
        dtype=np.int32,
    )
    mesh_submeshes = [0, 1, 2]
    submesh_offsets = [0, 6, 12, 15]
    submesh_materials = [-1, 0, 1, 2]
    colors = np.array(
        [[1.0, 0.0, 0.0, 1.0],
         [0.0, 0.0, 1.0, 1.0],
         [0.0, 1.0, 0.0, 0.2]],
        dtype=np.float32,
    )
    if transforms is None:
        transforms = np.stack([translation(10.0 * i, 0.0, 0.0) for i in range(len(instance_meshes))])
    return pack_vim_geometry(
        positions=positions,
        indices=indices,
        mesh_submeshes=mesh_submeshes,
        submesh_index_offsets=submesh_offsets,
        submesh_materials=submesh_materials,
        material_colors=colors,
        instance_meshes=instance_meshes,
        instance_transforms=np.asarray(transforms, dtype=np.float32).reshape(-1),
    )


def build_vim(instance_meshes=(0, 0, 1, -1, 2)) -> bytes:
    entities = {
        "Vim.Node": {"index:Rvt.Element": [0, 1, -1, 2, 5]},
        "Rvt.Element": {
            "string:Name": [1, 2, 9],
            "numeric:Elevation": [0.0, 3.5, 7.0],
            "properties:Extra": b"\x01\x02\x03",
        },
    }
    strings = ["", "Wall", "Door"]
    return pack_vim(
        geometry=build_geometry(list(instance_meshes)),
        entities=entities,
        strings=strings,
        header="vim=0.9\nid=1234\ngenerator=tests\n",
        assets={"textures/a.png": b"\x89PNG"},
    )


