# python/vimscene/g3d.py
# G3D geometry attributes: descriptor parsing, typed views, and validation
# Exists so mesh building can slice index/position ranges without re-checking bounds
# RELEVANT FILES: python/vimscene/bfast.py, python/vimscene/mesh_builder.py, tests/test_g3d.py
"""G3D geometry schema decoded from a BFast container.

Buffer 0 is the ``meta`` string; every other buffer is an attribute named
``g3d:<association>:<semantic>:<index>:<data_type>:<data_arity>``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .bfast import BFast
from .errors import InsufficientBuffers, InvalidGeometry

logger = logging.getLogger(__name__)

ASSOCIATIONS = (
    "all",
    "corner",
    "face",
    "edge",
    "vertex",
    "instance",
    "shape",
    "shapevertex",
    "material",
    "mesh",
    "submesh",
)

DATA_TYPES: Dict[str, str] = {
    "int8": "<i1",
    "uint8": "<u1",
    "int16": "<i2",
    "uint16": "<u2",
    "int32": "<i4",
    "uint32": "<u4",
    "int64": "<i8",
    "uint64": "<u8",
    "float32": "<f4",
    "float64": "<f8",
}

POSITION = "g3d:vertex:position:0:float32:3"
INDEX = "g3d:corner:index:0:int32:1"
MESH_SUBMESH_OFFSET = "g3d:mesh:submeshoffset:0:int32:1"
SUBMESH_INDEX_OFFSET = "g3d:submesh:indexoffset:0:int32:1"
SUBMESH_MATERIAL = "g3d:submesh:material:0:int32:1"
MATERIAL_COLOR = "g3d:material:color:0:float32:4"
INSTANCE_MESH = "g3d:instance:mesh:0:int32:1"
INSTANCE_TRANSFORM = "g3d:instance:transform:0:float32:16"

NO_MATERIAL = -1
MATRIX_ARITY = 16
POSITION_ARITY = 3


@dataclass(frozen=True)
class AttributeDescriptor:
    """Structured form of a G3D attribute name."""
    association: str
    semantic: str
    index: int
    data_type: str
    data_arity: int

    @classmethod
    def from_string(cls, text: str) -> "AttributeDescriptor":
        parts = text.split(":")
        if len(parts) != 6 or parts[0] != "g3d":
            raise InvalidGeometry(f"Invalid G3D attribute descriptor: {text!r}")
        _, association, semantic, index, data_type, data_arity = parts
        if association not in ASSOCIATIONS:
            raise InvalidGeometry(f"Unknown G3D association '{association}' in {text!r}")
        if data_type not in DATA_TYPES:
            raise InvalidGeometry(f"Unknown G3D data type '{data_type}' in {text!r}")
        try:
            idx = int(index)
            arity = int(data_arity)
        except ValueError as e:
            raise InvalidGeometry(f"Non-integer index or arity in {text!r}") from e
        if arity <= 0:
            raise InvalidGeometry(f"Data arity must be > 0 in {text!r}")
        return cls(association, semantic, idx, data_type, arity)

    @property
    def description(self) -> str:
        return (
            f"g3d:{self.association}:{self.semantic}:{self.index}"
            f":{self.data_type}:{self.data_arity}"
        )

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(DATA_TYPES[self.data_type])

    def matches(self, other: "AttributeDescriptor") -> bool:
        """Same association, semantic and index regardless of storage type."""
        return (
            self.association == other.association
            and self.semantic == other.semantic
            and self.index == other.index
        )


@dataclass(frozen=True)
class Attribute:
    """A flat typed view over one attribute buffer (zero-copy)."""
    descriptor: AttributeDescriptor
    data: np.ndarray = field(repr=False)

    @classmethod
    def from_buffer(cls, name: str, buffer: np.ndarray) -> "Attribute":
        descriptor = AttributeDescriptor.from_string(name)
        stride = descriptor.dtype.itemsize * descriptor.data_arity
        if buffer.size % stride != 0:
            raise InvalidGeometry(
                f"Attribute {name} has {buffer.size} bytes, not a multiple of {stride}"
            )
        return cls(descriptor, np.frombuffer(buffer, dtype=descriptor.dtype))

    @property
    def count(self) -> int:
        return int(self.data.size // self.descriptor.data_arity)


@dataclass(frozen=True)
class G3d:
    """Generic G3D document: meta text plus ordered attributes."""
    meta: str
    attributes: List[Attribute]

    def find(self, description: str) -> Optional[Attribute]:
        wanted = AttributeDescriptor.from_string(description)
        for attribute in self.attributes:
            if attribute.descriptor.matches(wanted):
                return attribute
        return None


def construct_g3d(bfast: BFast) -> G3d:
    """Build a :class:`G3d` from its container; buffer 0 must be ``meta``."""
    if len(bfast.buffers) < 2:
        raise InsufficientBuffers("G3D requires at least two BFast buffers")
    if bfast.names[0] != "meta":
        raise InvalidGeometry(
            f"First G3D buffer must be named 'meta', but was named: {bfast.names[0]}"
        )
    try:
        meta = bfast.buffers[0].tobytes().decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidGeometry(f"G3D meta is not valid UTF-8: {e}") from e

    attributes: List[Attribute] = []
    for i, (name, buffer) in enumerate(zip(bfast.names[1:], bfast.buffers[1:])):
        attribute = Attribute.from_buffer(name, buffer)
        attributes.append(attribute)
        logger.debug("Attribute %d = %s", i, attribute.descriptor.description)
    return G3d(meta, attributes)


def _int_array(g3d: G3d, description: str, default: Optional[np.ndarray] = None) -> np.ndarray:
    attribute = g3d.find(description)
    if attribute is None:
        if default is None:
            raise InvalidGeometry(f"Missing required G3D attribute {description}")
        return default
    if attribute.descriptor.dtype.kind not in "iu":
        raise InvalidGeometry(f"Attribute {description} must be integer typed")
    return attribute.data


class VimG3d:
    """The VIM-specific view of a G3D: named geometry arrays plus range helpers.

    Every array is a read-only view into the container bytes. Call
    :meth:`validate` before slicing; :func:`vimscene.vim.construct_vim`
    does this for you.
    """

    def __init__(self, g3d: G3d):
        self.g3d = g3d
        self.meta = g3d.meta

        position = g3d.find(POSITION)
        if position is None:
            raise InvalidGeometry(f"Missing required G3D attribute {POSITION}")
        if position.descriptor.dtype.kind != "f" or position.descriptor.data_arity != POSITION_ARITY:
            raise InvalidGeometry("Vertex positions must be float with arity 3")
        self.positions: np.ndarray = position.data

        empty = np.zeros(0, dtype=np.int32)
        self.indices: np.ndarray = _int_array(g3d, INDEX)
        self.mesh_submeshes: np.ndarray = _int_array(g3d, MESH_SUBMESH_OFFSET, empty)
        self.submesh_index_offset: np.ndarray = _int_array(g3d, SUBMESH_INDEX_OFFSET, empty)
        self.submesh_material: np.ndarray = _int_array(
            g3d,
            SUBMESH_MATERIAL,
            np.full(self.submesh_index_offset.shape[0], NO_MATERIAL, dtype=np.int32),
        )
        self.instance_meshes: np.ndarray = _int_array(g3d, INSTANCE_MESH, empty)

        colors = g3d.find(MATERIAL_COLOR)
        if colors is None:
            self.color_arity = 4
            self.material_colors = np.zeros(0, dtype=np.float32)
        else:
            self.color_arity = colors.descriptor.data_arity
            self.material_colors = colors.data

        transforms = g3d.find(INSTANCE_TRANSFORM)
        if transforms is None:
            self.instance_transforms = np.zeros(0, dtype=np.float32)
        else:
            if transforms.descriptor.data_arity != MATRIX_ARITY:
                raise InvalidGeometry("Instance transforms must have arity 16")
            self.instance_transforms = transforms.data
        self.matrix_arity = MATRIX_ARITY

    @property
    def vertex_count(self) -> int:
        return int(self.positions.size // POSITION_ARITY)

    @property
    def mesh_count(self) -> int:
        return int(self.mesh_submeshes.shape[0])

    @property
    def submesh_count(self) -> int:
        return int(self.submesh_index_offset.shape[0])

    @property
    def material_count(self) -> int:
        return int(self.material_colors.size // self.color_arity)

    @property
    def instance_count(self) -> int:
        return int(self.instance_meshes.shape[0])

    def get_mesh_submesh_range(self, mesh: int) -> Tuple[int, int]:
        start = int(self.mesh_submeshes[mesh])
        if mesh + 1 < self.mesh_count:
            end = int(self.mesh_submeshes[mesh + 1])
        else:
            end = self.submesh_count
        return start, end

    def get_submesh_index_range(self, submesh: int) -> Tuple[int, int]:
        start = int(self.submesh_index_offset[submesh])
        if submesh + 1 < self.submesh_count:
            end = int(self.submesh_index_offset[submesh + 1])
        else:
            end = int(self.indices.shape[0])
        return start, end

    def get_instance_matrix(self, instance: int) -> np.ndarray:
        """Row-major 4x4 transform of ``instance`` (a view)."""
        start = instance * MATRIX_ARITY
        return self.instance_transforms[start:start + MATRIX_ARITY].reshape(4, 4)

    def validate(self) -> None:
        """Check every index and range so downstream slicing cannot go out of bounds.

        Raises
        ------
        InvalidGeometry
            On the first violation found.
        """
        vertex_count = self.vertex_count
        index_count = int(self.indices.shape[0])

        if self.indices.size:
            lo = int(self.indices.min())
            hi = int(self.indices.max())
            if lo < 0 or hi >= vertex_count:
                raise InvalidGeometry(
                    f"Vertex index out of range [{lo}, {hi}] for {vertex_count} vertices"
                )

        _check_offsets(self.submesh_index_offset, index_count, "Submesh index offsets")
        _check_offsets(self.mesh_submeshes, self.submesh_count, "Mesh submesh offsets")
        if self.mesh_count and self.submesh_count and int(self.mesh_submeshes[0]) != 0:
            raise InvalidGeometry("First mesh must start at submesh 0")

        if self.submesh_material.shape[0] != self.submesh_count:
            raise InvalidGeometry(
                f"Submesh material count {self.submesh_material.shape[0]} "
                f"does not match submesh count {self.submesh_count}"
            )
        if self.material_colors.size % self.color_arity != 0:
            raise InvalidGeometry("Material color buffer is not a multiple of its arity")
        if self.submesh_material.size:
            materials = self.submesh_material
            bad = (materials != NO_MATERIAL) & ((materials < 0) | (materials >= self.material_count))
            if np.any(bad):
                first = int(np.flatnonzero(bad)[0])
                raise InvalidGeometry(
                    f"Submesh {first} references material {int(materials[first])} "
                    f"but only {self.material_count} materials exist"
                )

        if self.instance_transforms.size != self.instance_count * MATRIX_ARITY:
            raise InvalidGeometry(
                f"Expected {self.instance_count} instance transforms, "
                f"found {self.instance_transforms.size // MATRIX_ARITY}"
            )


def _check_offsets(offsets: np.ndarray, limit: int, label: str) -> None:
    if offsets.size == 0:
        return
    if int(offsets.min()) < 0 or int(offsets.max()) > limit:
        raise InvalidGeometry(f"{label} fall outside [0, {limit}]")
    if offsets.size > 1 and np.any(np.diff(offsets.astype(np.int64)) < 0):
        raise InvalidGeometry(f"{label} are not monotonically non-decreasing")
