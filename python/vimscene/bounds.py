# python/vimscene/bounds.py
# Bounding spheres and boxes for mesh slices and the scene volume
# Exists so per-instance spheres can be transformed and unioned without a renderer
# RELEVANT FILES: python/vimscene/mesh_builder.py, python/vimscene/scene.py, tests/test_bounds.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box as ``(min, max)`` float64 triples."""
    min: Tuple[float, float, float]
    max: Tuple[float, float, float]

    @classmethod
    def from_positions(cls, positions: np.ndarray) -> "BoundingBox":
        pts = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if pts.shape[0] == 0:
            return cls((0.0, 0.0, 0.0), (0.0, 0.0, 0.0))
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        return cls(tuple(float(v) for v in lo), tuple(float(v) for v in hi))

    def center(self) -> Tuple[float, float, float]:
        return tuple(float(v) for v in (np.asarray(self.min) + np.asarray(self.max)) * 0.5)

    def size(self) -> Tuple[float, float, float]:
        return tuple(float(v) for v in np.asarray(self.max) - np.asarray(self.min))


@dataclass(frozen=True)
class BoundingSphere:
    """Sphere with ``radius < 0`` meaning empty."""
    center: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    radius: float = -1.0

    @classmethod
    def empty(cls) -> "BoundingSphere":
        return cls()

    @classmethod
    def from_positions(cls, positions: np.ndarray) -> "BoundingSphere":
        """Box-centred sphere reaching the farthest vertex."""
        pts = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if pts.shape[0] == 0:
            return cls.empty()
        center = (pts.min(axis=0) + pts.max(axis=0)) * 0.5
        radius = float(np.sqrt(np.max(np.sum((pts - center) ** 2, axis=1))))
        return cls(tuple(float(v) for v in center), radius)

    def is_empty(self) -> bool:
        return self.radius < 0

    def contains(self, other: "BoundingSphere", tolerance: float = 1e-9) -> bool:
        if other.is_empty():
            return True
        if self.is_empty():
            return False
        d = float(np.linalg.norm(np.asarray(other.center) - np.asarray(self.center)))
        return d + other.radius <= self.radius + tolerance * max(1.0, self.radius)

    def apply_matrix(self, matrix: np.ndarray) -> "BoundingSphere":
        """Transform by a row-major 4x4 acting on row vectors."""
        if self.is_empty():
            return self
        m = np.asarray(matrix, dtype=np.float64).reshape(4, 4)
        center = np.append(np.asarray(self.center, dtype=np.float64), 1.0) @ m
        w = center[3] if center[3] != 0 else 1.0
        scale = float(np.sqrt(np.max(np.sum(m[:3, :3] ** 2, axis=1))))
        return BoundingSphere(tuple(float(v) for v in center[:3] / w), self.radius * scale)

    def union(self, other: "BoundingSphere") -> "BoundingSphere":
        """Smallest sphere enclosing both spheres."""
        if other.is_empty():
            return self
        if self.is_empty():
            return other
        c1 = np.asarray(self.center, dtype=np.float64)
        c2 = np.asarray(other.center, dtype=np.float64)
        delta = c2 - c1
        d = float(np.linalg.norm(delta))
        if d + other.radius <= self.radius:
            return self
        if d + self.radius <= other.radius:
            return other
        radius = (d + self.radius + other.radius) * 0.5
        center = c1 + delta * ((radius - self.radius) / d)
        return BoundingSphere(tuple(float(v) for v in center), radius)
