"""
Working buffers passed between generation phases.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

FACE_CAP = 0
FACE_WALL = 1


@dataclass
class WorkingBuffer:
    """
    Vertex positions plus flat triangle indices owned by one job.

    vertices: (N, 3) float64
    indices: (3 * M,) int64, every entry < N
    face_bands / face_kinds: optional (M,) arrays set by the terracer
    """
    vertices: np.ndarray
    indices: np.ndarray
    face_bands: Optional[np.ndarray] = None
    face_kinds: Optional[np.ndarray] = None

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.indices = np.asarray(self.indices, dtype=np.int64).ravel()

    @classmethod
    def empty(cls) -> "WorkingBuffer":
        return cls(np.empty((0, 3)), np.empty(0, dtype=np.int64))

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_triangles(self) -> int:
        return len(self.indices) // 3

    @property
    def triangles(self) -> np.ndarray:
        """Indices viewed as (M, 3)."""
        return self.indices.reshape(-1, 3)

    @property
    def released(self) -> bool:
        return self.vertices is None

    def validate(self) -> "WorkingBuffer":
        """Raise ValueError if the index/vertex invariants are broken."""
        if len(self.indices) % 3 != 0:
            raise ValueError(f"Index count {len(self.indices)} is not a multiple of 3")
        if len(self.indices) and (self.indices.min() < 0 or self.indices.max() >= self.n_vertices):
            raise ValueError(
                f"Index out of range: [{self.indices.min()}, {self.indices.max()}] "
                f"for {self.n_vertices} vertices"
            )
        for name in ("face_bands", "face_kinds"):
            arr = getattr(self, name)
            if arr is not None and len(arr) != self.n_triangles:
                raise ValueError(f"{name} has {len(arr)} entries for {self.n_triangles} triangles")
        return self

    def copy(self) -> "WorkingBuffer":
        return WorkingBuffer(
            vertices=self.vertices.copy(),
            indices=self.indices.copy(),
            face_bands=None if self.face_bands is None else self.face_bands.copy(),
            face_kinds=None if self.face_kinds is None else self.face_kinds.copy(),
        )

    def release(self) -> None:
        """Drop the arrays so nothing keeps them alive through this buffer."""
        self.vertices = None
        self.indices = None
        self.face_bands = None
        self.face_kinds = None
