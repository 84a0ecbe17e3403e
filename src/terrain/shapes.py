"""
Shape Generator

Builds the seed mesh for a job:
- PLANAR: regular N-gon in the XZ plane, triangulated as a fan from vertex 0
- SPHERICAL: unit icosahedron scaled to the radius

Invalid input is clamped, never rejected.
"""

import logging

import numpy as np

from common.config import TerrainType, MIN_SIDES, MAX_SIDES, MIN_RADIUS
from .buffers import WorkingBuffer

logger = logging.getLogger(__name__)

_T = (1.0 + 5.0 ** 0.5) / 2.0

ICOSAHEDRON_VERTICES = np.array([
    [_T, 1.0, 0.0],
    [0.0, _T, -1.0],
    [0.0, _T, 1.0],
    [1.0, 0.0, -_T],
    [1.0, 0.0, _T],
    [_T, -1.0, 0.0],
    [-1.0, 0.0, -_T],
    [-_T, 1.0, 0.0],
    [-1.0, 0.0, _T],
    [0.0, -_T, -1.0],
    [0.0, -_T, 1.0],
    [-_T, -1.0, 0.0],
], dtype=np.float64)

# Counter-clockwise seen from outside
ICOSAHEDRON_FACES = np.array([
    [0, 1, 2], [0, 3, 1], [0, 2, 4], [3, 0, 5], [0, 4, 5],
    [1, 3, 6], [1, 7, 2], [7, 1, 6], [4, 2, 8], [7, 8, 2],
    [9, 3, 5], [6, 3, 9], [5, 4, 10], [4, 8, 10], [9, 5, 10],
    [7, 6, 11], [7, 11, 8], [11, 6, 9], [8, 11, 10], [10, 11, 9],
], dtype=np.int64)


def clamp_sides(sides: int) -> int:
    return int(min(max(int(sides), MIN_SIDES), MAX_SIDES))


def clamp_radius(radius: float) -> float:
    return max(MIN_RADIUS, abs(float(radius)))


def generate_planar_shape(sides: int, radius: float) -> WorkingBuffer:
    """
    Regular polygon on a circle of `radius` at y = 0.

    Vertex i sits at angle 2*pi*i/sides measured from +X toward +Z.
    Fan triangles (0, i+1, i) are wound so normals point along +Y.
    """
    sides = clamp_sides(sides)
    radius = clamp_radius(radius)

    angles = 2.0 * np.pi * np.arange(sides) / sides
    vertices = np.column_stack([
        np.cos(angles) * radius,
        np.zeros(sides),
        np.sin(angles) * radius,
    ])

    i = np.arange(1, sides - 1)
    faces = np.column_stack([np.zeros_like(i), i + 1, i])

    return WorkingBuffer(vertices, faces.ravel())


def generate_spherical_shape(radius: float) -> WorkingBuffer:
    """Icosahedron (12 vertices, 20 faces) with every vertex at `radius`."""
    radius = clamp_radius(radius)
    unit = ICOSAHEDRON_VERTICES / np.linalg.norm(ICOSAHEDRON_VERTICES, axis=1, keepdims=True)
    return WorkingBuffer(unit * radius, ICOSAHEDRON_FACES.ravel().copy())


def generate_shape(terrain_type: TerrainType, sides: int = 6, radius: float = 10.0) -> WorkingBuffer:
    """Dispatch on terrain type; `sides` is ignored for spherical shapes."""
    if terrain_type == TerrainType.SPHERICAL:
        buffer = generate_spherical_shape(radius)
    else:
        buffer = generate_planar_shape(sides, radius)

    logger.debug(f"Shape {terrain_type.value}: {buffer.n_vertices} verts, {buffer.n_triangles} tris")
    return buffer
