"""
Mesh Fragmenter

Recursive 4-way triangle subdivision with shared edge midpoints.

Each pass builds an edge table keyed by the canonical (sorted) vertex index
pair, so a midpoint shared by two neighbouring triangles is created once and
the mesh stays watertight. The table lives for one pass only.

Triangle count grows as 4^depth; a pass that would exceed max_triangles is
skipped and the mesh is returned at the last depth that fit.
"""

import logging
from typing import Optional

import numpy as np

from common.config import TerrainType
from .buffers import WorkingBuffer

logger = logging.getLogger(__name__)


def subdivide_once(buffer: WorkingBuffer, radius: Optional[float] = None) -> WorkingBuffer:
    """
    Split every triangle into 4 using welded edge midpoints.

    Args:
        buffer: Input mesh
        radius: If given, midpoints are projected onto the sphere of this radius

    Returns:
        New buffer; original vertices keep their indices, midpoints are appended
    """
    tris = buffer.triangles
    n_tris = len(tris)
    if n_tris == 0:
        return buffer.copy()

    vertices = buffer.vertices
    a, b, c = tris[:, 0], tris[:, 1], tris[:, 2]

    # (M, 3, 2): edges ab, bc, ca
    edges = np.stack([
        np.column_stack([a, b]),
        np.column_stack([b, c]),
        np.column_stack([c, a]),
    ], axis=1)
    keys = np.sort(edges, axis=2).reshape(-1, 2)

    unique_edges, inverse = np.unique(keys, axis=0, return_inverse=True)
    inverse = np.asarray(inverse).reshape(n_tris, 3)

    midpoints = 0.5 * (vertices[unique_edges[:, 0]] + vertices[unique_edges[:, 1]])
    if radius is not None:
        norms = np.linalg.norm(midpoints, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        midpoints = midpoints / norms * radius

    offset = len(vertices)
    m_ab = inverse[:, 0] + offset
    m_bc = inverse[:, 1] + offset
    m_ca = inverse[:, 2] + offset

    # Same winding as the parent triangle
    faces = np.stack([
        np.column_stack([a, m_ab, m_ca]),
        np.column_stack([m_ab, b, m_bc]),
        np.column_stack([m_ca, m_bc, c]),
        np.column_stack([m_ab, m_bc, m_ca]),
    ], axis=1).reshape(-1, 3)

    return WorkingBuffer(np.vstack([vertices, midpoints]), faces.ravel())


def fragment_mesh(
    buffer: WorkingBuffer,
    depth: int,
    terrain_type: TerrainType = TerrainType.PLANAR,
    radius: Optional[float] = None,
    max_triangles: Optional[int] = 100000
) -> WorkingBuffer:
    """
    Apply `depth` subdivision passes.

    Args:
        buffer: Seed mesh
        depth: Number of passes (negative treated as 0)
        terrain_type: SPHERICAL re-projects midpoints onto the sphere
        radius: Sphere radius; defaults to the first vertex's distance from origin
        max_triangles: Growth bound, None disables it

    Returns:
        Refined mesh
    """
    depth = max(0, int(depth))
    result = buffer.copy()

    sphere_radius = None
    if terrain_type == TerrainType.SPHERICAL and result.n_vertices:
        sphere_radius = float(radius) if radius is not None else float(np.linalg.norm(result.vertices[0]))

    for level in range(depth):
        projected = result.n_triangles * 4
        if max_triangles is not None and projected > max_triangles:
            logger.warning(
                f"Fragmentation stopped at depth {level} of {depth}: "
                f"{projected} triangles would exceed limit of {max_triangles}"
            )
            break
        result = subdivide_once(result, sphere_radius)

    logger.debug(f"Fragmented to {result.n_vertices} verts, {result.n_triangles} tris")
    return result
