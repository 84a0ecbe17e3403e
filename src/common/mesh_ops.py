"""
Mesh operation utilities.

Common mesh operations: welding, compaction, normals, statistics.
"""

import numpy as np
from typing import Dict, Any, Optional, Tuple
import logging

import trimesh
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial import cKDTree

logger = logging.getLogger(__name__)


def weld_vertices(
    vertices: np.ndarray,
    faces: np.ndarray,
    tolerance: float = 0.0
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Merge duplicate vertices and remap faces.

    Exact duplicates are always merged. With tolerance > 0, vertices closer
    than `tolerance` are merged as well (clusters via KD-tree pairs).

    Args:
        vertices: (N, 3) positions
        faces: (M, 3) indices into vertices
        tolerance: Merge distance

    Returns:
        Tuple of (welded_vertices, remapped_faces)
    """
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if len(vertices) == 0:
        return np.empty((0, 3)), faces

    unique, inverse = np.unique(vertices, axis=0, return_inverse=True)
    inverse = np.asarray(inverse).ravel()

    if tolerance > 0 and len(unique) > 1:
        tree = cKDTree(unique)
        pairs = tree.query_pairs(r=tolerance, output_type='ndarray')
        if len(pairs):
            n = len(unique)
            graph = coo_matrix(
                (np.ones(len(pairs), dtype=np.int8), (pairs[:, 0], pairs[:, 1])),
                shape=(n, n)
            )
            n_clusters, labels = connected_components(graph, directed=False)
            # First member of each cluster represents it
            first = np.full(n_clusters, n, dtype=np.int64)
            np.minimum.at(first, labels, np.arange(n))
            logger.debug(f"Tolerance weld merged {n - n_clusters} vertices")
            unique = unique[first]
            inverse = labels[inverse]

    return unique, inverse[faces]


def degenerate_face_mask(faces: np.ndarray) -> np.ndarray:
    """True for faces that reference the same vertex twice."""
    faces = np.asarray(faces).reshape(-1, 3)
    return (faces[:, 0] == faces[:, 1]) | (faces[:, 1] == faces[:, 2]) | (faces[:, 2] == faces[:, 0])


def unreferenced_vertices(n_vertices: int, faces: np.ndarray) -> np.ndarray:
    """Indices of vertices not used by any face."""
    used = np.zeros(n_vertices, dtype=bool)
    used[np.asarray(faces, dtype=np.int64).ravel()] = True
    return np.flatnonzero(~used)


def compact_vertices(vertices: np.ndarray, faces: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Drop unreferenced vertices, keeping the relative order of the rest."""
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    used = np.zeros(len(vertices), dtype=bool)
    used[faces.ravel()] = True
    remap = np.cumsum(used) - 1
    return vertices[used], remap[faces]


def face_normals(vertices: np.ndarray, faces: np.ndarray, normalize: bool = True) -> np.ndarray:
    """
    Right-handed face normals, (b - a) x (c - a).

    Zero-area faces get a zero normal.
    """
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    a = vertices[faces[:, 0]]
    normals = np.cross(vertices[faces[:, 1]] - a, vertices[faces[:, 2]] - a)
    if normalize:
        lengths = np.linalg.norm(normals, axis=1, keepdims=True)
        lengths[lengths == 0] = 1.0
        normals = normals / lengths
    return normals


def to_trimesh(vertices: np.ndarray, indices: np.ndarray, face_colors: Optional[np.ndarray] = None) -> "trimesh.Trimesh":
    """
    Wrap flat buffers in a Trimesh without letting trimesh reorder them.
    """
    mesh = trimesh.Trimesh(
        vertices=np.asarray(vertices, dtype=np.float64),
        faces=np.asarray(indices, dtype=np.int64).reshape(-1, 3),
        process=False
    )
    if face_colors is not None:
        mesh.visual.face_colors = face_colors
    return mesh


def compute_mesh_stats(mesh: "trimesh.Trimesh") -> Dict[str, Any]:
    """
    Compute comprehensive mesh statistics.

    Args:
        mesh: Trimesh mesh object

    Returns:
        Dictionary of mesh statistics
    """
    if len(mesh.faces) == 0:
        return {"n_vertices": len(mesh.vertices), "n_faces": 0}

    bounds = mesh.bounds
    extents = mesh.extents

    return {
        "n_vertices": len(mesh.vertices),
        "n_faces": len(mesh.faces),
        "bounds": {
            "min": bounds[0].tolist(),
            "max": bounds[1].tolist()
        },
        "extents": extents.tolist(),
        "max_extent": float(max(extents)),
        "surface_area": float(mesh.area),
        "is_watertight": bool(mesh.is_watertight),
        "is_winding_consistent": bool(mesh.is_winding_consistent),
        "euler_number": int(mesh.euler_number)
    }

