"""
Mesh I/O utilities.

Exports finished terrain meshes through trimesh (GLB / PLY / OBJ, picked by
file suffix) with a MeshMetadata JSON sidecar next to the mesh file.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import trimesh

from .config import MeshMetadata

logger = logging.getLogger(__name__)


def save_mesh(
    mesh: Union[trimesh.Trimesh, "TerrainResult"],
    path: Path,
    metadata: MeshMetadata
) -> Path:
    """
    Save mesh with metadata sidecar.

    Args:
        mesh: Trimesh, or a TerrainResult (exported with band colours)
        path: Output path; the suffix selects the format (.glb, .ply, .obj)
        metadata: Saved as a .json sidecar

    Returns:
        Path of the written mesh
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if not isinstance(mesh, trimesh.Trimesh):
        mesh = mesh.to_trimesh()

    mesh.export(str(path))
    logger.info(f"Saved mesh: {path} ({metadata.n_vertices} verts, {metadata.n_triangles} tris)")

    meta_path = path.with_suffix('.json')
    metadata.save(meta_path)
    logger.info(f"Saved metadata: {meta_path}")
    return path


def load_mesh(path: Path) -> Tuple[trimesh.Trimesh, Optional[MeshMetadata]]:
    """
    Load mesh and its metadata sidecar.

    Args:
        path: Path to mesh file

    Returns:
        Tuple of (mesh, metadata) - metadata may be None if not found
    """
    path = Path(path)
    mesh = trimesh.load(str(path), force='mesh', process=False)

    meta_path = path.with_suffix('.json')
    metadata = None
    if meta_path.exists():
        with open(meta_path) as f:
            metadata = MeshMetadata.from_dict(json.load(f))

    return mesh, metadata
