"""
Common modules shared by the terrain pipeline and the orchestrator.

Height Model:
- PLANAR: heights are Y coordinates
- SPHERICAL: heights are distances from the origin
"""

from .config import (
    TerrainType, TerrainConfig, SchedulerConfig, MeshMetadata,
    DEFAULT_CONFIG, DEFAULT_SCHEDULER_CONFIG,
)
from .io import save_mesh, load_mesh
from .mesh_ops import (
    weld_vertices, compact_vertices, face_normals, unreferenced_vertices,
    to_trimesh, compute_mesh_stats,
)

__all__ = [
    'TerrainType', 'TerrainConfig', 'SchedulerConfig', 'MeshMetadata',
    'DEFAULT_CONFIG', 'DEFAULT_SCHEDULER_CONFIG',
    'save_mesh', 'load_mesh',
    'weld_vertices', 'compact_vertices', 'face_normals', 'unreferenced_vertices',
    'to_trimesh', 'compute_mesh_stats',
]
