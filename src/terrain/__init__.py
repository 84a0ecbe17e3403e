"""
Terraced terrain generation pipeline.

Phases, each consuming one WorkingBuffer and returning a new one:
- shapes: base polygon or icosahedron
- fragment: recursive 4-way subdivision
- sculpt: fractal noise displacement
- terrace: slicing into flat caps and vertical walls
- jobs: scheduler running the phases one per tick
"""

from .buffers import WorkingBuffer, FACE_CAP, FACE_WALL
from .shapes import generate_shape, generate_planar_shape, generate_spherical_shape
from .fragment import fragment_mesh, subdivide_once
from .sculpt import sculpt_mesh
from .terrace import terrace_mesh, band_index, cap_height
from .jobs import GenerationPhase, GenerationJob, JobState, TerrainResult, TerrainScheduler
from .materials import resolve_band_materials

__all__ = [
    'WorkingBuffer', 'FACE_CAP', 'FACE_WALL',
    'generate_shape', 'generate_planar_shape', 'generate_spherical_shape',
    'fragment_mesh', 'subdivide_once',
    'sculpt_mesh',
    'terrace_mesh', 'band_index', 'cap_height',
    'GenerationPhase', 'GenerationJob', 'JobState', 'TerrainResult', 'TerrainScheduler',
    'resolve_band_materials',
]
