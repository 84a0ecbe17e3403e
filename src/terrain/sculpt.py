"""
Noise Sculptor

Displaces every vertex along its up axis using fractal noise mapped into
[min_height, max_height]:
- PLANAR: 2-D noise sampled at (x, z), height added to y
- SPHERICAL: 3-D noise sampled at the unit direction, vertex moved to
  distance `height` along that direction
"""

import logging
from typing import Tuple

import numpy as np

from common.config import TerrainType, FALLBACK_SEED, FALLBACK_FREQUENCY
from .buffers import WorkingBuffer
from .noise import fractal_noise

logger = logging.getLogger(__name__)

# Spherical vertices never collapse onto the centre
MIN_SPHERICAL_HEIGHT = 0.01


def resolve_seed(seed: int) -> int:
    """Map any integer seed to a usable non-zero 32-bit seed."""
    resolved = int(seed) & 0xFFFFFFFF
    if resolved == 0:
        logger.warning(f"Seed {seed} is degenerate, using fallback seed {FALLBACK_SEED}")
        return FALLBACK_SEED
    return resolved


def resolve_height_range(min_height: float, max_height: float) -> Tuple[float, float]:
    """Swap an inverted range."""
    if min_height > max_height:
        logger.warning(f"Inverted height range ({min_height}, {max_height}), swapping")
        return float(max_height), float(min_height)
    return float(min_height), float(max_height)


def sample_heights(
    vertices: np.ndarray,
    terrain_type: TerrainType,
    seed: int,
    base_frequency: float,
    octaves: int,
    persistence: float,
    lacunarity: float,
    min_height: float,
    max_height: float
) -> np.ndarray:
    """
    Absolute target height per vertex.

    Returns:
        (N,) heights inside [min_height, max_height] after swap-correction
    """
    min_height, max_height = resolve_height_range(min_height, max_height)
    octaves = max(1, int(octaves))
    if base_frequency <= 0:
        base_frequency = FALLBACK_FREQUENCY

    if terrain_type == TerrainType.SPHERICAL:
        norms = np.linalg.norm(vertices, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        coords = vertices / norms
    else:
        coords = vertices[:, [0, 2]]

    value = fractal_noise(
        coords,
        seed=resolve_seed(seed),
        base_frequency=base_frequency,
        octaves=octaves,
        persistence=persistence,
        lacunarity=lacunarity,
    )

    normalized = np.clip(value * 0.5 + 0.5, 0.0, 1.0)
    heights = min_height + normalized * (max_height - min_height)
    return np.clip(heights, min_height, max_height)


def sculpt_mesh(
    buffer: WorkingBuffer,
    terrain_type: TerrainType,
    seed: int = 12345,
    base_frequency: float = 0.1,
    octaves: int = 4,
    persistence: float = 0.5,
    lacunarity: float = 2.0,
    min_height: float = 0.0,
    max_height: float = 10.0
) -> WorkingBuffer:
    """
    Apply noise displacement; topology is unchanged.

    Returns:
        New buffer with displaced vertices and the same indices
    """
    result = buffer.copy()
    if result.n_vertices == 0:
        return result

    heights = sample_heights(
        result.vertices, terrain_type, seed, base_frequency, octaves,
        persistence, lacunarity, min_height, max_height,
    )

    if terrain_type == TerrainType.SPHERICAL:
        heights = np.maximum(heights, MIN_SPHERICAL_HEIGHT)
        norms = np.linalg.norm(result.vertices, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        result.vertices = result.vertices / norms * heights[:, None]
    else:
        result.vertices[:, 1] += heights

    logger.debug(
        f"Sculpted {result.n_vertices} verts, height range "
        f"[{heights.min():.3f}, {heights.max():.3f}]"
    )
    return result
