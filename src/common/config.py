"""
Configuration and constants for terraced terrain generation.

Height Model:
- PLANAR: heights are Y coordinates, base polygon lies in the XZ plane at y = 0
- SPHERICAL: heights are distances from the origin (radii)

Out-of-range parameters are clamped to the nearest valid value and never
rejected; every clamp is logged.
"""

from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any, List, Sequence
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

MIN_SIDES = 3
MAX_SIDES = 10
MIN_RADIUS = 0.1
FALLBACK_SEED = 1
FALLBACK_FREQUENCY = 0.01
DEFAULT_RELATIVE_TERRACES = (0.2, 0.4, 0.6, 0.8)


class TerrainType(Enum):
    """
    Base shape of the generated terrain.

    PLANAR: regular N-sided polygon, displaced along +Y
    SPHERICAL: icosphere, displaced along the radial direction
    """
    PLANAR = "planar"
    SPHERICAL = "spherical"


@dataclass
class MeshMetadata:
    """
    Metadata written next to every exported terrain mesh.
    """
    job_id: str
    terrain_type: str
    n_triangles: int
    n_vertices: int
    n_cap_faces: int
    n_wall_faces: int
    n_bands: int
    generation_params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "terrain_type": self.terrain_type,
            "n_triangles": self.n_triangles,
            "n_vertices": self.n_vertices,
            "n_cap_faces": self.n_cap_faces,
            "n_wall_faces": self.n_wall_faces,
            "n_bands": self.n_bands,
            "generation_params": self.generation_params
        }

    def save(self, path: Path) -> None:
        """Save metadata to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeshMetadata":
        return cls(**data)


@dataclass
class TerrainConfig:
    """
    Parameters describing one terrain generation job.

    terrace_heights are ABSOLUTE heights (Y for planar, radius for
    spherical). Use from_relative_terraces() to build them from 0-1
    fractions of the height range.

    The bare constructor applies no terracing: terrace_heights is empty and
    the mesh passes the terracer unchanged. The authoring default terraces
    (relative 0.2, 0.4, 0.6, 0.8) come with from_relative_terraces() and
    DEFAULT_CONFIG, which scale them to the configured height range.
    """

    terrain_type: TerrainType = TerrainType.PLANAR

    # Base shape
    sides: int = 6
    radius: float = 10.0

    # Height range
    min_height: float = 0.0
    max_height: float = 10.0

    # Recursive 4-way subdivision count
    depth: int = 3

    # Noise
    seed: int = 12345
    base_frequency: float = 0.1
    octaves: int = 4
    persistence: float = 0.5
    lacunarity: float = 2.0

    # Terraces (absolute heights, any order, duplicates allowed); empty = no terracing
    terrace_heights: List[float] = field(default_factory=list)

    @classmethod
    def from_relative_terraces(
        cls,
        relative_heights: Optional[Sequence[float]] = DEFAULT_RELATIVE_TERRACES,
        **kwargs
    ) -> "TerrainConfig":
        """
        Build a config whose terraces are fractions of the height range.

        Each relative value is clamped to [0, 1], the list is sorted and
        mapped to min_height + r * (max_height - min_height).
        """
        config = cls(**kwargs)
        relative = sorted(min(max(float(r), 0.0), 1.0) for r in (relative_heights or []))
        delta = config.max_height - config.min_height
        config.terrace_heights = [config.min_height + r * delta for r in relative]
        return config

    def validated(self) -> "TerrainConfig":
        """
        Return a copy with every parameter clamped into its valid range.

        Height range and terrace list are left as given: the sculptor and
        terracer own their own edge-case policy for those.
        """
        sides = int(self.sides)
        if not MIN_SIDES <= sides <= MAX_SIDES:
            clamped = min(max(sides, MIN_SIDES), MAX_SIDES)
            logger.warning(f"Side count {sides} out of range, clamped to {clamped}")
            sides = clamped

        radius = abs(float(self.radius))
        if radius < MIN_RADIUS:
            logger.warning(f"Radius {self.radius} too small, clamped to {MIN_RADIUS}")
            radius = MIN_RADIUS

        depth = int(self.depth)
        if depth < 0:
            logger.warning(f"Depth {depth} is negative, clamped to 0")
            depth = 0

        octaves = int(self.octaves)
        if octaves < 1:
            logger.warning(f"Octave count {octaves} treated as 1")
            octaves = 1

        frequency = float(self.base_frequency)
        if frequency <= 0.0:
            logger.warning(f"Base frequency {frequency} must be positive, using {FALLBACK_FREQUENCY}")
            frequency = FALLBACK_FREQUENCY

        return replace(
            self,
            sides=sides,
            radius=radius,
            depth=depth,
            octaves=octaves,
            base_frequency=frequency,
            min_height=float(self.min_height),
            max_height=float(self.max_height),
            terrace_heights=[float(h) for h in self.terrace_heights],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "terrain_type": self.terrain_type.value,
            "sides": self.sides,
            "radius": self.radius,
            "min_height": self.min_height,
            "max_height": self.max_height,
            "depth": self.depth,
            "seed": self.seed,
            "base_frequency": self.base_frequency,
            "octaves": self.octaves,
            "persistence": self.persistence,
            "lacunarity": self.lacunarity,
            "terrace_heights": list(self.terrace_heights)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TerrainConfig":
        data = dict(data)
        relative = data.pop("relative_terrace_heights", None)
        data["terrain_type"] = TerrainType(data.get("terrain_type", "planar"))
        if relative is not None and "terrace_heights" not in data:
            return cls.from_relative_terraces(relative, **data)
        return cls(**data)

    @classmethod
    def from_json(cls, path: Path) -> "TerrainConfig":
        """Load config from JSON file."""
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def save(self, path: Path) -> None:
        """Save config to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


@dataclass
class SchedulerConfig:
    """Resource limits shared by every job of a scheduler."""

    # Fragmentation stops before a level would exceed this many triangles
    max_triangles: int = 100000

    # Output directory used by run_all
    output_dir: Path = field(default_factory=lambda: Path("outputs"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_triangles": self.max_triangles,
            "output_dir": str(self.output_dir)
        }


# Global defaults
DEFAULT_CONFIG = TerrainConfig.from_relative_terraces()
DEFAULT_SCHEDULER_CONFIG = SchedulerConfig()
