"""
Terracer

Slices a sculpted mesh against a list of terrace heights and flattens every
piece onto its terrace, joining neighbouring terraces with vertical walls.

Band model (thresholds sorted ascending, duplicates removed):
- band(h) = number of thresholds <= h, so a height lying exactly on a
  threshold belongs to the upper band
- band b is flattened to thresholds[max(b - 1, 0)]; bands 0 and 1 share the
  lowest terrace, so the lowest threshold never produces a wall
- the terrace level of a band is max(b - 1, 0) and is what every output face
  is stamped with

Per triangle:
1. All vertices on one level: emitted flattened to that level
2. Otherwise the triangle is clipped into one convex fragment per level in
   its span, each fragment fan-triangulated with the original winding and
   flattened to its level
3. For every threshold crossed inside the triangle a wall quad joins the
   crossing segment at the lower level to the same segment at the upper
   level, wound so its normal points toward the lower side

Crossing points are computed in a canonical edge orientation so both
triangles sharing an edge produce bit-identical points, which are then
welded.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from common.config import TerrainType
from common.mesh_ops import weld_vertices, degenerate_face_mask, compact_vertices
from .buffers import WorkingBuffer, FACE_CAP, FACE_WALL

logger = logging.getLogger(__name__)

WELD_TOLERANCE = 1e-9


def prepare_thresholds(terrace_heights: Optional[Sequence[float]]) -> np.ndarray:
    """Sorted, de-duplicated, finite thresholds."""
    if terrace_heights is None:
        return np.empty(0)
    values = np.asarray(list(terrace_heights), dtype=np.float64).ravel()
    values = values[np.isfinite(values)]
    return np.unique(values)


def band_index(heights: np.ndarray, thresholds: np.ndarray) -> np.ndarray:
    """Number of thresholds <= h for every height."""
    return np.searchsorted(thresholds, heights, side='right')


def terrace_level(bands: np.ndarray) -> np.ndarray:
    """Index of the threshold a band is flattened onto."""
    return np.maximum(np.asarray(bands) - 1, 0)


def cap_height(bands: np.ndarray, thresholds: np.ndarray) -> np.ndarray:
    """Flattening height of each band."""
    return thresholds[terrace_level(bands)]


def vertex_heights(vertices: np.ndarray, terrain_type: TerrainType) -> np.ndarray:
    if terrain_type == TerrainType.SPHERICAL:
        return np.linalg.norm(vertices, axis=-1)
    return vertices[..., 1].copy()


def set_heights(vertices: np.ndarray, heights, terrain_type: TerrainType) -> np.ndarray:
    """Move vertices along their up axis so they sit at `heights`."""
    vertices = np.array(vertices, dtype=np.float64)
    if terrain_type == TerrainType.SPHERICAL:
        norms = np.linalg.norm(vertices, axis=-1, keepdims=True)
        norms[norms == 0] = 1.0
        return vertices / norms * np.asarray(heights, dtype=np.float64)[..., None]
    vertices[..., 1] = heights
    return vertices


class _TriangleSlicer:
    """Per-triangle slicing state shared across one terrace pass."""

    def __init__(self, thresholds: np.ndarray, terrain_type: TerrainType, first_index: int):
        self.thresholds = thresholds
        self.terrain_type = terrain_type
        self.points: List[np.ndarray] = []
        self.next_index = first_index
        self.cap_faces: List[Tuple[int, int, int]] = []
        self.cap_levels: List[int] = []
        self.wall_faces: List[Tuple[int, int, int]] = []
        self.wall_levels: List[int] = []

    def _add_point(self, point: np.ndarray) -> int:
        self.points.append(point)
        index = self.next_index
        self.next_index += 1
        return index

    @staticmethod
    def _edge_point(pa, pb, ha, hb, threshold):
        # Interpolate from the lower end so shared edges give identical points
        if (hb, tuple(pb)) < (ha, tuple(pa)):
            pa, pb, ha, hb = pb, pa, hb, ha
        t = (threshold - ha) / (hb - ha)
        return pa + t * (pb - pa)

    def _flatten(self, point: np.ndarray, height: float) -> np.ndarray:
        return set_heights(point, height, self.terrain_type)

    def _fragment(self, pts, hs, lo: float, hi: float) -> List[np.ndarray]:
        """Boundary of the triangle part with lo <= h <= hi, in winding order."""
        polygon = []
        for i in range(3):
            j = (i + 1) % 3
            if lo <= hs[i] <= hi:
                polygon.append(pts[i])
            cuts = []
            h_min, h_max = min(hs[i], hs[j]), max(hs[i], hs[j])
            for threshold in (lo, hi):
                if np.isfinite(threshold) and h_min < threshold < h_max:
                    s = (threshold - hs[i]) / (hs[j] - hs[i])
                    cuts.append((s, self._edge_point(pts[i], pts[j], hs[i], hs[j], threshold)))
            cuts.sort(key=lambda c: c[0])
            polygon.extend(point for _, point in cuts)

        deduped = []
        for point in polygon:
            if not deduped or not np.array_equal(point, deduped[-1]):
                deduped.append(point)
        if len(deduped) > 1 and np.array_equal(deduped[0], deduped[-1]):
            deduped.pop()
        return deduped

    def _crossing_segment(self, pts, hs, threshold: float) -> List[np.ndarray]:
        segment = [pts[i] for i in range(3) if hs[i] == threshold]
        for i in range(3):
            j = (i + 1) % 3
            if min(hs[i], hs[j]) < threshold < max(hs[i], hs[j]):
                segment.append(self._edge_point(pts[i], pts[j], hs[i], hs[j], threshold))
        return segment

    def _lower_direction(self, pts, hs, threshold: float, midpoint: np.ndarray) -> np.ndarray:
        """Tangential direction from the crossing toward the lower part."""
        below = [pts[i] for i in range(3) if hs[i] < threshold]
        above = [pts[i] for i in range(3) if hs[i] >= threshold]
        direction = np.mean(below, axis=0) - np.mean(above, axis=0)
        if self.terrain_type == TerrainType.SPHERICAL:
            norm = np.linalg.norm(midpoint)
            if norm > 0:
                radial = midpoint / norm
                direction = direction - np.dot(direction, radial) * radial
        else:
            direction[1] = 0.0
        return direction

    def slice(self, pts: np.ndarray, hs: np.ndarray, level_min: int, level_max: int) -> None:
        thresholds = self.thresholds

        for level in range(level_min, level_max + 1):
            lo = thresholds[level] if level > level_min else -np.inf
            hi = thresholds[level + 1] if level < level_max else np.inf
            polygon = self._fragment(pts, hs, lo, hi)
            if len(polygon) < 3:
                continue

            height = thresholds[level]
            indices = [self._add_point(self._flatten(p, height)) for p in polygon]
            for k in range(1, len(indices) - 1):
                self.cap_faces.append((indices[0], indices[k], indices[k + 1]))
                self.cap_levels.append(level)

        for level in range(level_min + 1, level_max + 1):
            threshold = thresholds[level]
            segment = self._crossing_segment(pts, hs, threshold)
            if len(segment) != 2:
                continue
            p, q = segment
            if np.linalg.norm(p - q) <= WELD_TOLERANCE:
                continue

            low, high = thresholds[level - 1], threshold
            p_lo, q_lo = self._flatten(p, low), self._flatten(q, low)
            p_hi, q_hi = self._flatten(p, high), self._flatten(q, high)

            normal = np.cross(q_lo - p_lo, q_hi - p_lo)
            outward = self._lower_direction(pts, hs, threshold, 0.5 * (p + q))
            if np.dot(normal, outward) < 0:
                p_lo, q_lo, p_hi, q_hi = q_lo, p_lo, q_hi, p_hi

            i_plo = self._add_point(p_lo)
            i_qlo = self._add_point(q_lo)
            i_qhi = self._add_point(q_hi)
            i_phi = self._add_point(p_hi)
            self.wall_faces.append((i_plo, i_qlo, i_qhi))
            self.wall_faces.append((i_plo, i_qhi, i_phi))
            self.wall_levels.extend([level, level])


def terrace_mesh(
    buffer: WorkingBuffer,
    terrace_heights: Optional[Sequence[float]],
    terrain_type: TerrainType = TerrainType.PLANAR,
    weld_tolerance: float = WELD_TOLERANCE
) -> WorkingBuffer:
    """
    Replace the sculpted surface by flat terrace caps and vertical walls.

    Args:
        buffer: Sculpted mesh
        terrace_heights: Absolute terrace heights, any order, duplicates allowed
        terrain_type: Selects the up axis (Y or radial)
        weld_tolerance: Extra merge distance applied after exact welding

    Returns:
        New buffer with face_bands (terrace level) and face_kinds (cap / wall);
        caps come first, walls after. An empty terrace list returns a copy of
        the input with every face marked as a band-0 cap.
    """
    thresholds = prepare_thresholds(terrace_heights)
    tris = buffer.triangles

    if len(thresholds) == 0:
        result = buffer.copy()
        result.face_bands = np.zeros(result.n_triangles, dtype=np.int64)
        result.face_kinds = np.full(result.n_triangles, FACE_CAP, dtype=np.int8)
        logger.debug("No terrace heights, mesh passed through")
        return result

    if len(tris) == 0:
        result = WorkingBuffer.empty()
        result.face_bands = np.empty(0, dtype=np.int64)
        result.face_kinds = np.empty(0, dtype=np.int8)
        return result

    vertices = buffer.vertices
    heights = vertex_heights(vertices, terrain_type)
    levels = terrace_level(band_index(heights, thresholds))
    flattened = set_heights(vertices, thresholds[levels], terrain_type)

    tri_levels = levels[tris]
    level_min = tri_levels.min(axis=1)
    level_max = tri_levels.max(axis=1)
    uniform = level_min == level_max

    slicer = _TriangleSlicer(thresholds, terrain_type, first_index=len(vertices))
    crossing = np.flatnonzero(~uniform)
    for t in crossing:
        tri = tris[t]
        slicer.slice(vertices[tri], heights[tri], int(level_min[t]), int(level_max[t]))

    extra = np.array(slicer.points, dtype=np.float64).reshape(-1, 3)
    all_vertices = np.vstack([flattened, extra])

    cap_faces = np.array(slicer.cap_faces, dtype=np.int64).reshape(-1, 3)
    wall_faces = np.array(slicer.wall_faces, dtype=np.int64).reshape(-1, 3)
    faces = np.vstack([tris[uniform], cap_faces, wall_faces])
    bands = np.concatenate([
        level_min[uniform],
        np.array(slicer.cap_levels, dtype=np.int64),
        np.array(slicer.wall_levels, dtype=np.int64),
    ]).astype(np.int64)
    kinds = np.concatenate([
        np.full(int(uniform.sum()) + len(cap_faces), FACE_CAP, dtype=np.int8),
        np.full(len(wall_faces), FACE_WALL, dtype=np.int8),
    ])

    welded, faces = weld_vertices(all_vertices, faces, tolerance=weld_tolerance)
    keep = ~degenerate_face_mask(faces)
    faces, bands, kinds = faces[keep], bands[keep], kinds[keep]
    welded, faces = compact_vertices(welded, faces)

    logger.info(
        f"Terraced {len(tris)} tris ({len(crossing)} sliced) against {len(thresholds)} terraces: "
        f"{int((kinds == FACE_CAP).sum())} cap + {int((kinds == FACE_WALL).sum())} wall faces, "
        f"{len(welded)} verts"
    )

    result = WorkingBuffer(welded, faces.ravel(), face_bands=bands, face_kinds=kinds)
    return result.validate()
