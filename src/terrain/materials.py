"""
Per-band material slots.

Consumers render one sub-mesh per terrace level plus one for the walls. The
material list they author is rarely the right length; these helpers size it
to the band count.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .buffers import FACE_WALL

logger = logging.getLogger(__name__)

DEFAULT_MATERIAL = "default"

WALL_COLOR = (110, 96, 84, 255)
LOW_BAND_COLOR = np.array([70, 120, 60, 255], dtype=np.float64)
HIGH_BAND_COLOR = np.array([235, 235, 230, 255], dtype=np.float64)


def resolve_band_materials(
    materials: Optional[Sequence[Any]],
    n_bands: int,
    default: Any = DEFAULT_MATERIAL,
    wall_material: Any = None
) -> Dict[str, Any]:
    """
    One material per band, plus the wall material.

    Missing trailing slots repeat the last non-None material; None entries
    and an empty list fall back to `default`. Extra entries are dropped.

    Returns:
        {"bands": [material per band], "wall": material, "default": default}
    """
    n_bands = max(int(n_bands), 0)
    given = list(materials or [])

    last_valid = next((m for m in reversed(given) if m is not None), None)
    if len(given) < n_bands:
        if given:
            logger.debug(f"Padding {len(given)} materials to {n_bands} bands")
        given.extend([last_valid] * (n_bands - len(given)))

    bands: List[Any] = [default if m is None else m for m in given[:n_bands]]
    return {
        "bands": bands,
        "wall": default if wall_material is None else wall_material,
        "default": default,
    }


def face_materials(face_bands: np.ndarray, face_kinds: np.ndarray, resolved: Dict[str, Any]) -> List[Any]:
    """Material per face using the output of resolve_band_materials."""
    bands = resolved["bands"]
    out = []
    for band, kind in zip(np.asarray(face_bands), np.asarray(face_kinds)):
        if kind == FACE_WALL:
            out.append(resolved["wall"])
        elif bands:
            out.append(bands[min(int(band), len(bands) - 1)])
        else:
            out.append(resolved.get("default", DEFAULT_MATERIAL))
    return out


def band_palette(n_bands: int) -> List[tuple]:
    """RGBA ramp from green (lowest band) to white (highest)."""
    t = np.linspace(0.0, 1.0, n_bands) if n_bands > 1 else np.zeros(max(n_bands, 0))
    ramp = LOW_BAND_COLOR + t[:, None] * (HIGH_BAND_COLOR - LOW_BAND_COLOR)
    return [tuple(int(c) for c in row) for row in ramp.round()]


def band_face_colors(
    face_bands: np.ndarray,
    face_kinds: np.ndarray,
    n_bands: int,
    palette: Optional[Sequence[Any]] = None
) -> np.ndarray:
    """
    (M, 4) uint8 face colours, treating colours as band materials.

    Args:
        face_bands: Terrace level per face
        face_kinds: FACE_CAP / FACE_WALL per face
        n_bands: Number of terrace levels
        palette: RGBA per band; padded like any material list, defaults to a ramp
    """
    resolved = resolve_band_materials(
        band_palette(n_bands) if palette is None else palette,
        n_bands,
        default=WALL_COLOR,
        wall_material=WALL_COLOR,
    )
    colors = face_materials(face_bands, face_kinds, resolved)
    return np.array(colors, dtype=np.uint8).reshape(-1, 4)
