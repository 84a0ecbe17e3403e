"""
Terraced Terrain - procedural stepped terrain meshes.

Planar or spherical surfaces are refined, displaced with fractal noise and
sliced into flat terraces joined by vertical walls.

Usage:
    python src/run_all.py --shape planar --depth 4 --terraces 0.2 0.4 0.6 0.8
"""

__version__ = "1.0.0"
