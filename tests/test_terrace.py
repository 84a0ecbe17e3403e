"""
Tests for the terracer.

Tests cover:
- Band assignment and the threshold tie-break
- Pass-through for an empty terrace list
- Flat caps and vertical walls facing the lower terrace
- Threshold list edge cases (duplicates, unsorted, out of range, single)
- Spherical terracing
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from common.config import TerrainType
from common.mesh_ops import face_normals, unreferenced_vertices
from terrain.buffers import WorkingBuffer, FACE_CAP, FACE_WALL
from terrain.shapes import generate_planar_shape, generate_spherical_shape
from terrain.fragment import fragment_mesh
from terrain.sculpt import sculpt_mesh
from terrain.terrace import terrace_mesh, band_index, cap_height, prepare_thresholds


# ============== Fixtures ==============

@pytest.fixture
def sculpted_planar():
    """Planar hexagon, depth 4, heights in [0, 10]."""
    mesh = fragment_mesh(generate_planar_shape(6, 10.0), 4)
    return sculpt_mesh(mesh, TerrainType.PLANAR, seed=12345, base_frequency=0.15,
                       min_height=0.0, max_height=10.0)


@pytest.fixture
def sculpted_sphere():
    """Icosphere, depth 3, radii in [8, 12]."""
    mesh = fragment_mesh(generate_spherical_shape(10.0), 3, TerrainType.SPHERICAL, radius=10.0)
    return sculpt_mesh(mesh, TerrainType.SPHERICAL, seed=7, base_frequency=1.5,
                       min_height=8.0, max_height=12.0)


@pytest.fixture
def peak():
    """Hexagonal cone: centre at y = 10, rim at y = 0, normals up."""
    angles = 2.0 * np.pi * np.arange(6) / 6
    rim = np.column_stack([np.cos(angles) * 10.0, np.zeros(6), np.sin(angles) * 10.0])
    vertices = np.vstack([[0.0, 10.0, 0.0], rim])
    k = np.arange(1, 7)
    faces = np.column_stack([np.zeros(6, dtype=int), k % 6 + 1, k])
    return WorkingBuffer(vertices, faces.ravel())


def split_faces(buffer):
    tris = buffer.triangles
    return tris[buffer.face_kinds == FACE_CAP], tris[buffer.face_kinds == FACE_WALL]


def walls_facing_lower_caps(buffer, heights):
    """
    Check each wall against the cap below it.

    A wall's low edge is its two vertices at the smaller height; the cap
    sharing that edge is the lower terrace. Returns (checked, misfacing).
    """
    tris = buffer.triangles
    caps = tris[buffer.face_kinds == FACE_CAP]
    edge_caps = {}
    for cap in caps:
        for a, b in ((cap[0], cap[1]), (cap[1], cap[2]), (cap[2], cap[0])):
            edge_caps.setdefault((min(a, b), max(a, b)), []).append(cap)

    walls = tris[buffer.face_kinds == FACE_WALL]
    normals = face_normals(buffer.vertices, walls)
    checked = misfacing = 0
    for wall, normal in zip(walls, normals):
        h = heights[wall]
        low = wall[np.abs(h - h.min()) < 1e-9]
        if len(low) != 2:
            continue
        midpoint = buffer.vertices[low].mean(axis=0)
        for cap in edge_caps.get((min(low), max(low)), []):
            checked += 1
            if np.dot(normal, buffer.vertices[cap].mean(axis=0) - midpoint) <= 0:
                misfacing += 1
    return checked, misfacing


# ============== Band Tests ==============

class TestBands:
    """Band index and cap heights."""

    def test_band_index(self):
        thresholds = np.array([2.0, 5.0])
        bands = band_index(np.array([1.0, 2.5, 6.0]), thresholds)
        np.testing.assert_array_equal(bands, [0, 1, 2])

    def test_tie_goes_to_upper_band(self):
        thresholds = np.array([2.0, 5.0])
        np.testing.assert_array_equal(band_index(np.array([2.0, 5.0]), thresholds), [1, 2])

    def test_cap_height(self):
        thresholds = np.array([2.0, 5.0, 8.0])
        np.testing.assert_array_equal(cap_height(np.array([0, 1, 2, 3]), thresholds), [2.0, 2.0, 5.0, 8.0])

    def test_prepare_thresholds(self):
        np.testing.assert_array_equal(prepare_thresholds([8, 2, 5, 5, 2]), [2.0, 5.0, 8.0])
        assert len(prepare_thresholds(None)) == 0
        assert len(prepare_thresholds([])) == 0


# ============== Pass-through Tests ==============

class TestPassThrough:
    """Empty terrace list."""

    def test_counts_unchanged(self, sculpted_planar):
        result = terrace_mesh(sculpted_planar, [])

        assert result.n_vertices == sculpted_planar.n_vertices
        np.testing.assert_array_equal(result.indices, sculpted_planar.indices)
        np.testing.assert_array_equal(result.vertices, sculpted_planar.vertices)

    def test_all_band_zero_caps(self, sculpted_planar):
        result = terrace_mesh(sculpted_planar, None)
        assert np.all(result.face_bands == 0)
        assert np.all(result.face_kinds == FACE_CAP)

    def test_flat_default_terrain(self):
        # 6 sides, radius 10, depth 0, no terraces
        shape = generate_planar_shape(6, 10.0)
        result = terrace_mesh(sculpt_mesh(shape, TerrainType.PLANAR), [])

        assert result.n_vertices == 6
        assert len(result.indices) == 12
        np.testing.assert_allclose(np.linalg.norm(result.vertices[:, [0, 2]], axis=1), 10.0)

    def test_empty_mesh(self):
        result = terrace_mesh(WorkingBuffer.empty(), [1.0, 2.0])
        assert result.n_triangles == 0


# ============== Peak Tests ==============

class TestPeak:
    """Hand-built cone crossing one active threshold."""

    def test_counts(self, peak):
        result = terrace_mesh(peak, [2.0, 5.0])
        caps, walls = split_faces(result)

        assert len(caps) == 18
        assert len(walls) == 12
        # centre + rim + 6 crossings at two heights
        assert result.n_vertices == 19

    def test_cap_heights(self, peak):
        result = terrace_mesh(peak, [2.0, 5.0])
        caps, _ = split_faces(result)
        y = result.vertices[caps][:, :, 1]

        assert set(np.unique(y)) == {2.0, 5.0}
        assert np.all(y.min(axis=1) == y.max(axis=1))

    def test_caps_face_up(self, peak):
        result = terrace_mesh(peak, [2.0, 5.0])
        caps, _ = split_faces(result)
        assert np.all(face_normals(result.vertices, caps)[:, 1] > 0.999)

    def test_walls_face_outward(self, peak):
        result = terrace_mesh(peak, [2.0, 5.0])
        _, walls = split_faces(result)
        normals = face_normals(result.vertices, walls)
        centroids = result.vertices[walls].mean(axis=1)
        centroids[:, 1] = 0.0

        assert np.all(np.abs(normals[:, 1]) < 1e-9)
        assert np.all(np.einsum('ij,ij->i', normals, centroids) > 0)

    def test_walls_span_adjacent_terraces(self, peak):
        result = terrace_mesh(peak, [2.0, 5.0])
        _, walls = split_faces(result)
        y = result.vertices[walls][:, :, 1]
        np.testing.assert_array_equal(y.min(axis=1), 2.0)
        np.testing.assert_array_equal(y.max(axis=1), 5.0)

    def test_band_ids(self, peak):
        result = terrace_mesh(peak, [2.0, 5.0])
        caps_mask = result.face_kinds == FACE_CAP
        cap_y = result.vertices[result.triangles[caps_mask]][:, 0, 1]

        np.testing.assert_array_equal(result.face_bands[caps_mask], np.where(cap_y == 5.0, 1, 0))
        assert np.all(result.face_bands[~caps_mask] == 1)

    def test_caps_before_walls(self, peak):
        result = terrace_mesh(peak, [2.0, 5.0])
        kinds = result.face_kinds
        assert np.all(np.diff(kinds.astype(int)) >= 0)

    def test_lowest_threshold_never_walled(self, peak):
        result = terrace_mesh(peak, [5.0])
        _, walls = split_faces(result)

        assert len(walls) == 0
        np.testing.assert_array_equal(result.vertices[:, 1], 5.0)


# ============== Sculpted Planar Tests ==============

class TestTerracedPlanar:
    """Terraces {2, 5, 8} on sculpted terrain over [0, 10]."""

    @pytest.fixture
    def terraced(self, sculpted_planar):
        return terrace_mesh(sculpted_planar, [2.0, 5.0, 8.0])

    def test_valid_buffer(self, terraced):
        terraced.validate()
        assert len(unreferenced_vertices(terraced.n_vertices, terraced.triangles)) == 0

    def test_has_walls(self, terraced):
        _, walls = split_faces(terraced)
        assert len(walls) > 0

    def test_caps_flat(self, terraced):
        caps, _ = split_faces(terraced)
        y = terraced.vertices[caps][:, :, 1]

        assert np.all(y.min(axis=1) == y.max(axis=1))
        assert set(np.unique(y)) <= {2.0, 5.0, 8.0}

    def test_walls_vertical(self, terraced):
        _, walls = split_faces(terraced)
        normals = face_normals(terraced.vertices, walls)
        assert np.all(np.abs(normals[:, 1]) < 1e-9)

    def test_wall_pairs_share_normal(self, terraced):
        _, walls = split_faces(terraced)
        normals = face_normals(terraced.vertices, walls).reshape(-1, 2, 3)
        np.testing.assert_allclose(normals[:, 0], normals[:, 1], atol=1e-9)

    def test_walls_face_lower_caps(self, terraced):
        checked, misfacing = walls_facing_lower_caps(terraced, terraced.vertices[:, 1])
        assert checked > 0
        assert misfacing == 0

    def test_no_sloped_triangles(self, terraced):
        y = terraced.vertices[terraced.triangles][:, :, 1]
        flat = y.min(axis=1) == y.max(axis=1)
        normals = face_normals(terraced.vertices, terraced.triangles)
        vertical = np.abs(normals[:, 1]) < 1e-9
        assert np.all(flat | vertical)

    def test_caps_face_up(self, terraced):
        caps, _ = split_faces(terraced)
        normals = face_normals(terraced.vertices, caps, normalize=False)
        assert np.all(normals[:, 1] >= -1e-9)

    def test_band_ids_in_range(self, terraced):
        assert terraced.face_bands.min() >= 0
        assert terraced.face_bands.max() <= 2

    def test_deterministic(self, sculpted_planar):
        a = terrace_mesh(sculpted_planar, [2.0, 5.0, 8.0])
        b = terrace_mesh(sculpted_planar, [2.0, 5.0, 8.0])
        np.testing.assert_array_equal(a.vertices, b.vertices)
        np.testing.assert_array_equal(a.indices, b.indices)


# ============== Threshold Edge Cases ==============

class TestThresholdEdgeCases:
    """Odd terrace lists never throw."""

    def test_unsorted_and_duplicates(self, sculpted_planar):
        a = terrace_mesh(sculpted_planar, [8.0, 2.0, 5.0, 5.0, 2.0])
        b = terrace_mesh(sculpted_planar, [2.0, 5.0, 8.0])
        np.testing.assert_array_equal(a.vertices, b.vertices)
        np.testing.assert_array_equal(a.indices, b.indices)
        np.testing.assert_array_equal(a.face_bands, b.face_bands)

    def test_single_threshold_flattens(self, sculpted_planar):
        result = terrace_mesh(sculpted_planar, [5.0])

        assert result.n_triangles == sculpted_planar.n_triangles
        np.testing.assert_array_equal(result.vertices[:, 1], 5.0)
        assert np.all(result.face_kinds == FACE_CAP)

    def test_out_of_range(self, sculpted_planar):
        result = terrace_mesh(sculpted_planar, [-5.0, 100.0])

        assert result.n_triangles == sculpted_planar.n_triangles
        np.testing.assert_array_equal(result.vertices[:, 1], -5.0)
        assert np.all(result.face_bands == 0)

    def test_input_untouched(self, sculpted_planar):
        before = sculpted_planar.vertices.copy()
        terrace_mesh(sculpted_planar, [2.0, 5.0, 8.0])
        np.testing.assert_array_equal(sculpted_planar.vertices, before)


# ============== Spherical Tests ==============

class TestTerracedSphere:
    """Radial terracing."""

    @pytest.fixture
    def terraced(self, sculpted_sphere):
        return terrace_mesh(sculpted_sphere, [9.0, 10.0, 11.0], TerrainType.SPHERICAL)

    def test_caps_on_spheres(self, terraced):
        caps, _ = split_faces(terraced)
        radii = np.linalg.norm(terraced.vertices[caps], axis=2)

        np.testing.assert_allclose(radii.min(axis=1), radii.max(axis=1), atol=1e-9)
        nearest = np.array([9.0, 10.0, 11.0])[np.abs(radii[:, :1] - [9.0, 10.0, 11.0]).argmin(axis=1)]
        np.testing.assert_allclose(radii[:, 0], nearest, atol=1e-9)

    def test_walls_radial(self, terraced):
        _, walls = split_faces(terraced)
        assert len(walls) > 0

        normals = face_normals(terraced.vertices, walls)
        centroids = terraced.vertices[walls].mean(axis=1)
        radial = centroids / np.linalg.norm(centroids, axis=1, keepdims=True)
        assert np.all(np.abs(np.einsum('ij,ij->i', normals, radial)) < 1e-6)

    def test_valid_buffer(self, terraced):
        terraced.validate()
        assert len(unreferenced_vertices(terraced.n_vertices, terraced.triangles)) == 0

    def test_walls_face_lower_caps(self, terraced):
        radii = np.linalg.norm(terraced.vertices, axis=1)
        checked, misfacing = walls_facing_lower_caps(terraced, radii)
        assert checked > 0
        assert misfacing == 0
