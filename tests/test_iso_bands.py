from __future__ import annotations

import itertools
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
import trimesh

from buffers.mesh_buffer import MeshBuffer
from colormaps.lookup import create_lookup_table, sample_lookup_table
from colormaps.presets import DEFAULT_PRESET
from contouring.iso_bands import IsoBandGenerator, IsoBandResult, TriInfo, create_iso_contours_filled
from contouring.normals import position_keys
from utilities.mesh_utils import signed_normals, triangle_areas


def _triangle(values) -> MeshBuffer:
    mesh = MeshBuffer([0, 0, 0, 1, 0, 0, 0, 1, 0], [0, 1, 2])
    mesh.set_scalars("s", values)
    return mesh


def _sphere(subdivisions: int = 2, seed: int | None = None) -> MeshBuffer:
    mesh = MeshBuffer.from_trimesh(trimesh.creation.icosphere(subdivisions=subdivisions))
    if seed is None:
        mesh.set_scalars("s", mesh.vertices[:, 2])
    else:
        mesh.set_scalars("s", np.random.default_rng(seed).random(mesh.vertex_count))
    return mesh


def _assert_groups_share_normals(result: IsoBandResult) -> None:
    keys = position_keys(result.positions, 1e-6)
    _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
    normals = result.normals.reshape(-1, 3)
    assert np.allclose(normals, normals[first[inverse.reshape(-1)]])


def test_single_triangle_two_levels():
    result = create_iso_contours_filled(_triangle((0.0, 0.5, 1.0)), "s", [0.25, 0.75])

    # Bottom corner, the strip through the middle corner, top corner.
    assert result.polygon_sizes == [3, 5, 3]
    assert result.polygon_isos == [0.0, 0.25, 0.75]
    assert result.vertex_count == 11
    assert result.triangle_count == 5
    assert result.indices.dtype == np.uint32
    assert result.total_area() == pytest.approx(0.5)

    table = create_lookup_table(DEFAULT_PRESET, 256)
    colors = result.colors.reshape(-1, 3)
    assert np.allclose(colors[:3], sample_lookup_table(0.0, table))
    assert np.allclose(colors[3:8], sample_lookup_table(0.25, table))
    assert np.allclose(colors[8:], sample_lookup_table(0.75, table))


def test_pentagon_corners():
    result = create_iso_contours_filled(_triangle((0.0, 0.5, 1.0)), "s", [0.25, 0.75])
    pentagon = result.positions.reshape(-1, 3)[3:8]
    expected = [[1, 0, 0], [0.5, 0.5, 0], [0, 0.75, 0], [0, 0.25, 0], [0.5, 0, 0]]
    assert np.allclose(pentagon, expected)


def test_level_below_middle_corner_makes_a_quad():
    result = create_iso_contours_filled(_triangle((0.0, 0.5, 1.0)), "s", [0.1, 0.3])
    assert result.polygon_sizes == [3, 4, 4]
    assert result.total_area() == pytest.approx(0.5)


def test_uncut_triangle_keeps_highest_level_below_it():
    result = create_iso_contours_filled(
        _triangle((0.6, 0.7, 0.8)), "s", [0.2, 0.5, 0.9], vmin=0.0, vmax=1.0
    )
    assert result.polygon_sizes == [3]
    assert result.polygon_isos == [0.5]


def test_restricted_range_drops_polygons_outside_it():
    mesh = _triangle((0.0, 0.5, 1.0))
    upper = create_iso_contours_filled(mesh, "s", [0.25, 0.75], vmax=0.5)
    assert upper.polygon_sizes == [3, 5]
    assert upper.polygon_isos == [0.0, 0.25]

    skipped = create_iso_contours_filled(mesh, "s", [0.25, 0.75], vmin=2.0, vmax=3.0)
    assert skipped.vertex_count == 0


def test_unsorted_levels_are_sorted_first():
    result = create_iso_contours_filled(_triangle((0.0, 0.5, 1.0)), "s", [0.75, 0.25])
    assert result.polygon_isos == [0.0, 0.25, 0.75]


@pytest.mark.parametrize("perm", list(itertools.permutations((0.0, 0.5, 1.0))))
def test_output_keeps_input_winding(perm):
    result = create_iso_contours_filled(_triangle(perm), "s", [0.25, 0.75])
    raw = signed_normals(result.positions, result.indices)
    areas = triangle_areas(result.positions, result.indices)
    visible = areas > 1e-12
    assert visible.any()
    assert np.all(raw[visible, 2] > 0.0)
    assert result.total_area() == pytest.approx(0.5)


@pytest.mark.parametrize("perm", list(itertools.permutations((0.0, 0.5, 1.0))))
@pytest.mark.parametrize(
    "isos, sizes, polygon_isos",
    [
        # On the lowest corner the level only recolours the uncut triangle.
        ([0.0], [3], [0.0]),
        # On the middle corner the lower quad degenerates at that corner.
        ([0.5], [4, 3], [0.0, 0.5]),
        # On the highest corner the scan stops before cutting.
        ([1.0], [3], [0.0]),
        ([0.25, 0.5], [3, 5, 3], [0.0, 0.25, 0.5]),
    ],
)
def test_levels_on_corner_values(perm, isos, sizes, polygon_isos):
    result = create_iso_contours_filled(_triangle(perm), "s", isos)
    assert result.polygon_sizes == sizes
    assert result.polygon_isos == polygon_isos
    assert result.total_area() == pytest.approx(0.5)
    raw = signed_normals(result.positions, result.indices)
    visible = triangle_areas(result.positions, result.indices) > 1e-12
    assert np.all(raw[visible, 2] > 0.0)


def test_tri_info_sorting_flags_odd_permutations():
    points = np.eye(3)
    normals = np.tile([0.0, 0.0, 1.0], (3, 1))
    even = TriInfo.from_corners(points, normals, np.array([0.5, 1.0, 0.0]))
    odd = TriInfo.from_corners(points, normals, np.array([1.0, 0.5, 0.0]))
    assert (even.v1, even.v2, even.v3) == (0.0, 0.5, 1.0)
    assert not even.reversed
    assert odd.reversed
    assert TriInfo.from_corners(points, normals, np.array([0.0, np.nan, 1.0])) is None


def test_areas_partition_a_random_field():
    mesh = _sphere(subdivisions=2, seed=11)
    isos = np.linspace(0.05, 0.95, 7)
    result = create_iso_contours_filled(mesh, "s", isos, vmin=0.0, vmax=1.0)
    original = triangle_areas(mesh.vertices, mesh.faces).sum()
    assert result.total_area() == pytest.approx(original, rel=1e-9)
    assert set(result.polygon_sizes) <= {3, 4, 5}
    assert len(result.polygon_sizes) == len(result.polygon_isos)
    assert result.indices.max() < result.vertex_count


def test_nan_triangles_are_skipped():
    mesh = MeshBuffer([0, 0, 0, 0, 1, 0, 1, 0, 0, 1, 1, 0], [0, 2, 3, 0, 3, 1])
    values = np.array([0.0, np.nan, 1.0, 1.0])
    result = create_iso_contours_filled(mesh, values, [0.5])
    assert result.total_area() == pytest.approx(0.5)
    assert np.all(np.isfinite(result.positions))


def test_empty_level_list_returns_empty_result():
    result = create_iso_contours_filled(_triangle((0.0, 0.5, 1.0)), "s", [])
    assert result.vertex_count == 0
    assert result.indices.size == 0
    assert result.polygon_sizes == []
    assert result.to_mesh().vertex_count == 0


def test_threaded_run_matches_serial():
    mesh = _sphere(subdivisions=2, seed=5)
    generator = IsoBandGenerator("Rainbow", 256, np.linspace(0.1, 0.9, 5))
    serial = generator.run(mesh, "s")
    threaded = generator.run(mesh, "s", workers=3)
    assert np.array_equal(serial.positions, threaded.positions)
    assert np.array_equal(serial.indices, threaded.indices)
    assert np.array_equal(serial.colors, threaded.colors)
    assert serial.polygon_sizes == threaded.polygon_sizes


def test_shared_generator_keeps_ranges_per_call():
    mesh = _sphere(subdivisions=2, seed=5)
    generator = IsoBandGenerator("Rainbow", 256, np.linspace(0.1, 0.9, 5))
    full = generator.run(mesh, "s")
    lower = generator.run(mesh, "s", vmax=0.5)
    assert lower.vertex_count < full.vertex_count
    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [
            pool.submit(generator.run, mesh, "s", vmax=0.5) if i % 2 else pool.submit(generator.run, mesh, "s")
            for i in range(8)
        ]
        results = [future.result() for future in futures]
    for i, result in enumerate(results):
        expected = lower if i % 2 else full
        assert np.array_equal(result.positions, expected.positions)
        assert np.array_equal(result.colors, expected.colors)
        assert result.polygon_isos == expected.polygon_isos


def test_interpolated_normals_follow_the_surface():
    mesh = _sphere(subdivisions=3)
    mesh.compute_vertex_normals()
    result = create_iso_contours_filled(mesh, "s", [-0.5, 0.0, 0.5])
    positions = result.positions.reshape(-1, 3)
    normals = result.normals.reshape(-1, 3)
    outward = positions / np.linalg.norm(positions, axis=1)[:, None]
    assert np.all(np.einsum("ij,ij->i", normals, outward) > 0.95)


def test_smooth_and_blended_normals_are_shared_across_seams():
    mesh = _sphere(subdivisions=2)
    smooth = create_iso_contours_filled(mesh, "s", [-0.3, 0.3], smooth=True)
    _assert_groups_share_normals(smooth)
    assert np.allclose(np.linalg.norm(smooth.normals.reshape(-1, 3), axis=1), 1.0)

    blended = create_iso_contours_filled(mesh, "s", [-0.3, 0.3], blend_normals=True)
    _assert_groups_share_normals(blended)


def test_verbose_smoothing_reports_welding(capsys):
    create_iso_contours_filled(_triangle((0.0, 0.5, 1.0)), "s", [0.5], smooth=True, verbose=True)
    assert "[NormalSmoother] Vertex welding:" in capsys.readouterr().out


def test_to_mesh_carries_colors_and_normals():
    result = create_iso_contours_filled(_triangle((0.0, 0.5, 1.0)), "s", [0.25, 0.75])
    mesh = result.to_mesh()
    assert mesh.vertex_count == 11
    assert mesh.triangle_count == 5
    assert mesh.get_attribute("color").item_size == 3
    assert np.array_equal(mesh.get_attribute("normal").array, result.normals)


def test_run_rejects_foreign_meshes():
    generator = IsoBandGenerator(iso_values=[0.5])
    with pytest.raises(TypeError):
        generator.run(trimesh.creation.icosphere(), np.zeros(12))
