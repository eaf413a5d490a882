from __future__ import annotations

import numpy as np
import pytest
import trimesh

from contouring.normals import (
    NormalSmoother,
    WeldStats,
    blend_provided_normals_with_welding,
    compute_face_normal,
    compute_face_normals,
    compute_smooth_normals_with_welding,
    position_keys,
)
from utilities.errors import AttributeSizeMismatchError, IndexOutOfRangeError


def _folded_pair(offset: float = 0.0):
    """Two triangles meeting at a right angle along the x axis.

    The second triangle carries its own copies of the shared edge vertices,
    shifted by ``offset`` along y.
    """
    positions = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, offset, 0.0],
            [0.0, offset, 1.0],
            [1.0, offset, 0.0],
        ]
    )
    indices = np.array([0, 1, 2, 3, 4, 5])
    return positions, indices


def test_face_normal_and_degenerate_fallback():
    assert compute_face_normal((0, 0, 0), (1, 0, 0), (0, 1, 0)) == (0.0, 0.0, 1.0)
    assert compute_face_normal((0, 0, 0), (0, 1, 0), (1, 0, 0)) == (0.0, 0.0, -1.0)
    assert compute_face_normal((0, 0, 0), (1, 1, 1), (2, 2, 2)) == (0.0, 0.0, 1.0)

    normals = compute_face_normals([0, 0, 0, 0, 0, 0, 0, 0, 0], [0, 1, 2])
    assert normals.tolist() == [[0.0, 0.0, 1.0]]


def test_position_keys_round_half_up():
    keys = position_keys([0.2, 0.25, -0.3, -0.25, 0.74, 0.76], 0.5)
    assert keys.tolist() == [[0, 1, -1], [0, 1, 2]]
    with pytest.raises(ValueError):
        position_keys([0, 0, 0], 0.0)
    with pytest.raises(ValueError):
        position_keys([0, 0, 0], float("nan"))


@pytest.mark.parametrize("use_numba", [False, True])
def test_coincident_vertices_share_a_normal(use_numba):
    positions, indices = _folded_pair()
    seen = []
    normals = compute_smooth_normals_with_welding(
        positions, indices, 1e-6, on_stats=seen.append, use_numba=use_numba
    ).reshape(-1, 3)

    assert seen == [WeldStats(vertex_count=6, unique_positions=4)]
    assert seen[0].welded_vertices == 2

    shared = np.array([0.0, 1.0, 1.0]) / np.sqrt(2.0)
    for idx in (0, 1, 3, 5):
        assert np.allclose(normals[idx], shared)
    assert np.allclose(normals[2], [0, 0, 1])
    assert np.allclose(normals[4], [0, 1, 0])


def test_vertices_outside_epsilon_are_not_welded():
    positions, indices = _folded_pair(offset=1e-3)
    seen = []
    normals = compute_smooth_normals_with_welding(
        positions, indices, 1e-6, on_stats=seen.append, use_numba=False
    ).reshape(-1, 3)
    assert seen[0].unique_positions == 6
    assert np.allclose(normals[:3], [[0, 0, 1]] * 3)
    assert np.allclose(normals[3:], [[0, 1, 0]] * 3)

    coarse = compute_smooth_normals_with_welding(positions, indices, 1e-2, use_numba=False).reshape(-1, 3)
    assert np.allclose(coarse[0], coarse[3])


def test_numba_and_numpy_accumulation_agree():
    sphere = trimesh.creation.icosphere(subdivisions=2)
    faces = np.asarray(sphere.faces)
    # Unshared corners, as band output has them.
    positions = np.asarray(sphere.vertices)[faces.reshape(-1)]
    indices = np.arange(positions.shape[0])
    fast = compute_smooth_normals_with_welding(positions, indices, use_numba=True)
    slow = compute_smooth_normals_with_welding(positions, indices, use_numba=False)
    assert np.allclose(fast, slow)

    outward = positions / np.linalg.norm(positions, axis=1)[:, None]
    assert np.all(np.einsum("ij,ij->i", fast.reshape(-1, 3), outward) > 0.99)


def test_isolated_and_empty_inputs():
    positions = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [5, 5, 5]], dtype=float)
    normals = compute_smooth_normals_with_welding(positions, [0, 1, 2], use_numba=False).reshape(-1, 3)
    assert np.allclose(normals[3], [0, 0, 1])

    seen = []
    empty = compute_smooth_normals_with_welding(np.zeros(0), np.zeros(0), on_stats=seen.append)
    assert empty.size == 0
    assert seen == [WeldStats(0, 0)]


def test_invalid_geometry_is_rejected():
    with pytest.raises(AttributeSizeMismatchError):
        compute_smooth_normals_with_welding(np.zeros(7), [0, 1, 2])
    with pytest.raises(IndexOutOfRangeError):
        compute_smooth_normals_with_welding(np.zeros(9), [0, 1, 3])
    with pytest.raises(AttributeSizeMismatchError):
        blend_provided_normals_with_welding(np.zeros(9), np.zeros(6))


def test_blend_averages_provided_normals_per_group():
    positions = np.array([[0, 0, 0], [0, 0, 0], [1, 0, 0]], dtype=float)
    provided = np.array([[1, 0, 0], [0, 1, 0], [0, 0, 2]], dtype=float)
    blended = blend_provided_normals_with_welding(positions, provided).reshape(-1, 3)
    expected = np.array([1.0, 1.0, 0.0]) / np.sqrt(2.0)
    assert np.allclose(blended[0], expected)
    assert np.allclose(blended[1], expected)
    assert np.allclose(blended[2], [0, 0, 1])


def test_blend_of_opposite_normals_falls_back_to_default():
    positions = np.zeros((2, 3))
    provided = np.array([[0, 1, 0], [0, -1, 0]], dtype=float)
    blended = blend_provided_normals_with_welding(positions, provided).reshape(-1, 3)
    assert np.allclose(blended, [[0, 0, 1], [0, 0, 1]])


def test_verbose_welding_prints_summary(capsys):
    positions, indices = _folded_pair()
    compute_smooth_normals_with_welding(positions, indices, verbose=True, use_numba=False)
    out = capsys.readouterr().out
    assert "[NormalSmoother] Vertex welding: 6 vertices collapsed to 4 unique positions" in out


def test_normal_smoother_records_stats():
    positions, indices = _folded_pair()
    forwarded = []
    smoother = NormalSmoother(1e-6, verbose=False, on_stats=forwarded.append, use_numba=False)
    assert smoother.last_stats is None

    welded = smoother.smooth(positions, indices).reshape(-1, 3)
    assert smoother.last_stats == WeldStats(6, 4)
    assert forwarded == [WeldStats(6, 4)]
    assert np.allclose(welded[0], welded[3])

    unwelded = smoother.vertex_normals(positions, indices).reshape(-1, 3)
    assert np.allclose(unwelded[0], [0, 0, 1])
    assert np.allclose(unwelded[3], [0, 1, 0])

    assert smoother.face_normals(positions, indices).shape == (2, 3)

    smoother.blend(positions, unwelded)
    assert len(forwarded) == 2

    with pytest.raises(ValueError):
        NormalSmoother(-1.0)
