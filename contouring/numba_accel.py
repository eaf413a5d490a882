"""Numba-compiled kernels for the per-triangle contouring loops.

Each kernel has a vectorised NumPy counterpart in the module that uses it;
the ``*_jit`` wrappers below only normalise dtypes and contiguity before
dispatching. ``fastmath`` is left off: the iso-line kernel matches its NumPy
counterpart exactly, the normal accumulation up to summation order.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np
from numba import njit

__all__ = [
    "accumulate_face_normals_jit",
    "iso_line_crossings_jit",
]


@njit(cache=True)
def _iso_line_crossings_kernel(
    faces: np.ndarray,
    values: np.ndarray,
    level: float,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    n_faces = faces.shape[0]
    tri_ids = np.empty(n_faces, dtype=np.int64)
    edges = np.empty((n_faces, 2, 2), dtype=np.int64)
    fractions = np.empty((n_faces, 2), dtype=np.float64)
    count = 0

    for fi in range(n_faces):
        i0 = faces[fi, 0]
        i1 = faces[fi, 1]
        i2 = faces[fi, 2]
        s0 = values[i0]
        s1 = values[i1]
        s2 = values[i2]
        if math.isnan(s0) or math.isnan(s1) or math.isnan(s2):
            continue

        lo = min(s0, min(s1, s2))
        hi = max(s0, max(s1, s2))
        if not (lo < level and level < hi):
            continue

        found = 0
        for edge in range(3):
            if edge == 0:
                ia = i0
                ib = i1
                sa = s0
                sb = s1
            elif edge == 1:
                ia = i1
                ib = i2
                sa = s1
                sb = s2
            else:
                ia = i2
                ib = i0
                sa = s2
                sb = s0

            # A vertex sitting exactly on the level counts as above.
            if (sa >= level) == (sb >= level):
                continue

            edges[count, found, 0] = ia
            edges[count, found, 1] = ib
            fractions[count, found] = (level - sa) / (sb - sa)
            found += 1
            if found == 2:
                break

        tri_ids[count] = fi
        count += 1

    return tri_ids[:count].copy(), edges[:count].copy(), fractions[:count].copy()


@njit(cache=True)
def _accumulate_face_normals_kernel(
    verts: np.ndarray,
    faces: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    n_verts = verts.shape[0]
    n_faces = faces.shape[0]
    accum = np.zeros((n_verts, 3), dtype=np.float64)
    counts = np.zeros(n_verts, dtype=np.int64)

    for fi in range(n_faces):
        i0 = faces[fi, 0]
        i1 = faces[fi, 1]
        i2 = faces[fi, 2]

        e1x = verts[i1, 0] - verts[i0, 0]
        e1y = verts[i1, 1] - verts[i0, 1]
        e1z = verts[i1, 2] - verts[i0, 2]
        e2x = verts[i2, 0] - verts[i0, 0]
        e2y = verts[i2, 1] - verts[i0, 1]
        e2z = verts[i2, 2] - verts[i0, 2]

        nx = e1y * e2z - e1z * e2y
        ny = e1z * e2x - e1x * e2z
        nz = e1x * e2y - e1y * e2x
        length = math.sqrt(nx * nx + ny * ny + nz * nz)
        if length <= 1e-10:
            nx = 0.0
            ny = 0.0
            nz = 1.0
        else:
            nx = nx / length
            ny = ny / length
            nz = nz / length

        for corner in range(3):
            vi = faces[fi, corner]
            accum[vi, 0] += nx
            accum[vi, 1] += ny
            accum[vi, 2] += nz
            counts[vi] += 1

    return accum, counts


def iso_line_crossings_jit(
    faces: np.ndarray,
    values: np.ndarray,
    level: float,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Locate the two crossing edges of every triangle cut by ``level``.

    Parameters
    ----------
    faces : np.ndarray
        Triangle indices shaped ``(F, 3)``.
    values : np.ndarray
        Scalar field sampled per vertex; NaN triangles are skipped.
    level : float
        Iso-value to intersect.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray, np.ndarray]
        ``(triangle_ids (k,), edges (k, 2, 2), fractions (k, 2))`` where each
        edge is a ``(start, end)`` vertex pair and the fraction is measured
        from ``start``.
    """
    return _iso_line_crossings_kernel(
        np.ascontiguousarray(faces, dtype=np.int64),
        np.ascontiguousarray(values, dtype=np.float64),
        float(level),
    )


def accumulate_face_normals_jit(
    verts: np.ndarray,
    faces: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """Sum unit face normals onto their corners and count incident faces."""
    return _accumulate_face_normals_kernel(
        np.ascontiguousarray(verts, dtype=np.float64),
        np.ascontiguousarray(faces, dtype=np.int64),
    )
