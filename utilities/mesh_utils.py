"""Utility primitives for scalar ranges and triangle geometry."""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np


def scalar_range(
    values: np.ndarray,
    vmin: Optional[float] = None,
    vmax: Optional[float] = None,
) -> Tuple[float, float]:
    """Resolve the ``[min, max]`` window used to normalise a scalar field.

    Explicit bounds win; missing bounds fall back to the observed extrema
    ignoring NaN. A field made only of NaN (or an empty one) resolves to
    ``(0.0, 0.0)`` so that downstream normalisation collapses to zero instead
    of propagating NaN.

    Parameters
    ----------
    values : np.ndarray
        Per-vertex scalar samples.
    vmin, vmax : float, optional
        Caller-supplied bounds.

    Returns
    -------
    Tuple[float, float]
        The resolved ``(vmin, vmax)`` pair.
    """
    vals = np.asarray(values, dtype=np.float64).reshape(-1)
    finite = vals[np.isfinite(vals)]
    if finite.size:
        observed_min = float(finite.min())
        observed_max = float(finite.max())
    else:
        observed_min = observed_max = 0.0
    lo = observed_min if vmin is None else float(vmin)
    hi = observed_max if vmax is None else float(vmax)
    return lo, hi


def normalize_scalar(value: float, vmin: float, vmax: float) -> float:
    """Map ``value`` from ``[vmin, vmax]`` into ``[0, 1]``.

    A zero-width range is a legitimate state (constant field) and maps every
    value to ``0.0``. The result is clipped so that round-off never pushes a
    value that lies inside the window outside ``[0, 1]``.
    """
    span = vmax - vmin
    if span == 0 or not np.isfinite(span):
        return 0.0
    return float(min(1.0, max(0.0, (value - vmin) / span)))


def triangle_areas(positions: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Return the area of every triangle in ``faces``.

    Parameters
    ----------
    positions : np.ndarray
        Vertex positions shaped ``(V, 3)`` or flat ``(3V,)``.
    faces : np.ndarray
        Triangle indices shaped ``(F, 3)`` or flat ``(3F,)``.
    """
    verts = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    tris = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if tris.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    e1 = verts[tris[:, 1]] - verts[tris[:, 0]]
    e2 = verts[tris[:, 2]] - verts[tris[:, 0]]
    return 0.5 * np.linalg.norm(np.cross(e1, e2), axis=1)


def signed_normals(positions: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Return the raw (area-scaled, orientation-carrying) normal of every triangle."""
    verts = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    tris = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if tris.shape[0] == 0:
        return np.zeros((0, 3), dtype=np.float64)
    e1 = verts[tris[:, 1]] - verts[tris[:, 0]]
    e2 = verts[tris[:, 2]] - verts[tris[:, 0]]
    return np.cross(e1, e2)
