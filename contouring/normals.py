"""Face normals, smooth vertex normals, and welding across coincident vertices.

Band output duplicates every vertex that sits on a band seam. Welding groups
vertices whose positions agree once quantised to ``epsilon`` and gives every
member of a group the same averaged normal; the vertices themselves stay
distinct so the per-band colours survive.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from contouring.config import get_contouring_section
from contouring.numba_accel import accumulate_face_normals_jit
from utilities.config_utils import coerce_bool, coerce_float
from utilities.errors import DEFAULT_NORMAL, AttributeSizeMismatchError, IndexOutOfRangeError

__all__ = [
    "NormalSmoother",
    "WeldStats",
    "blend_provided_normals_with_welding",
    "compute_face_normal",
    "compute_face_normals",
    "compute_smooth_normals_with_welding",
    "position_keys",
]

# Below this length a normal is treated as degenerate.
_NORMAL_EPS = 1e-10


@dataclass(frozen=True)
class WeldStats:
    """Summary of one welding pass, handed to ``on_stats`` callbacks."""

    vertex_count: int
    unique_positions: int

    @property
    def welded_vertices(self) -> int:
        return self.vertex_count - self.unique_positions


def _as_positions(positions: np.ndarray) -> np.ndarray:
    verts = np.asarray(positions, dtype=np.float64).reshape(-1)
    if verts.size % 3 != 0:
        raise AttributeSizeMismatchError(
            f"positions length ({verts.size}) is not a multiple of 3"
        )
    return verts.reshape(-1, 3)


def _as_faces(indices: np.ndarray, vertex_count: int) -> np.ndarray:
    faces = np.asarray(indices, dtype=np.int64).reshape(-1)
    if faces.size % 3 != 0:
        raise AttributeSizeMismatchError(f"index count ({faces.size}) is not a multiple of 3")
    faces = faces.reshape(-1, 3)
    if faces.size and (faces.min() < 0 or faces.max() >= vertex_count):
        raise IndexOutOfRangeError(
            f"triangle indices must lie in [0, {vertex_count - 1}]"
        )
    return faces


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:
    lengths = np.linalg.norm(vectors, axis=1)
    degenerate = lengths <= _NORMAL_EPS
    safe = np.where(degenerate, 1.0, lengths)
    out = vectors / safe[:, None]
    out[degenerate] = DEFAULT_NORMAL
    return out


def compute_face_normal(
    p1: Sequence[float],
    p2: Sequence[float],
    p3: Sequence[float],
) -> Tuple[float, float, float]:
    """Unit normal of the triangle ``(p1, p2, p3)``; ``(0, 0, 1)`` when degenerate."""
    a = np.asarray(p1, dtype=np.float64)
    e1 = np.asarray(p2, dtype=np.float64) - a
    e2 = np.asarray(p3, dtype=np.float64) - a
    n = np.cross(e1, e2)
    length = float(np.linalg.norm(n))
    if length < _NORMAL_EPS:
        return DEFAULT_NORMAL
    return (float(n[0] / length), float(n[1] / length), float(n[2] / length))


def compute_face_normals(positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Return ``(F, 3)`` unit normals, substituting ``(0, 0, 1)`` for degenerate faces."""
    verts = _as_positions(positions)
    faces = _as_faces(indices, verts.shape[0])
    if faces.shape[0] == 0:
        return np.zeros((0, 3), dtype=np.float64)
    e1 = verts[faces[:, 1]] - verts[faces[:, 0]]
    e2 = verts[faces[:, 2]] - verts[faces[:, 0]]
    return _normalize_rows(np.cross(e1, e2))


def position_keys(positions: np.ndarray, epsilon: float = 1e-6) -> np.ndarray:
    """Quantise positions to integer ``(ix, iy, iz)`` keys on an ``epsilon`` grid.

    Coordinates are rounded half up, so two vertices share a key exactly
    when they fall into the same grid cell.
    """
    eps = float(epsilon)
    if not np.isfinite(eps) or eps <= 0.0:
        raise ValueError(f"epsilon must be a positive finite number, got {epsilon}")
    verts = _as_positions(positions)
    return np.floor(verts / eps + 0.5).astype(np.int64)


def _group_ids(positions: np.ndarray, epsilon: float) -> Tuple[np.ndarray, int]:
    keys = position_keys(positions, epsilon)
    if keys.shape[0] == 0:
        return np.zeros(0, dtype=np.int64), 0
    uniques, inverse = np.unique(keys, axis=0, return_inverse=True)
    return inverse.reshape(-1), int(uniques.shape[0])


def _report(
    stats: WeldStats,
    on_stats: Optional[Callable[[WeldStats], None]],
    verbose: bool,
) -> None:
    if on_stats is not None:
        on_stats(stats)
    if verbose:
        print(
            f"[NormalSmoother] Vertex welding: {stats.vertex_count} vertices collapsed to "
            f"{stats.unique_positions} unique positions"
        )


def _accumulate(verts: np.ndarray, faces: np.ndarray, use_numba: bool) -> Tuple[np.ndarray, np.ndarray]:
    if use_numba:
        return accumulate_face_normals_jit(verts, faces)
    accum = np.zeros((verts.shape[0], 3), dtype=np.float64)
    counts = np.zeros(verts.shape[0], dtype=np.int64)
    if faces.shape[0]:
        face_normals = compute_face_normals(verts, faces)
        for corner in range(3):
            np.add.at(accum, faces[:, corner], face_normals)
            np.add.at(counts, faces[:, corner], 1)
    return accum, counts


def compute_smooth_normals_with_welding(
    positions: np.ndarray,
    indices: np.ndarray,
    epsilon: float = 1e-6,
    *,
    on_stats: Optional[Callable[[WeldStats], None]] = None,
    verbose: bool = False,
    use_numba: Optional[bool] = None,
) -> np.ndarray:
    """Smooth per-vertex normals shared by every vertex of a coincident group.

    Parameters
    ----------
    positions : np.ndarray
        Flat ``(3V,)`` or ``(V, 3)`` vertex positions.
    indices : np.ndarray
        Flat ``(3F,)`` or ``(F, 3)`` triangle indices.
    epsilon : float, optional
        Grid size used to decide that two vertices coincide.
    on_stats : callable, optional
        Receives a :class:`WeldStats` once the groups are known.
    verbose : bool, optional
        Print the welding summary.
    use_numba : bool, optional
        Force the compiled or the NumPy accumulation; defaults to the
        ``general.use_numba`` setting.

    Returns
    -------
    np.ndarray
        Flat ``(3V,)`` unit normals. Each group receives the sum of its
        members' unit face normals divided by their incidence count and
        re-normalised; groups without incident faces, or whose average
        vanishes, fall back to ``(0, 0, 1)``.
    """
    verts = _as_positions(positions)
    faces = _as_faces(indices, verts.shape[0])
    if use_numba is None:
        use_numba = coerce_bool(get_contouring_section("general").get("use_numba"), True)

    group, n_groups = _group_ids(verts, epsilon)
    _report(WeldStats(verts.shape[0], n_groups), on_stats, verbose)
    if verts.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)

    accum, counts = _accumulate(verts, faces, bool(use_numba))

    group_sum = np.zeros((n_groups, 3), dtype=np.float64)
    group_count = np.zeros(n_groups, dtype=np.int64)
    np.add.at(group_sum, group, accum)
    np.add.at(group_count, group, counts)

    averaged = group_sum / np.maximum(group_count, 1)[:, None]
    group_normals = _normalize_rows(averaged)
    group_normals[group_count == 0] = DEFAULT_NORMAL
    return group_normals[group].reshape(-1)


def blend_provided_normals_with_welding(
    positions: np.ndarray,
    provided_normals: np.ndarray,
    epsilon: float = 1e-6,
    *,
    on_stats: Optional[Callable[[WeldStats], None]] = None,
    verbose: bool = False,
) -> np.ndarray:
    """Average already interpolated normals over every coincident group.

    Unlike :func:`compute_smooth_normals_with_welding` no face normals are
    derived; each vertex of a group receives the re-normalised mean of the
    group's ``provided_normals``.
    """
    verts = _as_positions(positions)
    normals = np.asarray(provided_normals, dtype=np.float64).reshape(-1)
    if normals.size != verts.size:
        raise AttributeSizeMismatchError(
            f"normals length ({normals.size}) does not match positions length ({verts.size})"
        )
    normals = normals.reshape(-1, 3)

    group, n_groups = _group_ids(verts, epsilon)
    _report(WeldStats(verts.shape[0], n_groups), on_stats, verbose)
    if verts.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)

    group_sum = np.zeros((n_groups, 3), dtype=np.float64)
    np.add.at(group_sum, group, normals)
    group_size = np.bincount(group, minlength=n_groups)
    group_normals = _normalize_rows(group_sum / group_size[:, None])
    return group_normals[group].reshape(-1)


class NormalSmoother:
    """Configured front-end for face, vertex and welded normals.

    Settings default to the ``normals`` configuration section.
    """

    def __init__(
        self,
        epsilon: Optional[float] = None,
        *,
        verbose: Optional[bool] = None,
        on_stats: Optional[Callable[[WeldStats], None]] = None,
        use_numba: Optional[bool] = None,
    ) -> None:
        cfg = get_contouring_section("normals")
        self.epsilon = coerce_float(cfg.get("weld_epsilon") if epsilon is None else epsilon, 1e-6)
        if self.epsilon <= 0.0:
            raise ValueError(f"epsilon must be positive, got {self.epsilon}")
        self.verbose = coerce_bool(cfg.get("verbose") if verbose is None else verbose, False)
        self.on_stats = on_stats
        if use_numba is None:
            use_numba = coerce_bool(get_contouring_section("general").get("use_numba"), True)
        self.use_numba = bool(use_numba)
        self.last_stats: Optional[WeldStats] = None

    def _record(self, stats: WeldStats) -> None:
        self.last_stats = stats
        if self.on_stats is not None:
            self.on_stats(stats)

    def face_normals(self, positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
        return compute_face_normals(positions, indices)

    def vertex_normals(self, positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
        """Unwelded smooth normals: each vertex averages only its own incident faces."""
        verts = _as_positions(positions)
        faces = _as_faces(indices, verts.shape[0])
        accum, counts = _accumulate(verts, faces, self.use_numba)
        averaged = accum / np.maximum(counts, 1)[:, None]
        normals = _normalize_rows(averaged)
        normals[counts == 0] = DEFAULT_NORMAL
        return normals.reshape(-1)

    def smooth(self, positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
        return compute_smooth_normals_with_welding(
            positions,
            indices,
            self.epsilon,
            on_stats=self._record,
            verbose=self.verbose,
            use_numba=self.use_numba,
        )

    def blend(self, positions: np.ndarray, provided_normals: np.ndarray) -> np.ndarray:
        return blend_provided_normals_with_welding(
            positions,
            provided_normals,
            self.epsilon,
            on_stats=self._record,
            verbose=self.verbose,
        )
