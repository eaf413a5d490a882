"""Iso-line extraction on triangle meshes ("marching triangles").

For one iso-value every triangle whose scalar span strictly brackets the
level contributes exactly one segment. The segment is described by the two
crossed edges and the interpolation fraction along each, which keeps the
extractor independent of vertex positions; :func:`create_iso_contour_lines`
turns that description into drawable geometry plus one colour per level.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from buffers.mesh_buffer import MeshBuffer
from colormaps.lookup import create_lookup_table, sample_lookup_table
from colormaps.presets import ColorMapPreset, coerce_preset
from contouring.config import get_contouring_section
from contouring.numba_accel import iso_line_crossings_jit
from utilities.config_utils import coerce_bool
from utilities.errors import IndexOutOfRangeError, MissingGeometryError
from utilities.mesh_utils import normalize_scalar, scalar_range

__all__ = [
    "IsoLineExtractor",
    "IsoLineResult",
    "IsoLineSegments",
    "create_iso_contour_lines",
]

_EDGE_START = np.array([0, 1, 2], dtype=np.int64)
_EDGE_END = np.array([1, 2, 0], dtype=np.int64)


@dataclass
class IsoLineSegments:
    """Segments produced by one iso-value, one per crossed triangle.

    Attributes
    ----------
    iso : float
        Level that generated the segments.
    triangle_ids : np.ndarray
        ``(k,)`` index of the triangle each segment lies in, ascending.
    edges : np.ndarray
        ``(k, 2, 2)`` vertex pairs ``(start, end)`` of the two crossed edges.
    fractions : np.ndarray
        ``(k, 2)`` interpolation parameter along each edge measured from
        ``start``.
    """

    iso: float
    triangle_ids: np.ndarray
    edges: np.ndarray
    fractions: np.ndarray

    def __len__(self) -> int:
        return int(self.triangle_ids.shape[0])

    def positions(self, vertices: np.ndarray) -> np.ndarray:
        """Interpolate the segment endpoints, returning a ``(k, 2, 3)`` array."""
        verts = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
        start = verts[self.edges[..., 0]]
        end = verts[self.edges[..., 1]]
        return start + self.fractions[..., None] * (end - start)


def _iso_line_crossings_numpy(
    faces: np.ndarray,
    values: np.ndarray,
    level: float,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    tri_vals = values[faces]
    finite = ~np.isnan(tri_vals).any(axis=1)
    lo = tri_vals.min(axis=1)
    hi = tri_vals.max(axis=1)
    crossing = finite & (lo < level) & (hi > level)

    tri_ids = np.nonzero(crossing)[0].astype(np.int64)
    sub_faces = faces[tri_ids]
    sub_vals = tri_vals[tri_ids]

    # A vertex sitting exactly on the level counts as above.
    above = sub_vals >= level
    edge_cross = above[:, _EDGE_START] != above[:, _EDGE_END]
    # Stable sort keeps the first two crossed edges in (0,1), (1,2), (2,0) order.
    order = np.argsort(~edge_cross, axis=1, kind="stable")[:, :2]

    rows = np.arange(tri_ids.shape[0])[:, None]
    a_local = _EDGE_START[order]
    b_local = _EDGE_END[order]
    ia = sub_faces[rows, a_local]
    ib = sub_faces[rows, b_local]
    sa = sub_vals[rows, a_local]
    sb = sub_vals[rows, b_local]

    fractions = (level - sa) / (sb - sa)
    edges = np.stack([ia, ib], axis=-1).astype(np.int64)
    return tri_ids, edges, fractions.astype(np.float64)


class IsoLineExtractor:
    """Extract per-triangle iso-line segments for one level at a time.

    The scalar range is fixed at construction (typically the observed range
    of the field) and is only used to colour the levels; segment extraction
    itself depends on the triangles and the scalar values alone.
    """

    def __init__(
        self,
        faces: np.ndarray,
        scalar_range: Tuple[float, float],
        *,
        use_numba: Optional[bool] = None,
    ) -> None:
        tris = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        if tris.shape[0] == 0:
            raise MissingGeometryError("iso-line extraction needs at least one triangle")
        if tris.min() < 0:
            raise IndexOutOfRangeError(f"triangle index {int(tris.min())} is negative")
        self.faces = np.ascontiguousarray(tris)
        self.scalar_range = (float(scalar_range[0]), float(scalar_range[1]))
        if use_numba is None:
            use_numba = coerce_bool(get_contouring_section("general").get("use_numba"), True)
        self.use_numba = bool(use_numba)

    def normalize(self, iso: float) -> float:
        """Map ``iso`` into ``[0, 1]`` against the extractor's scalar range."""
        return normalize_scalar(float(iso), *self.scalar_range)

    def isolines(self, scalars: np.ndarray, iso: float) -> IsoLineSegments:
        """Return the segments traced by ``iso`` over ``scalars``."""
        values = np.ascontiguousarray(scalars, dtype=np.float64).reshape(-1)
        if values.shape[0] <= int(self.faces.max()):
            raise IndexOutOfRangeError(
                f"scalar array has {values.shape[0]} values but triangles reference vertex {int(self.faces.max())}"
            )
        level = float(iso)
        if self.use_numba:
            tri_ids, edges, fractions = iso_line_crossings_jit(self.faces, values, level)
        else:
            tri_ids, edges, fractions = _iso_line_crossings_numpy(self.faces, values, level)
        return IsoLineSegments(iso=level, triangle_ids=tri_ids, edges=edges, fractions=fractions)


@dataclass
class IsoLineResult:
    """Drawable iso-line geometry.

    ``positions`` holds consecutive point pairs (one pair per segment) as a
    flat ``float[3p]`` array; ``colors`` holds one RGB triple per iso-value,
    in the order of ``iso_values``. ``segment_counts[i]`` is the number of
    segments that iso-value ``i`` contributed, so the points of level ``i``
    start right after those of level ``i - 1``.
    """

    positions: np.ndarray
    colors: np.ndarray
    iso_values: List[float] = field(default_factory=list)
    segment_counts: List[int] = field(default_factory=list)

    @property
    def segment_count(self) -> int:
        return int(sum(self.segment_counts))

    def point_colors(self) -> np.ndarray:
        """Expand the per-level colours to one RGB triple per emitted point."""
        per_level = self.colors.reshape(-1, 3)
        repeats = 2 * np.asarray(self.segment_counts, dtype=np.int64)
        return np.repeat(per_level, repeats, axis=0).reshape(-1)

    def segments_for(self, index: int) -> np.ndarray:
        """Return the ``(k, 2, 3)`` segment endpoints of the ``index``-th level."""
        start = 2 * int(sum(self.segment_counts[:index]))
        stop = start + 2 * int(self.segment_counts[index])
        pts = self.positions.reshape(-1, 3)[start:stop]
        return pts.reshape(-1, 2, 3)


def create_iso_contour_lines(
    mesh: MeshBuffer,
    scalars: str | Sequence[float] | np.ndarray,
    iso_list: Sequence[float],
    preset: ColorMapPreset | str | None = None,
    number_of_colors: int = 128,
    *,
    use_numba: Optional[bool] = None,
    show_progress: bool = False,
) -> IsoLineResult:
    """Trace every iso-value of ``iso_list`` over ``mesh``.

    Parameters
    ----------
    mesh : MeshBuffer
        Triangle mesh; non-indexed meshes use implicit triples.
    scalars : str or array-like
        Name of a one-component attribute on ``mesh`` or one value per vertex.
    iso_list : sequence of float
        Levels to trace, processed in the given order. Non-finite entries are
        ignored.
    preset : ColorMapPreset or str, optional
        Colour map used to colour each level; defaults to ``Rainbow``.
    number_of_colors : int, optional
        Lookup-table size.

    Returns
    -------
    IsoLineResult
        Flat segment endpoints and one colour per processed iso-value.

    Raises
    ------
    MissingGeometryError
        If the mesh has no triangles or names an absent scalar attribute.
    AttributeSizeMismatchError
        If the scalar array length differs from the vertex count.
    """
    if not isinstance(mesh, MeshBuffer):
        raise TypeError("create_iso_contour_lines expects a MeshBuffer")
    mesh.require_triangles()
    values = mesh.resolve_scalars(scalars)
    vmin, vmax = scalar_range(values)

    table = create_lookup_table(coerce_preset(preset), number_of_colors)
    extractor = IsoLineExtractor(mesh.faces, (vmin, vmax), use_numba=use_numba)
    vertices = mesh.vertices

    isos = [float(v) for v in iso_list if np.isfinite(v)]
    chunks: List[np.ndarray] = []
    colors: List[Tuple[float, float, float]] = []
    counts: List[int] = []

    iterator = tqdm(
        isos,
        total=len(isos),
        disable=not show_progress,
        desc="Iso-lines",
        unit="level",
        leave=False,
    )
    for iso in iterator:
        segments = extractor.isolines(values, iso)
        colors.append(sample_lookup_table(extractor.normalize(iso), table))
        counts.append(len(segments))
        if len(segments):
            chunks.append(segments.positions(vertices).reshape(-1))

    positions = np.concatenate(chunks) if chunks else np.zeros(0, dtype=np.float64)
    return IsoLineResult(
        positions=positions,
        colors=np.asarray(colors, dtype=np.float64).reshape(-1),
        iso_values=isos,
        segment_counts=counts,
    )
