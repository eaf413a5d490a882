"""Filled iso-bands: re-triangulate a surface into uniformly coloured bands.

Every input triangle is classified on its own. Its corners are sorted by
scalar value, the iso-values that cut it become an ordered list of segments,
and the strip between consecutive segments is emitted as a triangle, a quad
or (where the strip passes the middle corner) a pentagon. Each polygon is
fan-triangulated with fresh vertices, since neighbouring bands carry
different colours along their shared seam.
"""

from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from buffers.attributes import Float64BufferAttribute
from buffers.mesh_buffer import MeshBuffer
from colormaps.lookup import LookupTable, create_lookup_table, sample_lookup_table
from colormaps.presets import ColorMapPreset, coerce_preset
from contouring.normals import (
    blend_provided_normals_with_welding,
    compute_smooth_normals_with_welding,
)
from utilities.config_utils import coerce_iso_values
from utilities.mesh_utils import normalize_scalar, scalar_range, triangle_areas

__all__ = [
    "IsoBandGenerator",
    "IsoBandResult",
    "IsoSegment",
    "TriInfo",
    "create_iso_contours_filled",
]

# Even permutations of the corner order keep the input winding.
_EVEN_PERMUTATIONS = {(0, 1, 2), (1, 2, 0), (2, 0, 1)}

Polygon = Tuple[List[np.ndarray], List[np.ndarray], float]


@dataclass
class IsoSegment:
    """Cut of one iso-value through one triangle.

    ``p1``/``n1`` lie on the short edge (``P1-P2`` below the middle corner,
    ``P2-P3`` above it); ``p2``/``n2`` always lie on the long edge ``P1-P3``.
    """

    iso: float
    p1: np.ndarray
    p2: np.ndarray
    n1: np.ndarray
    n2: np.ndarray


@dataclass
class TriInfo:
    """One triangle with its corners sorted by ascending scalar value."""

    p1: np.ndarray
    p2: np.ndarray
    p3: np.ndarray
    n1: np.ndarray
    n2: np.ndarray
    n3: np.ndarray
    v1: float
    v2: float
    v3: float
    reversed: bool = False
    not_intersected_value: float = 0.0

    @classmethod
    def from_corners(
        cls,
        points: np.ndarray,
        normals: np.ndarray,
        values: np.ndarray,
    ) -> Optional["TriInfo"]:
        """Sort three ``(position, normal, scalar)`` corners; ``None`` if any scalar is NaN.

        Ties keep their input order, and ``reversed`` is set when the
        resulting order is an odd permutation of the input winding.
        """
        if np.isnan(values).any():
            return None
        order = np.argsort(values, kind="stable")
        a, b, c = (int(k) for k in order)
        return cls(
            p1=points[a],
            p2=points[b],
            p3=points[c],
            n1=normals[a],
            n2=normals[b],
            n3=normals[c],
            v1=float(values[a]),
            v2=float(values[b]),
            v3=float(values[c]),
            reversed=(a, b, c) not in _EVEN_PERMUTATIONS,
        )


def _edge_point(pa: np.ndarray, pb: np.ndarray, va: float, vb: float, iso: float) -> Tuple[float, np.ndarray]:
    fraction = abs(iso - va) / abs(vb - va)
    return fraction, pa + fraction * (pb - pa)


def _lerp(a: np.ndarray, b: np.ndarray, fraction: float) -> np.ndarray:
    return a + fraction * (b - a)


@dataclass
class IsoBandResult:
    """Band geometry in which every polygon owns its vertices.

    Attributes
    ----------
    positions, colors, normals : np.ndarray
        Flat ``float[3n]`` arrays, one entry per emitted vertex.
    indices : np.ndarray
        Flat ``uint32[3m]`` triangle list.
    polygon_sizes : list of int
        Corner count (3, 4 or 5) of every emitted polygon, in emission order.
    polygon_isos : list of float
        Iso-value whose colour each polygon carries.
    """

    positions: np.ndarray
    indices: np.ndarray
    colors: np.ndarray
    normals: np.ndarray
    polygon_sizes: List[int] = field(default_factory=list)
    polygon_isos: List[float] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "IsoBandResult":
        return cls(
            positions=np.zeros(0, dtype=np.float64),
            indices=np.zeros(0, dtype=np.uint32),
            colors=np.zeros(0, dtype=np.float64),
            normals=np.zeros(0, dtype=np.float64),
        )

    @property
    def vertex_count(self) -> int:
        return int(self.positions.shape[0] // 3)

    @property
    def triangle_count(self) -> int:
        return int(self.indices.shape[0] // 3)

    def total_area(self) -> float:
        return float(triangle_areas(self.positions, self.indices).sum())

    def to_mesh(self) -> MeshBuffer:
        """Wrap the output in a :class:`MeshBuffer` carrying ``color`` and ``normal`` attributes."""
        mesh = MeshBuffer(self.positions, self.indices)
        if self.vertex_count:
            mesh.set_attribute("color", Float64BufferAttribute(self.colors, 3))
            mesh.set_attribute("normal", Float64BufferAttribute(self.normals, 3))
        return mesh


class _BandAccumulator:
    """Output buffers of one shard of triangles."""

    def __init__(self, table: LookupTable, vmin: float, vmax: float) -> None:
        self.table = table
        self.vmin = vmin
        self.vmax = vmax
        self.points: List[np.ndarray] = []
        self.normals: List[np.ndarray] = []
        self.colors: List[Tuple[float, float, float]] = []
        self.sizes: List[int] = []
        self.isos: List[float] = []

    def add_polygon(self, points: Sequence[np.ndarray], normals: Sequence[np.ndarray], iso: float) -> None:
        if iso < self.vmin or iso > self.vmax:
            return
        color = sample_lookup_table(normalize_scalar(iso, self.vmin, self.vmax), self.table)
        self.points.extend(points)
        self.normals.extend(normals)
        self.colors.extend([color] * len(points))
        self.sizes.append(len(points))
        self.isos.append(float(iso))

    def fan_indices(self, offset: int = 0) -> np.ndarray:
        """Fan-triangulate every polygon from its first corner, shifted by ``offset``."""
        indices: List[int] = []
        base = offset
        for size in self.sizes:
            for k in range(1, size - 1):
                indices.extend((base, base + k, base + k + 1))
            base += size
        return np.asarray(indices, dtype=np.int64)


def _merge(shards: Sequence[_BandAccumulator]) -> IsoBandResult:
    """Concatenate shards in order, offsetting each shard's indices by the vertices before it."""
    positions: List[np.ndarray] = []
    normals: List[np.ndarray] = []
    colors: List[Tuple[float, float, float]] = []
    index_chunks: List[np.ndarray] = []
    sizes: List[int] = []
    isos: List[float] = []
    offset = 0
    for shard in shards:
        if not shard.sizes:
            continue
        index_chunks.append(shard.fan_indices(offset))
        positions.extend(shard.points)
        normals.extend(shard.normals)
        colors.extend(shard.colors)
        sizes.extend(shard.sizes)
        isos.extend(shard.isos)
        offset += len(shard.points)

    if not sizes:
        return IsoBandResult.empty()

    return IsoBandResult(
        positions=np.asarray(positions, dtype=np.float64).reshape(-1),
        indices=np.concatenate(index_chunks).astype(np.uint32),
        colors=np.asarray(colors, dtype=np.float64).reshape(-1),
        normals=np.asarray(normals, dtype=np.float64).reshape(-1),
        polygon_sizes=sizes,
        polygon_isos=isos,
    )


class IsoBandGenerator:
    """Classify triangles against a sorted iso-value list and emit coloured band polygons."""

    def __init__(
        self,
        preset: ColorMapPreset | str | None = None,
        number_of_colors: int = 256,
        iso_values: Sequence[float] = (),
    ) -> None:
        self.preset = coerce_preset(preset)
        self.lookup_table = create_lookup_table(self.preset, number_of_colors)
        # Segment construction walks the levels in ascending order.
        self.iso_values: List[float] = coerce_iso_values(list(iso_values))

    # ------------------------------------------------------------------ #
    #                        Per-triangle classification                  #
    # ------------------------------------------------------------------ #
    def segment_list(self, tri: TriInfo, vmin: float = 0.0) -> List[IsoSegment]:
        """Build the ascending cuts through ``tri`` and set its lowest-region value.

        The lowest region starts out coloured at ``vmin`` and moves up to the
        highest iso-value that does not exceed ``tri.v1``.
        """
        segments: List[IsoSegment] = []
        tri.not_intersected_value = vmin
        for iso in self.iso_values:
            if iso >= tri.v3:
                break
            if iso > tri.v1:
                segments.append(self._make_segment(iso, tri))
            else:
                tri.not_intersected_value = iso
        return segments

    @staticmethod
    def _make_segment(iso: float, tri: TriInfo) -> IsoSegment:
        w2, p2 = _edge_point(tri.p1, tri.p3, tri.v1, tri.v3, iso)
        n2 = _lerp(tri.n1, tri.n3, w2)
        if iso < tri.v2:
            w1, p1 = _edge_point(tri.p1, tri.p2, tri.v1, tri.v2, iso)
            n1 = _lerp(tri.n1, tri.n2, w1)
        else:
            w1, p1 = _edge_point(tri.p2, tri.p3, tri.v2, tri.v3, iso)
            n1 = _lerp(tri.n2, tri.n3, w1)
        return IsoSegment(iso=iso, p1=p1, p2=p2, n1=n1, n2=n2)

    def polygons(self, tri: TriInfo, segments: Sequence[IsoSegment]) -> Iterator[Polygon]:
        """Yield ``(points, normals, iso)`` for every sub-region of ``tri``.

        Polygons are generated in the sorted-corner orientation and flipped
        when the sort reversed the input winding, so every output polygon
        faces the same way as its source triangle.
        """
        for points, normals, iso in self._forward_polygons(tri, segments):
            if tri.reversed:
                points = points[::-1]
                normals = normals[::-1]
            yield points, normals, iso

    @staticmethod
    def _forward_polygons(tri: TriInfo, segments: Sequence[IsoSegment]) -> Iterator[Polygon]:
        if not segments:
            yield [tri.p1, tri.p2, tri.p3], [tri.n1, tri.n2, tri.n3], tri.not_intersected_value
            return

        seg = segments[0]
        bypass = False
        if seg.iso < tri.v2:
            yield [tri.p1, seg.p1, seg.p2], [tri.n1, seg.n1, seg.n2], tri.not_intersected_value
        else:
            bypass = True
            yield (
                [tri.p1, tri.p2, seg.p1, seg.p2],
                [tri.n1, tri.n2, seg.n1, seg.n2],
                tri.not_intersected_value,
            )

        for seg1 in segments[1:]:
            if seg1.iso < tri.v2 or bypass:
                yield (
                    [seg.p1, seg1.p1, seg1.p2, seg.p2],
                    [seg.n1, seg1.n1, seg1.n2, seg.n2],
                    seg.iso,
                )
            else:
                # The strip that contains the middle corner.
                bypass = True
                yield (
                    [tri.p2, seg1.p1, seg1.p2, seg.p2, seg.p1],
                    [tri.n2, seg1.n1, seg1.n2, seg.n2, seg.n1],
                    seg.iso,
                )
            seg = seg1

        if bypass:
            yield [seg.p1, tri.p3, seg.p2], [seg.n1, tri.n3, seg.n2], seg.iso
        else:
            yield [tri.p2, tri.p3, seg.p2, seg.p1], [tri.n2, tri.n3, seg.n2, seg.n1], seg.iso

    def classify(self, tri: TriInfo, accumulator: _BandAccumulator) -> None:
        """Emit every visible sub-polygon of ``tri`` into ``accumulator``."""
        if tri.v3 < accumulator.vmin or tri.v1 > accumulator.vmax:
            return
        segments = self.segment_list(tri, accumulator.vmin)
        for points, normals, iso in self.polygons(tri, segments):
            accumulator.add_polygon(points, normals, iso)

    # ------------------------------------------------------------------ #
    #                                 Driver                              #
    # ------------------------------------------------------------------ #
    def _classify_range(
        self,
        verts: np.ndarray,
        normals: np.ndarray,
        values: np.ndarray,
        faces: np.ndarray,
        value_range: Tuple[float, float],
        show_progress: bool,
        desc: str,
    ) -> _BandAccumulator:
        accumulator = _BandAccumulator(self.lookup_table, *value_range)
        iterator = tqdm(
            faces,
            total=faces.shape[0],
            disable=not show_progress,
            desc=desc,
            unit="tri",
            leave=False,
        )
        for face in iterator:
            tri = TriInfo.from_corners(verts[face], normals[face], values[face])
            if tri is not None:
                self.classify(tri, accumulator)
        return accumulator

    def run(
        self,
        mesh: MeshBuffer,
        scalars: str | Sequence[float] | np.ndarray,
        vmin: Optional[float] = None,
        vmax: Optional[float] = None,
        *,
        workers: int = 1,
        show_progress: bool = False,
    ) -> IsoBandResult:
        """Generate the filled bands of ``mesh``.

        Parameters
        ----------
        mesh : MeshBuffer
            Input triangles. Stored ``"normal"`` vertex normals are
            interpolated onto the cuts; without them area-weighted normals
            are derived (the mesh itself is not modified).
        scalars : str or array-like
            Attribute name or one value per vertex (NaN allowed).
        vmin, vmax : float, optional
            Visible range; polygons coloured outside it are dropped. Defaults
            to the observed finite range of ``scalars``.
        workers : int, optional
            Number of threads. Triangles are split into contiguous shards
            and merged back in order, so the output does not depend on it.
        show_progress : bool, optional
            Show a ``tqdm`` bar per shard.

        Returns
        -------
        IsoBandResult
            Empty when no iso-values are configured.
        """
        if not isinstance(mesh, MeshBuffer):
            raise TypeError("IsoBandGenerator.run expects a MeshBuffer")
        mesh.require_triangles()
        values = mesh.resolve_scalars(scalars)
        value_range = scalar_range(values, vmin, vmax)

        if not self.iso_values:
            return IsoBandResult.empty()

        verts = mesh.vertices
        normals = mesh.vertex_normals()
        faces = mesh.faces

        n_workers = max(1, min(int(workers), faces.shape[0]))
        if n_workers == 1:
            shard = self._classify_range(verts, normals, values, faces, value_range, show_progress, "Iso-bands")
            return _merge([shard])

        chunks = np.array_split(faces, n_workers)
        with concurrent.futures.ThreadPoolExecutor(max_workers=n_workers) as executor:
            futures = [
                executor.submit(
                    self._classify_range,
                    verts,
                    normals,
                    values,
                    chunk,
                    value_range,
                    show_progress,
                    f"Iso-bands shard {idx + 1}/{n_workers}",
                )
                for idx, chunk in enumerate(chunks)
            ]
            # Collected in submission order to keep the serial layout.
            shards = [future.result() for future in futures]
        return _merge(shards)


def create_iso_contours_filled(
    mesh: MeshBuffer,
    scalars: str | Sequence[float] | np.ndarray,
    iso_list: Sequence[float],
    *,
    vmin: Optional[float] = None,
    vmax: Optional[float] = None,
    preset: ColorMapPreset | str | None = None,
    number_of_colors: int = 256,
    smooth: bool = False,
    blend_normals: bool = False,
    weld_epsilon: float = 1e-6,
    workers: int = 1,
    show_progress: bool = False,
    verbose: bool = False,
) -> IsoBandResult:
    """One-shot helper: build an :class:`IsoBandGenerator`, run it, refine normals.

    ``smooth`` replaces the interpolated normals by face normals welded
    across coincident vertices; ``blend_normals`` instead averages the
    interpolated normals of coincident vertices. ``smooth`` wins when both
    are set.
    """
    generator = IsoBandGenerator(preset, number_of_colors, iso_list)
    result = generator.run(
        mesh,
        scalars,
        vmin,
        vmax,
        workers=workers,
        show_progress=show_progress,
    )
    if result.vertex_count == 0:
        return result
    if smooth:
        result.normals = compute_smooth_normals_with_welding(
            result.positions,
            result.indices,
            epsilon=weld_epsilon,
            verbose=verbose,
        )
    elif blend_normals:
        result.normals = blend_provided_normals_with_welding(
            result.positions,
            result.normals,
            epsilon=weld_epsilon,
            verbose=verbose,
        )
    return result
