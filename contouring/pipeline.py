"""Configuration-driven wrappers that chain the contouring stages.

These functions are what a host application calls: they read the defaults
from :mod:`contouring.config`, derive evenly spaced iso-values from the
scalar range, and keep iso-lines in step with the bands when both are drawn.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from buffers.mesh_buffer import MeshBuffer
from colormaps.presets import ColorMapPreset
from contouring.config import get_contouring_defaults
from contouring.iso_bands import IsoBandResult, create_iso_contours_filled
from contouring.iso_lines import IsoLineResult, create_iso_contour_lines
from contouring.normals import NormalSmoother
from utilities.config_utils import coerce_bool, coerce_int, coerce_range
from utilities.mesh_utils import scalar_range

__all__ = [
    "ContouringResult",
    "make_uniform_iso_values",
    "mesh_from_polys",
    "polys_to_triangles",
    "run_contouring",
    "run_iso_bands",
    "run_iso_lines",
]


@dataclass
class ContouringResult:
    """Bands and/or lines produced for one scalar field."""

    bands: Optional[IsoBandResult]
    lines: Optional[IsoLineResult]
    band_iso_values: List[float] = field(default_factory=list)
    line_iso_values: List[float] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


def make_uniform_iso_values(vmin: float, vmax: float, bands: int) -> List[float]:
    """Return the ``bands - 1`` interior cuts splitting ``[vmin, vmax]`` into equal bands."""
    count = int(bands)
    lo = float(vmin)
    hi = float(vmax)
    return [lo + (i * (hi - lo)) / count for i in range(1, count)]


def polys_to_triangles(cells: Sequence[int] | np.ndarray) -> np.ndarray:
    """Flatten VTK-style polygon connectivity into a triangle index list.

    ``cells`` is a run of ``[n, i0, ..., i(n-1)]`` records. Triangles are
    copied, larger polygons are fan-triangulated from their first id and
    cells with fewer than three ids are skipped.

    Raises
    ------
    ValueError
        If a record runs past the end of ``cells``.
    """
    data = np.asarray(cells, dtype=np.int64).reshape(-1)
    out: List[int] = []
    i = 0
    while i < data.shape[0]:
        n = int(data[i])
        i += 1
        if n < 0 or i + n > data.shape[0]:
            raise ValueError(f"truncated polygon record at offset {i - 1}")
        ids = data[i:i + n]
        i += n
        if n < 3:
            continue
        v0 = int(ids[0])
        for k in range(1, n - 1):
            out.extend((v0, int(ids[k]), int(ids[k + 1])))
    return np.asarray(out, dtype=np.int64)


def mesh_from_polys(positions: np.ndarray, cells: Sequence[int] | np.ndarray) -> MeshBuffer:
    """Build an indexed :class:`MeshBuffer` from points and VTK polygon cells."""
    return MeshBuffer(positions, polys_to_triangles(cells))


def _general_flags(settings: Dict[str, Any], show_progress: Optional[bool]) -> Dict[str, Any]:
    general = settings.get("general", {})
    return {
        "show_progress": coerce_bool(general.get("show_progress"), False) if show_progress is None else bool(show_progress),
        "workers": coerce_int(general.get("workers"), 1, minimum=1),
    }


def _band_range(
    values: np.ndarray,
    band_cfg: Dict[str, Any],
    vmin: Optional[float],
    vmax: Optional[float],
) -> Tuple[float, float]:
    """Resolve the band colour range: arguments, then ``iso_bands.scalar_range``, then the data."""
    configured = coerce_range(band_cfg.get("scalar_range"))
    if configured is not None:
        vmin = configured[0] if vmin is None else vmin
        vmax = configured[1] if vmax is None else vmax
    return scalar_range(values, vmin, vmax)


def run_iso_bands(
    mesh: MeshBuffer,
    scalars: str | Sequence[float] | np.ndarray,
    *,
    band_count: Optional[int] = None,
    preset: ColorMapPreset | str | None = None,
    smooth: Optional[bool] = None,
    vmin: Optional[float] = None,
    vmax: Optional[float] = None,
    show_progress: Optional[bool] = None,
) -> IsoBandResult:
    """Filled bands with ``band_count`` equal bands over the finite scalar range.

    The range is ``vmin``/``vmax`` when given, else the configured
    ``iso_bands.scalar_range``, else the observed finite scalars.
    """
    settings = get_contouring_defaults()
    band_cfg = settings.get("iso_bands", {})
    cmap_cfg = settings.get("colormap", {})
    flags = _general_flags(settings, show_progress)

    values = mesh.resolve_scalars(scalars)
    lo, hi = _band_range(values, band_cfg, vmin, vmax)
    count = coerce_int(band_cfg.get("band_count") if band_count is None else band_count, 10, minimum=1)
    iso_values = make_uniform_iso_values(lo, hi, count)

    result = create_iso_contours_filled(
        mesh,
        values,
        iso_values,
        vmin=lo,
        vmax=hi,
        preset=cmap_cfg.get("preset") if preset is None else preset,
        number_of_colors=coerce_int(cmap_cfg.get("number_of_colors"), 256, minimum=2),
        workers=flags["workers"],
        show_progress=flags["show_progress"],
    )
    if coerce_bool(band_cfg.get("smooth") if smooth is None else smooth, True) and result.vertex_count:
        result.normals = NormalSmoother().smooth(result.positions, result.indices)
    return result


def run_iso_lines(
    mesh: MeshBuffer,
    scalars: str | Sequence[float] | np.ndarray,
    *,
    line_count: Optional[int] = None,
    preset: ColorMapPreset | str | None = None,
    show_progress: Optional[bool] = None,
) -> IsoLineResult:
    """Iso-lines at ``line_count - 1`` evenly spaced levels over the finite scalar range."""
    settings = get_contouring_defaults()
    line_cfg = settings.get("iso_lines", {})
    cmap_cfg = settings.get("colormap", {})
    flags = _general_flags(settings, show_progress)

    values = mesh.resolve_scalars(scalars)
    lo, hi = scalar_range(values)
    count = coerce_int(line_cfg.get("line_count") if line_count is None else line_count, 10, minimum=1)

    return create_iso_contour_lines(
        mesh,
        values,
        make_uniform_iso_values(lo, hi, count),
        cmap_cfg.get("preset") if preset is None else preset,
        coerce_int(cmap_cfg.get("line_number_of_colors"), 128, minimum=2),
        show_progress=flags["show_progress"],
    )


def run_contouring(
    mesh: MeshBuffer,
    scalars: str | Sequence[float] | np.ndarray,
    *,
    bands: bool = True,
    lines: bool = False,
    band_count: Optional[int] = None,
    line_count: Optional[int] = None,
    preset: ColorMapPreset | str | None = None,
    show_progress: Optional[bool] = None,
) -> ContouringResult:
    """Run bands, lines or both for one scalar field.

    When both are requested and ``iso_lines.sync_with_bands`` is set, the
    lines follow the band count and switch to the ``overlay_preset`` so they
    read as neutral outlines on top of the coloured bands.
    """
    settings = get_contouring_defaults()
    band_cfg = settings.get("iso_bands", {})
    line_cfg = settings.get("iso_lines", {})

    values = mesh.resolve_scalars(scalars)
    lo, hi = scalar_range(values)
    band_lo, band_hi = _band_range(values, band_cfg, None, None)
    n_bands = coerce_int(band_cfg.get("band_count") if band_count is None else band_count, 10, minimum=1)
    n_lines = coerce_int(line_cfg.get("line_count") if line_count is None else line_count, 10, minimum=1)
    line_preset = preset

    synced = bands and lines and coerce_bool(line_cfg.get("sync_with_bands"), True)
    if synced:
        n_lines = n_bands
        line_preset = str(line_cfg.get("overlay_preset") or "Grayscale")

    band_result = None
    line_result = None
    if bands:
        band_result = run_iso_bands(
            mesh,
            values,
            band_count=n_bands,
            preset=preset,
            show_progress=show_progress,
        )
    if lines:
        line_result = run_iso_lines(
            mesh,
            values,
            line_count=n_lines,
            preset=line_preset,
            show_progress=show_progress,
        )

    metadata = {
        "scalar_range": (band_lo, band_hi) if bands else (lo, hi),
        "synced_lines": bool(synced),
        "line_preset": line_preset if isinstance(line_preset, str) or line_preset is None else line_preset.name,
    }
    return ContouringResult(
        bands=band_result,
        lines=line_result,
        band_iso_values=make_uniform_iso_values(band_lo, band_hi, n_bands) if bands else [],
        line_iso_values=make_uniform_iso_values(lo, hi, n_lines) if lines else [],
        metadata=metadata,
    )
