"""Iso-lines, filled iso-bands and welded normals for triangle meshes."""

from .iso_bands import IsoBandGenerator, IsoBandResult, create_iso_contours_filled
from .iso_lines import IsoLineExtractor, IsoLineResult, IsoLineSegments, create_iso_contour_lines
from .normals import (
    NormalSmoother,
    WeldStats,
    blend_provided_normals_with_welding,
    compute_smooth_normals_with_welding,
)
from .pipeline import (
    ContouringResult,
    make_uniform_iso_values,
    polys_to_triangles,
    run_contouring,
    run_iso_bands,
    run_iso_lines,
)
from .polylines import IsoPolyline, stitch_iso_line_segments, stitch_segments

__all__ = [
    "IsoBandGenerator",
    "IsoBandResult",
    "create_iso_contours_filled",
    "IsoLineExtractor",
    "IsoLineResult",
    "IsoLineSegments",
    "create_iso_contour_lines",
    "NormalSmoother",
    "WeldStats",
    "blend_provided_normals_with_welding",
    "compute_smooth_normals_with_welding",
    "ContouringResult",
    "make_uniform_iso_values",
    "polys_to_triangles",
    "run_contouring",
    "run_iso_bands",
    "run_iso_lines",
    "IsoPolyline",
    "stitch_iso_line_segments",
    "stitch_segments",
]
