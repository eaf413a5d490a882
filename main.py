"""
Demonstration entry point for the contouring pipeline.

The script builds an icosphere, samples a height field along the configured
axis, and runs filled iso-bands with an iso-line overlay on top. It prints a
short summary of the generated geometry. Nothing is rendered or written to
disk; the arrays in the returned result are what a viewer would consume.
"""

from __future__ import annotations

import numpy as np
import trimesh

from buffers.mesh_buffer import MeshBuffer
from colormaps.lookup import color_to_hex
from contouring.config import get_contouring_defaults
from contouring.pipeline import ContouringResult, run_contouring
from contouring.polylines import stitch_segments
from utilities.config_utils import coerce_axis, coerce_bool, coerce_int

_AXIS_INDEX = {"x": 0, "y": 1, "z": 2}


def build_demo_mesh(subdivisions: int = 3, axis: str = "z") -> MeshBuffer:
    """Icosphere carrying its ``axis`` coordinate as the ``"height"`` scalar attribute."""
    sphere = trimesh.creation.icosphere(subdivisions=subdivisions, radius=1.0)
    mesh = MeshBuffer.from_trimesh(sphere)
    mesh.compute_vertex_normals()
    mesh.set_scalars("height", mesh.vertices[:, _AXIS_INDEX[axis]])
    return mesh


def summarise(result: ContouringResult) -> None:
    lo, hi = result.metadata["scalar_range"]
    print(f"Scalar range: [{lo:.4f}, {hi:.4f}]")

    if result.bands is not None:
        bands = result.bands
        print(
            "Iso-band summary: "
            f"{len(bands.polygon_sizes)} polygons, "
            f"{bands.vertex_count} vertices, "
            f"{bands.triangle_count} triangles, "
            f"area {bands.total_area():.4f}"
        )
        sizes, counts = np.unique(np.asarray(bands.polygon_sizes), return_counts=True)
        breakdown = ", ".join(f"{int(c)} x {int(s)}-gon" for s, c in zip(sizes, counts))
        print(f"  Polygon breakdown: {breakdown}")

    if result.lines is not None:
        lines = result.lines
        print(
            "Iso-line summary: "
            f"{len(lines.iso_values)} levels, {lines.segment_count} segments "
            f"(preset '{result.metadata['line_preset'] or 'default'}')"
        )
        for idx, level in enumerate(lines.iso_values):
            segments = lines.segments_for(idx)
            polylines = stitch_segments(level, [(seg[0], seg[1]) for seg in segments])
            colour = color_to_hex(lines.colors.reshape(-1, 3)[idx])
            closed = sum(1 for poly in polylines if poly.is_closed)
            print(
                f"  level {level:+.4f}: {len(segments)} segments -> "
                f"{len(polylines)} polylines ({closed} closed), colour {colour}"
            )


def main() -> None:
    """Run bands and lines on the demo mesh and print what was produced."""
    settings = get_contouring_defaults()
    general_cfg = settings.get("general", {})
    demo_cfg = settings.get("demo", {})

    axis = coerce_axis(demo_cfg.get("axis"), "z")
    subdivisions = coerce_int(demo_cfg.get("subdivisions"), 3, minimum=0)
    show_progress = coerce_bool(general_cfg.get("show_progress"), False)

    print(f"Building icosphere (subdivisions={subdivisions}), scalar = {axis} coordinate ...")
    mesh = build_demo_mesh(subdivisions, axis)
    print(f"Mesh: {mesh.vertex_count} vertices, {mesh.triangle_count} triangles")

    print("Generating iso-bands and iso-lines ...")
    result = run_contouring(mesh, "height", bands=True, lines=True, show_progress=show_progress)
    summarise(result)


if __name__ == "__main__":
    main()
