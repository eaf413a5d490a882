"""Stitch per-triangle iso-line segments into connected polylines.

The extractor emits one unordered segment per crossed triangle. Consumers
that need continuous curves (labels, length measurements, tube rendering)
join them here: :func:`stitch_iso_line_segments` links segments through the
mesh edges they cross, or the mesh vertex a level passes through, with no
distance tolerance; :func:`stitch_segments` works from
bare endpoint coordinates, matching rounded endpoints and, for gaps left by
round-off, KD-tree neighbours.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np
from scipy.spatial import KDTree

from contouring.config import get_contouring_section
from contouring.iso_lines import IsoLineSegments
from utilities.config_utils import coerce_float, coerce_int

__all__ = ["IsoPolyline", "stitch_iso_line_segments", "stitch_segments"]


@dataclass
class IsoPolyline:
    """One connected piece of an iso-line.

    Closed loops repeat their first point at the end.
    """

    level: float
    component_id: int
    points: np.ndarray
    is_closed: bool
    length: float = 0.0

    def __post_init__(self) -> None:
        self.points = np.asarray(self.points, dtype=float).reshape(-1, 3)
        if self.points.shape[0] < 2:
            self.length = 0.0
            return
        diffs = np.diff(self.points, axis=0)
        self.length = float(np.sum(np.linalg.norm(diffs, axis=1)))


def _walk(graph: nx.Graph, nodes: Sequence[Hashable]) -> Tuple[List[Hashable], bool]:
    """Order the nodes of one path- or cycle-shaped component."""
    sub = graph.subgraph(nodes)
    ends = sorted((node for node in sub.nodes if sub.degree(node) == 1), key=repr)
    is_closed = not ends and sub.number_of_edges() >= sub.number_of_nodes() >= 3
    start = ends[0] if ends else min(sub.nodes, key=repr)
    return list(nx.dfs_preorder_nodes(sub, start)), is_closed


def _polylines_from_graph(
    level: float,
    graph: nx.Graph,
    positions: Dict[Hashable, np.ndarray],
    min_points: int,
) -> List[IsoPolyline]:
    polylines: List[IsoPolyline] = []
    components = sorted(nx.connected_components(graph), key=lambda comp: min(repr(n) for n in comp))
    for nodes in components:
        order, is_closed = _walk(graph, list(nodes))
        points = np.vstack([positions[node] for node in order])
        if points.shape[0] < min_points:
            continue
        if is_closed:
            points = np.vstack([points, points[0]])
        polylines.append(
            IsoPolyline(
                level=level,
                component_id=len(polylines),
                points=points,
                is_closed=is_closed,
            )
        )
    return polylines


def stitch_iso_line_segments(
    segments: IsoLineSegments,
    vertices: np.ndarray,
    *,
    min_points: Optional[int] = None,
) -> List[IsoPolyline]:
    """Join extractor output into polylines using the crossed mesh edges.

    Two segments are consecutive when they cross the same undirected mesh
    edge. An endpoint that lands exactly on a vertex (fraction 0 or 1) is
    keyed by that vertex instead, since the neighbouring triangles reach it
    through different edges. Branching (non-manifold) junctions are walked
    depth-first.
    """
    cfg = get_contouring_section("polylines")
    if min_points is None:
        min_points = coerce_int(cfg.get("min_points"), 2, minimum=1)
    if len(segments) == 0:
        return []

    endpoints = segments.positions(vertices)
    graph = nx.Graph()
    positions: Dict[Hashable, np.ndarray] = {}
    for seg_idx in range(len(segments)):
        keys = []
        for side in range(2):
            a, b = (int(v) for v in segments.edges[seg_idx, side])
            fraction = segments.fractions[seg_idx, side]
            if fraction == 0.0:
                key = (a, a)
            elif fraction == 1.0:
                key = (b, b)
            else:
                key = (min(a, b), max(a, b))
            positions.setdefault(key, endpoints[seg_idx, side])
            keys.append(key)
        graph.add_edge(keys[0], keys[1])
    return _polylines_from_graph(segments.iso, graph, positions, min_points)


def stitch_segments(
    level: float,
    segments: Sequence[Tuple[np.ndarray, np.ndarray]],
    *,
    rounding_decimals: Optional[int] = None,
    connectivity_factor: Optional[float] = None,
    min_points: Optional[int] = None,
) -> List[IsoPolyline]:
    """Group raw ``(p0, p1)`` segments into ordered polylines.

    Parameters
    ----------
    level : float
        Iso-value the segments belong to.
    segments : Sequence[Tuple[np.ndarray, np.ndarray]]
        Segment endpoints as 3D coordinates, in any order.
    rounding_decimals : int, optional
        Endpoints equal after rounding to this many decimals are merged.
    connectivity_factor : float, optional
        Endpoints closer than this fraction of the median segment length are
        merged as well.
    min_points : int, optional
        Polylines with fewer points are discarded.

    Returns
    -------
    List[IsoPolyline]
        Connected components, ordered deterministically.
    """
    cfg = get_contouring_section("polylines")
    if rounding_decimals is None:
        rounding_decimals = coerce_int(cfg.get("rounding_decimals"), 6, minimum=0)
    if connectivity_factor is None:
        connectivity_factor = coerce_float(cfg.get("connectivity_factor"), 0.1)
    if min_points is None:
        min_points = coerce_int(cfg.get("min_points"), 2, minimum=1)

    pairs: List[Tuple[np.ndarray, np.ndarray]] = []
    for seg in segments:
        if len(seg) != 2:
            raise ValueError("Segments must be provided as (p0, p1) tuples")
        p0 = np.asarray(seg[0], dtype=float)
        p1 = np.asarray(seg[1], dtype=float)
        if p0.shape != (3,) or p1.shape != (3,):
            raise ValueError("Segment endpoints must be 3D points")
        pairs.append((p0, p1))
    if not pairs:
        return []

    endpoints = np.array([p for pair in pairs for p in pair], dtype=float)

    # Union rounded-equal and KD-tree-close endpoints into shared nodes.
    merge = nx.Graph()
    merge.add_nodes_from(range(endpoints.shape[0]))
    buckets: defaultdict[Tuple[float, ...], List[int]] = defaultdict(list)
    for idx, point in enumerate(endpoints):
        buckets[tuple(np.round(point, rounding_decimals))].append(idx)
    for members in buckets.values():
        for other in members[1:]:
            merge.add_edge(members[0], other)

    lengths = [float(np.linalg.norm(p1 - p0)) for p0, p1 in pairs if not np.allclose(p0, p1)]
    if lengths:
        threshold = max(1e-9, float(np.median(lengths)) * float(connectivity_factor))
        for a, b in KDTree(endpoints).query_pairs(threshold):
            # Never fuse the two ends of one segment.
            if a // 2 != b // 2:
                merge.add_edge(a, b)

    node_of: Dict[int, int] = {}
    positions: Dict[Hashable, np.ndarray] = {}
    for node_id, members in enumerate(sorted(nx.connected_components(merge), key=min)):
        first = min(members)
        positions[node_id] = endpoints[first]
        for member in members:
            node_of[member] = node_id

    graph = nx.Graph()
    for seg_idx in range(len(pairs)):
        a = node_of[2 * seg_idx]
        b = node_of[2 * seg_idx + 1]
        if a != b:
            graph.add_edge(a, b)
    return _polylines_from_graph(float(level), graph, positions, min_points)
