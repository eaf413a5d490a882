"""Colour-map evaluation: preset normalisation, interpolation and lookup tables.

``value_to_color`` walks the control points of a preset and is exact;
``sample_lookup_table`` is the O(1) nearest-entry approximation used inside
the per-triangle loops once a :class:`LookupTable` has been built.
"""

from __future__ import annotations

import math
from typing import Iterator, Sequence, Tuple

import numpy as np

from colormaps.presets import ColorMapPreset
from utilities.errors import ValueOutOfRangeError

__all__ = [
    "NAN_FALLBACK_COLOR",
    "LookupTable",
    "color_to_hex",
    "create_lookup_table",
    "hex_to_color",
    "lerp_color",
    "normalize_preset",
    "sample_lookup_table",
    "value_to_color",
]

RGB = Tuple[float, float, float]

# Returned for NaN when no NanColor is configured.
NAN_FALLBACK_COLOR: RGB = (0.5, 0.5, 0.5)


def _check_unit_interval(value: float, what: str = "Value") -> None:
    # NaN fails both comparisons and is handled by the callers.
    if value < 0.0 or value > 1.0:
        raise ValueOutOfRangeError(f"{what} must be normalized to [0, 1], got {value}")


def lerp_color(color1: Sequence[float], color2: Sequence[float], t: float) -> RGB:
    """Linearly interpolate two RGB colours; ``t`` must lie in ``[0, 1]``."""
    _check_unit_interval(t, "Interpolation factor t")
    return (
        color1[0] + (color2[0] - color1[0]) * t,
        color1[1] + (color2[1] - color1[1]) * t,
        color1[2] + (color2[2] - color1[2]) * t,
    )


def normalize_preset(preset: ColorMapPreset) -> ColorMapPreset:
    """Rescale control-point values of ``preset`` onto ``[0, 1]``.

    The preset is returned unchanged when its values already span exactly
    ``[0, 1]`` or when all control points share one value (nothing to
    rescale). Colours, name, NaN colour and metadata are preserved.
    """
    values = preset.values
    min_val = float(values.min())
    max_val = float(values.max())
    if min_val == 0.0 and max_val == 1.0:
        return preset
    span = max_val - min_val
    if span == 0.0:
        return preset

    table = np.asarray(preset.rgb_points, dtype=np.float64).reshape(-1, 4).copy()
    table[:, 0] = (table[:, 0] - min_val) / span
    # Pin the ends so round-off cannot break the [0, 1] invariant.
    table[0, 0] = 0.0
    table[-1, 0] = 1.0
    return preset.with_points(table.reshape(-1).tolist())


def value_to_color(value: float, preset: ColorMapPreset) -> RGB:
    """Map a normalised value to an RGB colour by walking the control points.

    Parameters
    ----------
    value : float
        Value in ``[0, 1]``; NaN is accepted.
    preset : ColorMapPreset
        Preset whose control points are expected in normalised space.

    Returns
    -------
    tuple of float
        The interpolated colour. Values outside the control-point span clamp
        to the first/last colour. NaN yields the preset's NaN colour or
        :data:`NAN_FALLBACK_COLOR`.

    Raises
    ------
    ValueOutOfRangeError
        If ``value`` lies outside ``[0, 1]``.
    """
    _check_unit_interval(value)
    if math.isnan(value):
        return preset.nan_color if preset.nan_color is not None else NAN_FALLBACK_COLOR

    points = preset.rgb_points
    count = len(points) // 4
    if value <= points[0]:
        return (points[1], points[2], points[3])
    last = (count - 1) * 4
    if value >= points[last]:
        return (points[last + 1], points[last + 2], points[last + 3])

    for i in range(count - 1):
        idx1 = i * 4
        idx2 = idx1 + 4
        val1 = points[idx1]
        val2 = points[idx2]
        if val1 <= value <= val2:
            if val2 == val1:
                return (points[idx1 + 1], points[idx1 + 2], points[idx1 + 3])
            t = (value - val1) / (val2 - val1)
            return lerp_color(points[idx1 + 1:idx1 + 4], points[idx2 + 1:idx2 + 4], t)

    return NAN_FALLBACK_COLOR


class LookupTable:
    """Read-only ``(n, 3)`` table of colours sampled uniformly over ``[0, 1]``."""

    def __init__(self, colors: np.ndarray, *, name: str = "") -> None:
        table = np.array(colors, dtype=np.float64).reshape(-1, 3)
        if table.shape[0] < 1:
            raise ValueError("a lookup table needs at least one colour")
        table.setflags(write=False)
        self._colors = table
        self.name = name

    @property
    def colors(self) -> np.ndarray:
        return self._colors

    def __len__(self) -> int:
        return self._colors.shape[0]

    def __getitem__(self, index: int) -> RGB:
        row = self._colors[index]
        return (float(row[0]), float(row[1]), float(row[2]))

    def __iter__(self) -> Iterator[RGB]:
        for idx in range(len(self)):
            yield self[idx]

    def __repr__(self) -> str:
        return f"LookupTable(name={self.name!r}, size={len(self)})"


def create_lookup_table(preset: ColorMapPreset, number_of_colors: int = 256) -> LookupTable:
    """Normalise ``preset`` and sample it at ``number_of_colors`` evenly spaced values.

    Raises
    ------
    ValueError
        If ``number_of_colors < 2``.
    """
    n = int(number_of_colors)
    if n < 2:
        raise ValueError(f"number_of_colors must be >= 2, got {number_of_colors}")
    normalized = normalize_preset(preset)
    colors = [value_to_color(i / (n - 1), normalized) for i in range(n)]
    return LookupTable(np.asarray(colors, dtype=np.float64), name=preset.name)


def sample_lookup_table(value: float, table: LookupTable) -> RGB:
    """Return the table entry nearest to ``value * (len - 1)``.

    NaN maps to :data:`NAN_FALLBACK_COLOR`; values outside ``[0, 1]`` raise
    :class:`ValueOutOfRangeError`.
    """
    _check_unit_interval(value)
    if math.isnan(value):
        return NAN_FALLBACK_COLOR
    last = len(table) - 1
    # Round half up, independent of Python's banker's rounding.
    index = int(math.floor(value * last + 0.5))
    index = min(max(index, 0), last)
    return table[index]


def color_to_hex(color: Sequence[float]) -> str:
    """Format an RGB colour in ``[0, 1]`` as ``#rrggbb``."""
    channels = [int(math.floor(min(1.0, max(0.0, float(c))) * 255 + 0.5)) for c in color[:3]]
    return "#" + "".join(f"{c:02x}" for c in channels)


def hex_to_color(text: str) -> RGB:
    """Parse ``#rrggbb`` (or ``#rgb``) into an RGB tuple in ``[0, 1]``."""
    raw = str(text).strip().lstrip("#")
    if len(raw) == 3:
        raw = "".join(ch * 2 for ch in raw)
    if len(raw) != 6:
        raise ValueError(f"Invalid hex color format: {text!r}")
    try:
        r, g, b = (int(raw[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError as err:
        raise ValueError(f"Invalid hex color format: {text!r}") from err
    return (r / 255.0, g / 255.0, b / 255.0)
