"""Colour-map presets: ordered ``(value, r, g, b)`` control points.

Presets follow the layout of VTK colour-map JSON files so that data exported
from ParaView-style tools can be used directly::

    {"Name": "Rainbow", "RGBPoints": [v0, r0, g0, b0, v1, r1, g1, b1, ...],
     "NanColor": [r, g, b]}

Names that are not registered locally are resolved through Matplotlib's
colormap registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import matplotlib
import numpy as np

from utilities.errors import InvalidPresetError

__all__ = [
    "ColorMapPreset",
    "DEFAULT_PRESET",
    "GRAYSCALE_PRESET",
    "coerce_preset",
    "get_preset_by_name",
    "list_preset_names",
    "preset_from_matplotlib",
    "register_preset",
]

RGB = Tuple[float, float, float]


@dataclass(frozen=True)
class ColorMapPreset:
    """Immutable piecewise-linear colour map.

    Attributes
    ----------
    name : str
        Display name of the preset.
    rgb_points : tuple of float
        Flat ``(value, r, g, b)`` quadruples with non-decreasing ``value`` and
        colour components in ``[0, 1]``.
    nan_color : tuple of float, optional
        Colour returned for NaN inputs by :func:`colormaps.lookup.value_to_color`.
    metadata : dict
        Extra keys (``Creator``, ``ColorSpace``...) carried along untouched.
    """

    name: str
    rgb_points: Tuple[float, ...]
    nan_color: Optional[RGB] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        points = tuple(float(v) for v in self.rgb_points)
        if len(points) % 4 != 0:
            raise InvalidPresetError(
                f"RGBPoints length must be a multiple of 4, got {len(points)}"
            )
        if len(points) < 8:
            raise InvalidPresetError(
                f"preset '{self.name}' needs at least 2 control points, got {len(points) // 4}"
            )
        table = np.asarray(points, dtype=np.float64).reshape(-1, 4)
        if not np.all(np.isfinite(table)):
            raise InvalidPresetError(f"preset '{self.name}' contains non-finite control points")
        if np.any(np.diff(table[:, 0]) < 0):
            raise InvalidPresetError(f"preset '{self.name}' control-point values must be non-decreasing")
        if np.any(table[:, 1:] < 0.0) or np.any(table[:, 1:] > 1.0):
            raise InvalidPresetError(f"preset '{self.name}' colour components must lie in [0, 1]")
        object.__setattr__(self, "rgb_points", points)

        if self.nan_color is not None:
            nan_color = tuple(float(c) for c in self.nan_color)
            if len(nan_color) != 3:
                raise InvalidPresetError("NanColor must have exactly 3 components")
            object.__setattr__(self, "nan_color", nan_color)

    @property
    def control_point_count(self) -> int:
        return len(self.rgb_points) // 4

    @property
    def values(self) -> np.ndarray:
        """Control-point scalar positions, shape ``(n,)``."""
        return np.asarray(self.rgb_points[0::4], dtype=np.float64)

    @property
    def colors(self) -> np.ndarray:
        """Control-point colours, shape ``(n, 3)``."""
        return np.asarray(self.rgb_points, dtype=np.float64).reshape(-1, 4)[:, 1:]

    def with_points(self, rgb_points: Sequence[float]) -> "ColorMapPreset":
        """Return a copy with new control points and the same name/NaN colour/metadata."""
        return replace(self, rgb_points=tuple(rgb_points), metadata=dict(self.metadata))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColorMapPreset":
        """Build a preset from a VTK-style mapping.

        Raises
        ------
        InvalidPresetError
            If ``RGBPoints`` is missing or malformed.
        """
        if "RGBPoints" not in data or data["RGBPoints"] is None:
            raise InvalidPresetError("preset mapping has no RGBPoints")
        metadata = {k: v for k, v in data.items() if k not in {"Name", "RGBPoints", "NanColor"}}
        nan_color = data.get("NanColor")
        return cls(
            name=str(data.get("Name", "Custom")),
            rgb_points=tuple(data["RGBPoints"]),
            nan_color=None if nan_color is None else tuple(nan_color),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.metadata)
        payload["Name"] = self.name
        payload["RGBPoints"] = list(self.rgb_points)
        if self.nan_color is not None:
            payload["NanColor"] = list(self.nan_color)
        return payload


DEFAULT_PRESET = ColorMapPreset(
    name="Rainbow",
    rgb_points=(
        0.0, 1.0, 0.0, 0.0,    # red
        0.2, 1.0, 0.98, 0.0,   # yellow
        0.4, 0.0, 1.0, 0.02,   # green
        0.6, 0.0, 0.98, 1.0,   # cyan
        0.8, 0.02, 0.0, 1.0,   # blue
        1.0, 0.96, 0.0, 1.0,   # magenta
    ),
)

GRAYSCALE_PRESET = ColorMapPreset(
    name="Grayscale",
    rgb_points=(
        0.0, 0.0, 0.0, 0.0,
        1.0, 1.0, 1.0, 1.0,
    ),
    nan_color=(1.0, 0.0, 0.0),
)

_REGISTRY: Dict[str, ColorMapPreset] = {
    DEFAULT_PRESET.name.lower(): DEFAULT_PRESET,
    GRAYSCALE_PRESET.name.lower(): GRAYSCALE_PRESET,
}


def register_preset(preset: ColorMapPreset) -> None:
    """Make ``preset`` resolvable by :func:`get_preset_by_name` (case-insensitive)."""
    _REGISTRY[preset.name.lower()] = preset


def list_preset_names(*, include_matplotlib: bool = False) -> List[str]:
    """Return registered preset names, optionally followed by Matplotlib colormap names."""
    names = [preset.name for preset in _REGISTRY.values()]
    if include_matplotlib:
        names.extend(sorted(name for name in matplotlib.colormaps if not name.endswith("_r")))
    return names


def preset_from_matplotlib(name: str, control_points: int = 32) -> ColorMapPreset:
    """Sample a Matplotlib colormap into an evenly spaced preset.

    Parameters
    ----------
    name : str
        Any name accepted by ``matplotlib.colormaps``.
    control_points : int, optional
        Number of control points (at least 2).

    Raises
    ------
    InvalidPresetError
        If Matplotlib does not know ``name`` or ``control_points < 2``.
    """
    if control_points < 2:
        raise InvalidPresetError("control_points must be >= 2")
    try:
        cmap = matplotlib.colormaps[name]
    except KeyError as err:
        raise InvalidPresetError(f"unknown colour map '{name}'") from err
    samples = np.linspace(0.0, 1.0, int(control_points))
    rgba = np.clip(cmap(samples), 0.0, 1.0)
    table = np.column_stack([samples, rgba[:, :3]])
    bad = cmap.get_bad()
    return ColorMapPreset(
        name=name,
        rgb_points=tuple(table.reshape(-1).tolist()),
        nan_color=(float(bad[0]), float(bad[1]), float(bad[2])),
        metadata={"Creator": "matplotlib"},
    )


def get_preset_by_name(name: str) -> ColorMapPreset:
    """Resolve ``name`` against the local registry, then Matplotlib."""
    preset = _REGISTRY.get(str(name).lower())
    if preset is not None:
        return preset
    return preset_from_matplotlib(str(name))


def coerce_preset(preset: ColorMapPreset | Mapping[str, Any] | str | None) -> ColorMapPreset:
    """Accept a preset instance, a VTK-style mapping, a name, or ``None`` (default preset)."""
    if preset is None:
        return DEFAULT_PRESET
    if isinstance(preset, ColorMapPreset):
        return preset
    if isinstance(preset, str):
        return get_preset_by_name(preset)
    if isinstance(preset, Mapping):
        return ColorMapPreset.from_dict(preset)
    raise TypeError(f"cannot interpret {type(preset).__name__} as a colour-map preset")
