"""Contouring configuration helpers with YAML override support.

Built-in defaults live in ``_DEFAULTS``. On import (and on every call to
:func:`reload_contouring_defaults`) the first readable YAML mapping found
among the candidate paths is deep-merged on top of them.
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml


_DEFAULTS: Dict[str, Any] = {
    "general": {
        "show_progress": False,
        # Route the hot loops through the numba kernels; the numpy path is
        # kept for debugging and gives identical results.
        "use_numba": True,
        # >1 classifies band triangles in contiguous shards on a thread pool.
        "workers": 1,
    },
    "colormap": {
        "preset": "Rainbow",
        "number_of_colors": 256,
        "line_number_of_colors": 128,
    },
    "iso_bands": {
        "band_count": 10,
        "smooth": True,
        # [min, max] pins the colour range; null uses the observed scalars.
        "scalar_range": None,
    },
    "iso_lines": {
        "line_count": 10,
        # When bands are drawn too, lines follow the band cuts and use a
        # neutral overlay preset.
        "sync_with_bands": True,
        "overlay_preset": "Grayscale",
    },
    "normals": {
        "weld_epsilon": 1e-6,
        "verbose": False,
    },
    "polylines": {
        "rounding_decimals": 6,
        "connectivity_factor": 0.1,
        "min_points": 2,
    },
    "demo": {
        "axis": "z",
        "subdivisions": 3,
    },
}

_EFFECTIVE_DEFAULTS: Dict[str, Any] = copy.deepcopy(_DEFAULTS)


def _deep_update(destination: Dict[str, Any], source: Dict[str, Any], prefix: str = "") -> None:
    """Recursively merge ``source`` into ``destination`` in-place.

    A scalar or list cannot replace a whole settings group: such entries are
    reported and skipped so :func:`get_contouring_section` keeps returning
    mappings. Merged values are copied, never shared with the YAML document.
    """
    for key, value in source.items():
        current = destination.get(key)
        if isinstance(current, dict):
            if isinstance(value, dict):
                _deep_update(current, value, f"{prefix}{key}.")
            else:
                print(f"[config] Ignoring non-mapping value for group '{prefix}{key}'")
            continue
        destination[key] = copy.deepcopy(value)


def _candidate_paths(path: Optional[str]) -> Iterable[Path]:
    """Yield the YAML file locations searched for overrides, each at most once."""
    if path:
        yield Path(path)
        return

    package_dir = Path(__file__).resolve().parent
    candidates = [
        package_dir.parent / "contouring_defaults.yaml",
        Path.cwd() / "contouring_defaults.yaml",
        package_dir / "contouring_defaults.yaml",
    ]
    env_override = os.environ.get("CONTOURING_DEFAULTS_YAML")
    if env_override:
        candidates.insert(0, Path(env_override))

    seen = set()
    for candidate in candidates:
        # Running from the project root makes the first two entries coincide.
        resolved = candidate.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        yield candidate


def reload_contouring_defaults(path: Optional[str] = None) -> Dict[str, Any]:
    """Reload settings from YAML, falling back to the built-in defaults.

    Parameters
    ----------
    path : str, optional
        Explicit YAML file. When given, no other location is searched.

    Returns
    -------
    Dict[str, Any]
        A deep copy of the new effective configuration.
    """
    defaults = copy.deepcopy(_DEFAULTS)

    for candidate in _candidate_paths(path):
        if not candidate.is_file():
            continue
        try:
            data = yaml.safe_load(candidate.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as err:
            print(f"[config] Ignoring unreadable overrides {candidate}: {err}")
            continue
        if isinstance(data, dict):
            _deep_update(defaults, data)
        break

    global _EFFECTIVE_DEFAULTS
    _EFFECTIVE_DEFAULTS = defaults
    return copy.deepcopy(defaults)


def get_contouring_defaults() -> Dict[str, Any]:
    """Return a deep copy of all effective configuration groups."""
    return copy.deepcopy(_EFFECTIVE_DEFAULTS)


def get_contouring_section(section: str) -> Dict[str, Any]:
    """Return a deep copy of the configuration subset named ``section``."""
    section_defaults = _EFFECTIVE_DEFAULTS.get(section, {})
    if isinstance(section_defaults, dict):
        return copy.deepcopy(section_defaults)
    return {}


reload_contouring_defaults()
