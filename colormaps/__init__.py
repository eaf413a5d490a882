"""Colour-map presets and lookup-table evaluation."""

from .lookup import (
    NAN_FALLBACK_COLOR,
    LookupTable,
    color_to_hex,
    create_lookup_table,
    hex_to_color,
    lerp_color,
    normalize_preset,
    sample_lookup_table,
    value_to_color,
)
from .presets import (
    DEFAULT_PRESET,
    GRAYSCALE_PRESET,
    ColorMapPreset,
    coerce_preset,
    get_preset_by_name,
    list_preset_names,
    preset_from_matplotlib,
    register_preset,
)

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
    "DEFAULT_PRESET",
    "GRAYSCALE_PRESET",
    "ColorMapPreset",
    "coerce_preset",
    "get_preset_by_name",
    "list_preset_names",
    "preset_from_matplotlib",
    "register_preset",
]
