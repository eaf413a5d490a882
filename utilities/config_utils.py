"""Utilities for coercing contouring configuration values into canonical types."""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple


def coerce_axis(value: object, fallback: str) -> str:
    """Return a canonical axis label drawn from {'x', 'y', 'z'}.

    Parameters
    ----------
    value : object
        Free-form axis indicator, typically the coordinate used to derive a
        demo scalar field. Strings are trimmed and lower-cased.
    fallback : str
        Axis label returned when ``value`` cannot be mapped.

    Returns
    -------
    str
        Either the normalised axis string or ``fallback``.
    """
    axis = str(value or fallback).strip().lower()
    if axis not in {"x", "y", "z"}:
        return fallback
    return axis


def coerce_float(value: object, fallback: float) -> float:
    """Cast ``value`` to a finite ``float`` or return ``fallback``."""
    try:
        result = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(result):
        return fallback
    return result


def coerce_int(value: object, fallback: int, *, minimum: Optional[int] = None) -> int:
    """Cast ``value`` to ``int`` honouring an optional lower bound.

    Parameters
    ----------
    value : object
        Candidate integer encoded as a number or string. Booleans are rejected
        because ``True`` silently becoming ``1`` hides configuration mistakes.
    fallback : int
        Value returned when ``value`` cannot be interpreted.
    minimum : int, optional
        Values below ``minimum`` are treated as invalid and replaced by
        ``fallback``.

    Returns
    -------
    int
        Parsed integer or ``fallback``.
    """
    if isinstance(value, bool):
        return fallback
    try:
        result = int(value)
    except (TypeError, ValueError):
        return fallback
    if minimum is not None and result < minimum:
        return fallback
    return result


_TRUE_WORDS = frozenset({"true", "1", "yes", "y", "on", "enabled"})
_FALSE_WORDS = frozenset({"false", "0", "no", "n", "off", "disabled"})


def coerce_bool(value: object, fallback: bool) -> bool:
    """Interpret a config flag such as ``use_numba`` or ``smooth``.

    Words from YAML or environment overrides are matched case-insensitively.
    Numbers map through ``bool`` except NaN, which is treated as unset.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        return fallback
    if isinstance(value, (int, float)) and not (isinstance(value, float) and math.isnan(value)):
        return bool(value)
    return fallback


def coerce_iso_values(values: object) -> List[float]:
    """Coerce configuration input into an ascending list of finite iso-values.

    Scalars are promoted to a one-element list; strings are treated as scalars
    rather than iterables so ``"0.5"`` does not split into characters.
    Entries that cannot be parsed are dropped. Duplicates are preserved since
    they are legal (they only produce overlapping output).
    """
    if values is None:
        return []
    if isinstance(values, Sequence) and not isinstance(values, (str, bytes)):
        candidates = list(values)
    else:
        candidates = [values]
    parsed = [coerce_float(v, math.nan) for v in candidates]
    return sorted(v for v in parsed if math.isfinite(v))


def coerce_range(value: object) -> Optional[Tuple[float, float]]:
    """Return ``(min, max)`` from a two-element sequence, or ``None``.

    ``None`` means "use the observed scalar range". Reversed pairs are
    swapped; anything that is not a pair of finite numbers yields ``None``.
    """
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return None
    if len(value) != 2:
        return None
    lo = coerce_float(value[0], math.nan)
    hi = coerce_float(value[1], math.nan)
    if not (math.isfinite(lo) and math.isfinite(hi)):
        return None
    if hi < lo:
        lo, hi = hi, lo
    return lo, hi
