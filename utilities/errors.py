"""Error kinds raised by the contouring core.

Each error derives from the builtin exception a caller would naturally catch,
so ``except ValueError`` keeps working for code that predates these classes.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_NORMAL",
    "ContouringError",
    "InvalidPresetError",
    "ValueOutOfRangeError",
    "AttributeSizeMismatchError",
    "IndexOutOfRangeError",
    "MissingGeometryError",
]


# Substituted for zero-length normals instead of raising.
DEFAULT_NORMAL = (0.0, 0.0, 1.0)


class ContouringError(Exception):
    """Base class for every data-contract violation detected by the core."""


class InvalidPresetError(ContouringError, ValueError):
    """Raised when a colour-map preset has fewer than two usable control points."""


class ValueOutOfRangeError(ContouringError, ValueError):
    """Raised when a normalised-value API receives a value outside ``[0, 1]``."""


class AttributeSizeMismatchError(ContouringError, ValueError):
    """Raised when two attributes disagree on item size or vertex count."""


class IndexOutOfRangeError(ContouringError, IndexError):
    """Raised when a vertex or component index is outside its declared bounds."""


class MissingGeometryError(ContouringError, ValueError):
    """Raised when a mesh lacks the positions, triangles or scalars an algorithm needs."""
