"""Typed per-vertex attribute storage backed by flat NumPy arrays.

An attribute is a flat array plus an ``item_size`` (3 for positions and
normals, 1 for scalars or indices). The element type is carried by the
array's dtype; only float and unsigned-int dtypes are accepted.
"""

from __future__ import annotations

import copy
from typing import Callable, Sequence

import numpy as np

from utilities.errors import AttributeSizeMismatchError, IndexOutOfRangeError

__all__ = [
    "BufferAttribute",
    "Float32BufferAttribute",
    "Float64BufferAttribute",
    "Uint16BufferAttribute",
    "Uint32BufferAttribute",
]

_SUPPORTED_DTYPES = (
    np.dtype(np.float32),
    np.dtype(np.float64),
    np.dtype(np.uint16),
    np.dtype(np.uint32),
)


class BufferAttribute:
    """Flat typed array interpreted as ``count`` items of ``item_size`` components."""

    def __init__(self, array: np.ndarray, item_size: int, normalized: bool = False) -> None:
        """Wrap ``array`` without copying when it already has a supported dtype.

        Parameters
        ----------
        array : np.ndarray
            One-dimensional array (other shapes are flattened) whose dtype is
            one of float32, float64, uint16 or uint32.
        item_size : int
            Number of components per item.
        normalized : bool, optional
            Retained for renderers that treat integer data as normalised.

        Raises
        ------
        TypeError
            If the dtype is not supported.
        AttributeSizeMismatchError
            If the array length is not a multiple of ``item_size``.
        """
        data = np.asarray(array)
        if data.dtype not in _SUPPORTED_DTYPES:
            raise TypeError(f"unsupported attribute dtype {data.dtype}")
        item_size = int(item_size)
        if item_size < 1:
            raise ValueError("item_size must be >= 1")
        data = data.reshape(-1)
        if data.size % item_size != 0:
            raise AttributeSizeMismatchError(
                f"array length ({data.size}) is not a multiple of item_size ({item_size})"
            )
        self.array = data
        self.item_size = item_size
        self.normalized = bool(normalized)
        self.version = 0

    @property
    def count(self) -> int:
        return self.array.size // self.item_size

    @property
    def dtype(self) -> np.dtype:
        return self.array.dtype

    @property
    def is_float(self) -> bool:
        return np.issubdtype(self.array.dtype, np.floating)

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        return f"{type(self).__name__}(count={self.count}, item_size={self.item_size}, dtype={self.dtype})"

    def _check_index(self, index: int) -> int:
        index = int(index)
        if index < 0 or index >= self.count:
            raise IndexOutOfRangeError(f"Index {index} out of range [0, {self.count - 1}]")
        return index

    def _check_component(self, component: int) -> int:
        component = int(component)
        if component < 0 or component >= self.item_size:
            raise IndexOutOfRangeError(
                f"Component {component} out of range [0, {self.item_size - 1}]"
            )
        return component

    def get(self, index: int) -> np.ndarray:
        """Return a copy of the ``item_size`` values stored for item ``index``."""
        start = self._check_index(index) * self.item_size
        return self.array[start:start + self.item_size].copy()

    def set(self, index: int, values: Sequence[float]) -> "BufferAttribute":
        """Overwrite item ``index`` with ``values`` (length must equal ``item_size``)."""
        vals = np.asarray(values).reshape(-1)
        if vals.size != self.item_size:
            raise AttributeSizeMismatchError(f"Expected {self.item_size} values, got {vals.size}")
        start = self._check_index(index) * self.item_size
        self.array[start:start + self.item_size] = vals
        self.version += 1
        return self

    def get_component(self, index: int, component: int) -> float:
        index = self._check_index(index)
        component = self._check_component(component)
        return self.array[index * self.item_size + component].item()

    def set_component(self, index: int, component: int, value: float) -> "BufferAttribute":
        index = self._check_index(index)
        component = self._check_component(component)
        self.array[index * self.item_size + component] = value
        self.version += 1
        return self

    def get_x(self, index: int) -> float:
        return self.get_component(index, 0)

    def get_y(self, index: int) -> float:
        return self.get_component(index, 1)

    def get_z(self, index: int) -> float:
        return self.get_component(index, 2)

    def copy_at(self, index1: int, attribute: "BufferAttribute", index2: int) -> "BufferAttribute":
        """Copy item ``index2`` of ``attribute`` into item ``index1`` of ``self``."""
        if self.item_size != attribute.item_size:
            raise AttributeSizeMismatchError(
                f"ItemSize mismatch: {self.item_size} vs {attribute.item_size}"
            )
        return self.set(index1, attribute.get(index2))

    def clone(self) -> "BufferAttribute":
        """Return a deep copy preserving the concrete subclass."""
        duplicate = copy.copy(self)
        duplicate.array = self.array.copy()
        return duplicate

    def as_matrix(self) -> np.ndarray:
        """Return a ``(count, item_size)`` view sharing memory with the attribute."""
        return self.array.reshape(self.count, self.item_size)

    def byte_length(self) -> int:
        return int(self.array.nbytes)

    def for_each(self, callback: Callable[[np.ndarray, int], None]) -> "BufferAttribute":
        """Invoke ``callback(values, index)`` for each item with a copy of its values."""
        for idx in range(self.count):
            callback(self.get(idx), idx)
        return self


class Float32BufferAttribute(BufferAttribute):
    def __init__(self, array: Sequence[float] | np.ndarray, item_size: int, normalized: bool = False) -> None:
        super().__init__(np.asarray(array, dtype=np.float32), item_size, normalized)


class Float64BufferAttribute(BufferAttribute):
    def __init__(self, array: Sequence[float] | np.ndarray, item_size: int, normalized: bool = False) -> None:
        super().__init__(np.asarray(array, dtype=np.float64), item_size, normalized)


class Uint16BufferAttribute(BufferAttribute):
    def __init__(self, array: Sequence[int] | np.ndarray, item_size: int, normalized: bool = False) -> None:
        super().__init__(_as_unsigned(array, np.uint16), item_size, normalized)


class Uint32BufferAttribute(BufferAttribute):
    def __init__(self, array: Sequence[int] | np.ndarray, item_size: int, normalized: bool = False) -> None:
        super().__init__(_as_unsigned(array, np.uint32), item_size, normalized)


def _as_unsigned(array: Sequence[int] | np.ndarray, dtype: type) -> np.ndarray:
    """Convert to an unsigned dtype, rejecting negatives and overflow instead of wrapping."""
    raw = np.asarray(array)
    if raw.size == 0:
        return raw.astype(dtype).reshape(-1)
    if np.issubdtype(raw.dtype, np.floating):
        if not np.all(np.isfinite(raw)) or np.any(raw != np.floor(raw)):
            raise TypeError("index attributes require integral values")
    limit = np.iinfo(dtype).max
    if raw.min() < 0 or raw.max() > limit:
        raise IndexOutOfRangeError(f"values must lie in [0, {limit}] for {np.dtype(dtype).name}")
    return raw.astype(dtype).reshape(-1)
