"""Minimal triangle-mesh container consumed by the contouring algorithms.

Maintains positions, an optional triangle index buffer and a dictionary of
named per-vertex attributes. Conversion helpers bridge to :mod:`trimesh`,
which plays the role of the mesh collaborator in tests and in ``main.py``.
"""

from __future__ import annotations

from typing import Dict, Iterator, Optional, Sequence

import numpy as np
import trimesh

from buffers.attributes import (
    BufferAttribute,
    Float64BufferAttribute,
    Uint32BufferAttribute,
)
from utilities.errors import (
    DEFAULT_NORMAL,
    AttributeSizeMismatchError,
    IndexOutOfRangeError,
    MissingGeometryError,
)
from utilities.mesh_utils import signed_normals


class MeshBuffer:
    """Positions + optional triangle indices + named per-vertex attributes."""

    def __init__(
        self,
        positions: Sequence[float] | np.ndarray | BufferAttribute,
        indices: Sequence[int] | np.ndarray | BufferAttribute | None = None,
        attributes: Optional[Dict[str, BufferAttribute]] = None,
    ) -> None:
        """Validate and store mesh buffers.

        Parameters
        ----------
        positions : array-like or BufferAttribute
            Flat ``(3V,)`` or ``(V, 3)`` vertex coordinates.
        indices : array-like or BufferAttribute, optional
            Flat ``(3F,)`` or ``(F, 3)`` triangle indices. When omitted the
            vertices are grouped into triangles of three in storage order.
        attributes : dict, optional
            Named per-vertex attributes (e.g. ``"normal"``, scalar fields).

        Raises
        ------
        AttributeSizeMismatchError
            If ``positions`` is not made of 3-component items, or an
            attribute does not have one item per vertex.
        IndexOutOfRangeError
            If any index refers to a vertex that does not exist.
        """
        if isinstance(positions, BufferAttribute):
            if positions.item_size != 3:
                raise AttributeSizeMismatchError(
                    f"positions must have item_size 3, got {positions.item_size}"
                )
            self._positions = positions
        else:
            self._positions = Float64BufferAttribute(np.asarray(positions, dtype=np.float64), 3)

        self._indices: Optional[BufferAttribute] = None
        if indices is not None:
            self.set_indices(indices)

        self._attributes: Dict[str, BufferAttribute] = {}
        for name, attribute in (attributes or {}).items():
            self.set_attribute(name, attribute)

    # ------------------------------------------------------------------ #
    #                          Construction helpers                       #
    # ------------------------------------------------------------------ #
    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh) -> "MeshBuffer":
        """Copy the vertices and faces of ``mesh`` into a new indexed buffer."""
        if not isinstance(mesh, trimesh.Trimesh):
            raise TypeError("from_trimesh requires a trimesh.Trimesh instance")
        return cls(
            np.asarray(mesh.vertices, dtype=np.float64),
            np.asarray(mesh.faces, dtype=np.int64),
        )

    def to_trimesh(self) -> trimesh.Trimesh:
        """Return an unprocessed :class:`trimesh.Trimesh` sharing no memory with ``self``."""
        return trimesh.Trimesh(
            vertices=self.vertices.copy(),
            faces=self.faces.copy(),
            process=False,
        )

    # ------------------------------------------------------------------ #
    #                               Accessors                             #
    # ------------------------------------------------------------------ #
    @property
    def vertex_count(self) -> int:
        return self._positions.count

    @property
    def triangle_count(self) -> int:
        if self._indices is not None:
            return self._indices.count // 3
        return self.vertex_count // 3

    @property
    def is_indexed(self) -> bool:
        return self._indices is not None

    @property
    def positions(self) -> BufferAttribute:
        return self._positions

    @property
    def indices(self) -> Optional[BufferAttribute]:
        return self._indices

    @property
    def vertices(self) -> np.ndarray:
        """``(V, 3)`` float64 view of the positions."""
        return self._positions.as_matrix().astype(np.float64, copy=False)

    @property
    def faces(self) -> np.ndarray:
        """``(F, 3)`` int64 triangle indices, synthesised when the mesh is not indexed."""
        if self._indices is not None:
            return self._indices.array.astype(np.int64).reshape(-1, 3)
        if self.vertex_count % 3 != 0:
            raise MissingGeometryError(
                f"non-indexed mesh has {self.vertex_count} vertices, not a multiple of 3"
            )
        return np.arange(self.vertex_count, dtype=np.int64).reshape(-1, 3)

    def set_indices(self, indices: Sequence[int] | np.ndarray | BufferAttribute) -> "MeshBuffer":
        """Replace the index buffer after checking every id against ``vertex_count``."""
        if isinstance(indices, BufferAttribute):
            attribute = indices
        else:
            attribute = Uint32BufferAttribute(np.asarray(indices).reshape(-1), 1)
        if attribute.is_float:
            raise TypeError("indices must use an unsigned integer dtype")
        if attribute.array.size % 3 != 0:
            raise AttributeSizeMismatchError(
                f"index count ({attribute.array.size}) is not a multiple of 3"
            )
        if attribute.array.size and int(attribute.array.max()) >= self.vertex_count:
            raise IndexOutOfRangeError(
                f"index {int(attribute.array.max())} >= vertex count {self.vertex_count}"
            )
        self._indices = attribute
        return self

    def set_attribute(self, name: str, attribute: BufferAttribute) -> "MeshBuffer":
        """Add or replace a named attribute; it must carry one item per vertex."""
        if not isinstance(attribute, BufferAttribute):
            raise TypeError("attribute must be a BufferAttribute")
        if attribute.count != self.vertex_count:
            raise AttributeSizeMismatchError(
                f"attribute '{name}' has {attribute.count} items, mesh has {self.vertex_count} vertices"
            )
        self._attributes[str(name)] = attribute
        return self

    def get_attribute(self, name: str) -> Optional[BufferAttribute]:
        return self._attributes.get(name)

    def has_attribute(self, name: str) -> bool:
        return name in self._attributes

    def attribute_names(self) -> Iterator[str]:
        return iter(self._attributes)

    def set_scalars(self, name: str, values: Sequence[float] | np.ndarray) -> "MeshBuffer":
        """Store a one-component float attribute under ``name``."""
        return self.set_attribute(name, Float64BufferAttribute(np.asarray(values, dtype=np.float64), 1))

    def scalars(self, name: str) -> np.ndarray:
        """Return the float64 values of the one-component attribute ``name``."""
        attribute = self._attributes.get(name)
        if attribute is None:
            raise MissingGeometryError(f"mesh has no scalar attribute named '{name}'")
        if attribute.item_size != 1:
            raise AttributeSizeMismatchError(
                f"attribute '{name}' has item_size {attribute.item_size}, expected 1"
            )
        return attribute.array.astype(np.float64)

    def resolve_scalars(self, scalars: str | Sequence[float] | np.ndarray) -> np.ndarray:
        """Return one float64 value per vertex from an attribute name or an array.

        Raises
        ------
        MissingGeometryError
            If ``scalars`` names an attribute the mesh does not have.
        AttributeSizeMismatchError
            If the array does not hold exactly one value per vertex.
        """
        if isinstance(scalars, str):
            return self.scalars(scalars)
        values = np.asarray(scalars, dtype=np.float64).reshape(-1)
        if values.shape[0] != self.vertex_count:
            raise AttributeSizeMismatchError(
                f"scalar array has {values.shape[0]} values, mesh has {self.vertex_count} vertices"
            )
        return values

    def require_triangles(self) -> None:
        """Raise :class:`MissingGeometryError` unless the mesh has at least one triangle."""
        if self.vertex_count == 0:
            raise MissingGeometryError("mesh has no positions")
        if self.triangle_count == 0:
            raise MissingGeometryError("mesh has no triangles")
        # Validates implicit grouping for non-indexed meshes.
        self.faces

    # ------------------------------------------------------------------ #
    #                                Normals                              #
    # ------------------------------------------------------------------ #
    def vertex_normals(self) -> np.ndarray:
        """Return ``(V, 3)`` normals: the stored ``"normal"`` attribute or freshly computed ones.

        Nothing is written back to the mesh; use :meth:`compute_vertex_normals`
        for that.
        """
        stored = self._attributes.get("normal")
        if stored is not None and stored.item_size == 3:
            return stored.as_matrix().astype(np.float64)
        return self._area_weighted_normals()

    def compute_vertex_normals(self) -> "MeshBuffer":
        """Compute area-weighted smooth normals and store them as ``"normal"``."""
        normals = self._area_weighted_normals()
        return self.set_attribute("normal", Float64BufferAttribute(normals.reshape(-1), 3))

    def _area_weighted_normals(self) -> np.ndarray:
        verts = self.vertices
        faces = self.faces
        accum = np.zeros((self.vertex_count, 3), dtype=np.float64)
        raw = signed_normals(verts, faces)
        for corner in range(3):
            np.add.at(accum, faces[:, corner], raw)
        lengths = np.linalg.norm(accum, axis=1)
        degenerate = lengths <= 0.0
        lengths[degenerate] = 1.0
        normals = accum / lengths[:, None]
        normals[degenerate] = DEFAULT_NORMAL
        return normals

    def copy(self) -> "MeshBuffer":
        """Deep copy of every buffer."""
        return MeshBuffer(
            self._positions.clone(),
            None if self._indices is None else self._indices.clone(),
            {name: attr.clone() for name, attr in self._attributes.items()},
        )
