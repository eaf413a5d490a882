from __future__ import annotations

import numpy as np
import pytest
import trimesh

from buffers.attributes import (
    BufferAttribute,
    Float32BufferAttribute,
    Float64BufferAttribute,
    Uint16BufferAttribute,
    Uint32BufferAttribute,
)
from buffers.mesh_buffer import MeshBuffer
from utilities.errors import (
    AttributeSizeMismatchError,
    IndexOutOfRangeError,
    MissingGeometryError,
)


def _unit_square() -> MeshBuffer:
    positions = [0, 0, 0, 1, 0, 0, 1, 1, 0, 0, 1, 0]
    return MeshBuffer(positions, [0, 1, 2, 0, 2, 3])


def test_attribute_accessors():
    attr = Float32BufferAttribute([0, 1, 2, 3, 4, 5], 3)
    assert attr.count == 2
    assert len(attr) == 2
    assert attr.dtype == np.float32
    assert attr.get_x(1) == 3.0
    assert attr.get_y(1) == 4.0
    assert attr.get_z(1) == 5.0
    attr.set(0, [9, 8, 7])
    assert attr.get(0).tolist() == [9.0, 8.0, 7.0]
    attr.set_component(1, 2, -1.0)
    assert attr.get_component(1, 2) == -1.0
    assert attr.as_matrix().shape == (2, 3)
    assert attr.byte_length() == 6 * 4


def test_attribute_bounds_are_checked():
    attr = Float64BufferAttribute([0, 1, 2], 3)
    with pytest.raises(IndexOutOfRangeError):
        attr.get(1)
    with pytest.raises(IndexOutOfRangeError):
        attr.get_component(0, 3)
    with pytest.raises(AttributeSizeMismatchError):
        attr.set(0, [1, 2])
    with pytest.raises(AttributeSizeMismatchError):
        Float64BufferAttribute([0, 1, 2, 3], 3)


def test_copy_at_requires_matching_item_size():
    positions = Float64BufferAttribute([0, 0, 0, 1, 2, 3], 3)
    other = Float64BufferAttribute([7, 8, 9], 3)
    positions.copy_at(0, other, 0)
    assert positions.get(0).tolist() == [7.0, 8.0, 9.0]
    scalars = Float64BufferAttribute([1, 2], 1)
    with pytest.raises(AttributeSizeMismatchError):
        positions.copy_at(0, scalars, 0)


def test_clone_is_independent_and_keeps_type():
    attr = Uint16BufferAttribute([1, 2, 3], 1)
    copy = attr.clone()
    copy.set(0, [42])
    assert isinstance(copy, Uint16BufferAttribute)
    assert attr.get(0).tolist() == [1]


def test_unsigned_attributes_reject_bad_values():
    with pytest.raises(IndexOutOfRangeError):
        Uint32BufferAttribute([0, -1, 2], 1)
    with pytest.raises(IndexOutOfRangeError):
        Uint16BufferAttribute([70000], 1)
    with pytest.raises(TypeError):
        Uint32BufferAttribute([0.5, 1.0, 2.0], 1)
    with pytest.raises(TypeError):
        BufferAttribute(np.array([1, 2, 3], dtype=np.int64), 1)


def test_for_each_visits_items_in_order():
    seen = []
    Float64BufferAttribute([1, 2, 3, 4], 2).for_each(lambda values, idx: seen.append((idx, values.tolist())))
    assert seen == [(0, [1.0, 2.0]), (1, [3.0, 4.0])]


def test_mesh_buffer_validates_indices_and_attributes():
    mesh = _unit_square()
    assert mesh.vertex_count == 4
    assert mesh.triangle_count == 2
    assert mesh.faces.tolist() == [[0, 1, 2], [0, 2, 3]]

    with pytest.raises(IndexOutOfRangeError):
        MeshBuffer([0, 0, 0, 1, 0, 0, 0, 1, 0], [0, 1, 3])
    with pytest.raises(AttributeSizeMismatchError):
        MeshBuffer([0, 0, 0, 1, 0, 0, 0, 1, 0], [0, 1])
    with pytest.raises(AttributeSizeMismatchError):
        mesh.set_scalars("short", [0.0, 1.0])


def test_non_indexed_mesh_groups_vertices_in_triples():
    mesh = MeshBuffer(np.arange(18, dtype=float))
    assert not mesh.is_indexed
    assert mesh.faces.tolist() == [[0, 1, 2], [3, 4, 5]]

    ragged = MeshBuffer(np.zeros(12))
    with pytest.raises(MissingGeometryError):
        ragged.require_triangles()
    with pytest.raises(MissingGeometryError):
        MeshBuffer(np.zeros(0)).require_triangles()


def test_scalars_lookup_and_resolution():
    mesh = _unit_square()
    mesh.set_scalars("x", [0.0, 1.0, 1.0, 0.0])
    assert mesh.has_attribute("x")
    assert list(mesh.attribute_names()) == ["x"]
    assert mesh.resolve_scalars("x").tolist() == [0.0, 1.0, 1.0, 0.0]
    assert mesh.resolve_scalars([1, 2, 3, 4]).dtype == np.float64
    with pytest.raises(MissingGeometryError):
        mesh.scalars("missing")
    with pytest.raises(AttributeSizeMismatchError):
        mesh.resolve_scalars([1, 2, 3])


def test_compute_vertex_normals_on_flat_square():
    mesh = _unit_square()
    assert not mesh.has_attribute("normal")
    computed = mesh.vertex_normals()
    assert not mesh.has_attribute("normal")
    assert np.allclose(computed, [[0, 0, 1]] * 4)

    mesh.compute_vertex_normals()
    stored = mesh.get_attribute("normal")
    assert stored.item_size == 3
    assert np.allclose(stored.as_matrix(), [[0, 0, 1]] * 4)


def test_isolated_vertex_gets_default_normal():
    mesh = MeshBuffer([0, 0, 0, 1, 0, 0, 0, 1, 0, 5, 5, 5], [0, 1, 2])
    normals = mesh.vertex_normals()
    assert np.allclose(normals[3], [0, 0, 1])


def test_trimesh_round_trip_and_copy():
    sphere = trimesh.creation.icosphere(subdivisions=1)
    mesh = MeshBuffer.from_trimesh(sphere)
    assert mesh.vertex_count == len(sphere.vertices)
    assert np.array_equal(mesh.faces, sphere.faces)

    back = mesh.to_trimesh()
    assert np.allclose(back.vertices, sphere.vertices)

    mesh.set_scalars("z", mesh.vertices[:, 2])
    duplicate = mesh.copy()
    duplicate.positions.set(0, [9, 9, 9])
    assert not np.allclose(mesh.vertices[0], [9, 9, 9])
    assert duplicate.has_attribute("z")

    with pytest.raises(TypeError):
        MeshBuffer.from_trimesh("not a mesh")
