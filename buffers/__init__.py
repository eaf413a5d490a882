"""Typed mesh buffers shared by the contouring algorithms."""

from .attributes import (
    BufferAttribute,
    Float32BufferAttribute,
    Float64BufferAttribute,
    Uint16BufferAttribute,
    Uint32BufferAttribute,
)
from .mesh_buffer import MeshBuffer

__all__ = [
    "BufferAttribute",
    "Float32BufferAttribute",
    "Float64BufferAttribute",
    "Uint16BufferAttribute",
    "Uint32BufferAttribute",
    "MeshBuffer",
]
