"""Shared helpers: error kinds, scalar-range maths, configuration coercion."""
